"""Shared test fixtures for card search tests."""

import base64
import io
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest
from PIL import Image

from retrieval.memory_store import InMemoryCardStore
from retrieval.models import IMAGE_EMBEDDING_DIM, TEXT_EMBEDDING_DIM

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

CARD_A = "00000000-0000-0000-0000-00000000000a"
CARD_B = "00000000-0000-0000-0000-00000000000b"
CARD_C = "00000000-0000-0000-0000-00000000000c"


def vec(dim: int, *components: float) -> list:
    """Vector of ``dim`` zeros with the leading components set."""
    values = [0.0] * dim
    for i, value in enumerate(components):
        values[i] = value
    return values


def text_vec(*components: float) -> list:
    return vec(TEXT_EMBEDDING_DIM, *components)


def image_vec(*components: float) -> list:
    return vec(IMAGE_EMBEDDING_DIM, *components)


class FakeTextEmbedder:
    """Maps known texts to fixed vectors."""

    def __init__(self, vectors: dict):
        self.vectors = vectors
        self.calls = []

    def embed_text(self, text: str) -> list:
        self.calls.append(text)
        if text not in self.vectors:
            raise RuntimeError(f"unknown text: {text}")
        return self.vectors[text]


class FakeImageEmbedder:
    """Maps known image refs to fixed vectors."""

    def __init__(self, vectors: dict):
        self.vectors = vectors
        self.calls = []

    def embed_image(self, image_ref: str) -> list:
        self.calls.append(image_ref)
        if image_ref not in self.vectors:
            raise RuntimeError(f"unknown image: {image_ref}")
        return self.vectors[image_ref]


class FakeModel:
    """Stands in for a SentenceTransformer; returns a fixed-size vector."""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.inputs = []

    def encode(self, value, **kwargs):
        self.inputs.append(value)
        vector = np.zeros(self.dimension, dtype=np.float32)
        vector[0] = 1.0
        return vector


@pytest.fixture
def scenario_store():
    """
    Three cards:
    A: Jordan, PSA 10, both embeddings, close to the "Jordan rookie" query
    B: Bryant, PSA 9, both embeddings, far from the query
    C: Jordan, PSA 7, no text embedding
    """
    store = InMemoryCardStore()
    store.add_card(
        card_id=CARD_A,
        image_url="https://cards.example.com/a.jpg",
        created_at=BASE_TIME,
        player="Michael Jordan",
        year="1986",
        brand="Fleer",
        card_number="57",
        psa_grade="PSA 10",
        certification_number="111",
        sport="Basketball",
        text_embedding=text_vec(0.9, 0.1),
        image_embedding=image_vec(1.0, 0.0),
    )
    store.add_card(
        card_id=CARD_B,
        image_url="https://cards.example.com/b.jpg",
        created_at=BASE_TIME + timedelta(minutes=1),
        player="Kobe Bryant",
        year="1996",
        brand="Topps Chrome",
        psa_grade="PSA 9",
        sport="Basketball",
        text_embedding=text_vec(0.1, 0.9),
        image_embedding=image_vec(0.0, 1.0),
    )
    store.add_card(
        card_id=CARD_C,
        image_url="https://cards.example.com/c.jpg",
        created_at=BASE_TIME + timedelta(minutes=2),
        player="Michael Jordan",
        year="1986",
        brand="Fleer",
        psa_grade="PSA 7",
        sport="Basketball",
        image_embedding=image_vec(0.8, 0.2),
    )
    return store


@pytest.fixture
def text_embedder():
    return FakeTextEmbedder(
        {
            "Jordan rookie": text_vec(1.0, 0.0),
            "Bryant": text_vec(0.0, 1.0),
        }
    )


@pytest.fixture
def image_embedder():
    return FakeImageEmbedder(
        {
            "https://query.example.com/jordan.jpg": image_vec(1.0, 0.0),
            "https://query.example.com/bryant.jpg": image_vec(0.0, 1.0),
        }
    )


@pytest.fixture
def png_bytes():
    """A small red PNG."""
    img = Image.new("RGB", (16, 16), (200, 30, 30))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_base64(png_bytes):
    return base64.b64encode(png_bytes).decode("ascii")
