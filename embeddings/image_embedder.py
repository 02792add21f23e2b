"""
Image embedding service using CLIP through sentence-transformers.

Accepts three kinds of image reference:
- HTTP(S) URL: fetched with httpx
- data URI: "data:image/png;base64,...."
- raw base64 content
"""

import base64
import binascii
import io
import logging
import re
from typing import List, Optional

import httpx
import numpy as np
from PIL import Image, UnidentifiedImageError
from sentence_transformers import SentenceTransformer

from app.config import EmbeddingConfig
from retrieval.models import Modality
from shared.errors import EmbeddingUnavailable

from .model_handle import LazyModelHandle, sentence_transformer_handle

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(image/[\w.+-]+)?(;base64)?,(.*)$", re.DOTALL)


def _http_get(url: str, timeout: float) -> httpx.Response:
    """HTTP GET, split out so tests can replace it."""
    return httpx.get(url, timeout=timeout, follow_redirects=True)


def _decode_base64(payload: str) -> bytes:
    try:
        return base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise EmbeddingUnavailable(
            Modality.IMAGE.value, f"invalid base64 image data: {e}"
        ) from e


def read_image_bytes(image_ref: str, timeout: float = 10.0) -> bytes:
    """
    Resolve an image reference to raw bytes.

    Raises:
        EmbeddingUnavailable: Fetch failed or the payload is not valid base64
    """
    ref = image_ref.strip()

    if ref.startswith(("http://", "https://")):
        try:
            response = _http_get(ref, timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmbeddingUnavailable(
                Modality.IMAGE.value, f"image fetch failed: {e}"
            ) from e
        return response.content

    match = _DATA_URI_RE.match(ref)
    if match:
        return _decode_base64(match.group(3))

    return _decode_base64(ref)


def load_image(image_ref: str, timeout: float = 10.0) -> Image.Image:
    """Load an image reference as an RGB PIL image."""
    raw = read_image_bytes(image_ref, timeout)
    try:
        with Image.open(io.BytesIO(raw)) as img:
            return img.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise EmbeddingUnavailable(
            Modality.IMAGE.value, f"not a readable image: {e}"
        ) from e


class ImageEmbeddingService:
    """
    CLIP image embedder producing 512d vectors.

    Usage:
        service = ImageEmbeddingService(EmbeddingConfig())
        vector = service.embed_image("https://example.com/card.jpg")
    """

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        model_handle: Optional[LazyModelHandle[SentenceTransformer]] = None,
    ):
        self.config = config or EmbeddingConfig()
        self._model_handle = model_handle or sentence_transformer_handle(
            self.config.image_model_name, self.config.device
        )

    def embed_image(self, image_ref: str) -> List[float]:
        """
        Embed an image given as URL, data URI or raw base64.

        Args:
            image_ref: Image reference

        Returns:
            Embedding of config.image_dimension floats

        Raises:
            EmbeddingUnavailable: Image unreadable, model failure or a vector
                of the wrong shape
        """
        image = load_image(image_ref, timeout=self.config.image_fetch_timeout)

        try:
            model = self._model_handle.get()
            vector = model.encode(
                image,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=self.config.normalize,
            )
        except Exception as e:
            logger.warning(f"Image embedding failed: {e}")
            raise EmbeddingUnavailable(Modality.IMAGE.value, str(e)) from e

        vector = np.asarray(vector, dtype=np.float32).ravel()
        if vector.shape[0] != self.config.image_dimension:
            raise EmbeddingUnavailable(
                Modality.IMAGE.value,
                f"model returned {vector.shape[0]} dimensions, "
                f"expected {self.config.image_dimension}",
            )
        return vector.tolist()
