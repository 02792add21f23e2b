"""
Lazily loaded, explicitly owned model handles.

Embedding models are expensive to load, so each embedder owns one handle that
loads the model on first use. Loading happens at most once per handle even
when several request threads hit it together.
"""

import logging
import threading
from typing import Callable, Generic, Optional, TypeVar

from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LazyModelHandle(Generic[T]):
    """
    Single-writer, many-reader holder for a loaded model.

    Usage:
        handle = LazyModelHandle(lambda: SentenceTransformer("clip-ViT-B-32"))
        model = handle.get()
    """

    def __init__(self, loader: Callable[[], T], name: str = "model"):
        self._loader = loader
        self._name = name
        self._model: Optional[T] = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def get(self) -> T:
        """Return the model, loading it on first call."""
        model = self._model
        if model is not None:
            return model

        with self._lock:
            if self._model is None:
                logger.info(f"Loading {self._name}")
                self._model = self._loader()
            return self._model


def sentence_transformer_handle(
    model_name: str, device: Optional[str] = None
) -> LazyModelHandle[SentenceTransformer]:
    """Handle for a sentence-transformers model (text or CLIP)."""
    return LazyModelHandle(
        lambda: SentenceTransformer(model_name, device=device),
        name=f"embedding model {model_name}",
    )
