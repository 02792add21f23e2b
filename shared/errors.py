"""
Error taxonomy for card search.

Every failure in the retrieval path surfaces as one of these types so callers
can tell them apart:
- InvalidQuery: malformed or out-of-range search input
- EmbeddingUnavailable: an embedding collaborator failed or returned junk
- DimensionMismatch: vectors of unequal length were compared or stored
- StoreUnavailable: the card store could not be reached or the query failed

None of them are retried inside the core.
"""

from typing import Optional


class CardSearchError(Exception):
    """Base class for all card search errors."""

    kind: str = "card_search_error"


class InvalidQuery(CardSearchError):
    """Search input is malformed or out of range."""

    kind = "invalid_query"


class EmbeddingUnavailable(CardSearchError):
    """An embedding collaborator failed for one modality."""

    kind = "embedding_unavailable"

    def __init__(self, modality: str, message: str):
        super().__init__(f"{modality} embedding unavailable: {message}")
        self.modality = modality


class DimensionMismatch(CardSearchError, ValueError):
    """Two vectors (or a vector and its column) disagree on dimension."""

    kind = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, what: Optional[str] = None):
        label = f"{what}: " if what else ""
        super().__init__(f"{label}expected dimension {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class StoreUnavailable(CardSearchError):
    """The card store could not be reached or returned unusable rows."""

    kind = "store_unavailable"
