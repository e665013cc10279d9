"""Error taxonomy for invoice normalization."""
from __future__ import annotations

from typing import List, Optional, Sequence

from invoices.normalize.schema import ExtractionAttempt


class NormalizationError(RuntimeError):
    """Base class for every error raised while normalizing a raw record."""


class ExtractionError(NormalizationError):
    """Raised by an extractor that could not produce a candidate."""

    def __init__(self, extractor: str, reason: str) -> None:
        super().__init__(f"{extractor}: {reason}")
        self.extractor = extractor
        self.reason = reason


class ShapeMismatch(ExtractionError):
    """The node does not have the physical shape the extractor was dispatched for."""


class RoundTripError(ExtractionError):
    """The canonical JSON form could not be deserialized into the record model."""


class CandidateRejected(NormalizationError):
    """An extracted candidate failed validation."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ItemCountMismatch(CandidateRejected):
    """The store-reported item count disagrees with the extracted item count."""

    def __init__(self, expected: int, observed: int) -> None:
        super().__init__(f"store reports {expected} line items but {observed} were extracted")
        self.expected = expected
        self.observed = observed


class ExhaustedFallbacks(NormalizationError):
    """Every extractor was tried and none produced an acceptable candidate."""

    def __init__(self, attempts: Sequence[ExtractionAttempt], shape: Optional[str] = None) -> None:
        self.attempts: List[ExtractionAttempt] = list(attempts)
        self.shape = shape
        super().__init__(self.report())

    def report(self) -> str:
        """Multi-line diagnostic listing every attempted extractor and why it failed."""

        header = f"no extractor produced a valid invoice record (shape={self.shape or 'unknown'})"
        lines = [header]
        for attempt in self.attempts:
            lines.append(f"  - {attempt.extractor}: {attempt.outcome}: {attempt.reason}")
        return "\n".join(lines)
