"""Validation of extracted candidates before the orchestrator accepts them."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from invoices.normalize.errors import CandidateRejected, ItemCountMismatch
from invoices.normalize.extractors import Extraction


@dataclass
class ValidateConfig:
    """Configuration for candidate validation."""

    enforce_count_hint: bool = True
    """Treat a store-reported item count that disagrees with the extraction as truncation."""


class CandidateValidator:
    """Reject candidates that show signs of truncation or unusable items.

    Header totals are deliberately not compared with the item sum: documents
    carry rounding and fees, and both figures are reported as found.
    """

    def __init__(self, config: ValidateConfig | None = None) -> None:
        self._config = config or ValidateConfig()

    def check(self, candidate: Extraction, count_hint: Optional[int] = None) -> None:
        """Raise :class:`CandidateRejected` when ``candidate`` is not acceptable."""

        observed = len(candidate.line_items)
        if self._config.enforce_count_hint and count_hint is not None and count_hint != observed:
            raise ItemCountMismatch(expected=count_hint, observed=observed)

        for index, item in enumerate(candidate.line_items):
            if item.description is None:
                raise CandidateRejected(f"line item {index} has no description")
            if not item.amount.is_finite():
                raise CandidateRejected(f"line item {index} amount {item.amount} is not finite")

    @property
    def config(self) -> ValidateConfig:
        return self._config
