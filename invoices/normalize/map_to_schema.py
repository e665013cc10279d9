"""Normalization stage that maps a batch of raw store results to invoice records."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, List

from invoices.normalize.coerce import NumberFormat
from invoices.normalize.errors import ExhaustedFallbacks
from invoices.normalize.nodes import QueryPath
from invoices.normalize.schema import InvoiceRecord
from invoices.orchestrator.orchestrator import NormalizationOrchestrator, OrchestratorConfig

LOGGER = logging.getLogger(__name__)


@dataclass
class NormalizeConfig:
    """Configuration for the normalization stage."""

    query_path: QueryPath = QueryPath.UNKNOWN
    number_format: NumberFormat = field(default_factory=NumberFormat)
    enforce_count_hint: bool = True
    skip_failures: bool = False
    """Log and drop records no extractor could handle instead of raising."""


class NormalizeStage:
    """Normalize raw query results into canonical ``InvoiceRecord`` structures."""

    def __init__(self, config: NormalizeConfig | None = None) -> None:
        self._config = config or NormalizeConfig()
        self._orchestrator = NormalizationOrchestrator(
            OrchestratorConfig(
                number_format=self._config.number_format,
                enforce_count_hint=self._config.enforce_count_hint,
            )
        )

    def run(self, batch: List[Any]) -> list[InvoiceRecord]:
        """Normalize every raw result in ``batch``, preserving order."""

        records: list[InvoiceRecord] = []
        for index, raw in enumerate(batch):
            try:
                records.append(self._orchestrator.normalize(raw, self._config.query_path))
            except ExhaustedFallbacks as exc:
                if not self._config.skip_failures:
                    raise
                LOGGER.error("Skipping record %d: %s", index, exc.report())
        LOGGER.info("Normalized %d of %d records", len(records), len(batch))
        return records

    @property
    def config(self) -> NormalizeConfig:
        return self._config
