"""Normalization orchestrator: detect, extract, validate, fall back."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, Dict, List, Optional

from invoices.normalize.coerce import NumberFormat
from invoices.normalize.errors import (
    CandidateRejected,
    ExhaustedFallbacks,
    ExtractionError,
    ShapeMismatch,
)
from invoices.normalize.extractors import (
    DocumentExtractor,
    Extraction,
    Extractor,
    GenericMapExtractor,
    ProjectedExtractor,
)
from invoices.normalize.fields import count_hint
from invoices.normalize.introspect import IntrospectionExtractor
from invoices.normalize.nodes import QueryPath, RawNode, Shape
from invoices.normalize.roundtrip import RoundTripExtractor
from invoices.normalize.schema import ExtractionAttempt, InvoiceRecord
from invoices.validate.checks import CandidateValidator, ValidateConfig

LOGGER = logging.getLogger(__name__)

_HINTED_SHAPES = {
    QueryPath.WHOLE_DOCUMENT: Shape.DOCUMENT,
    QueryPath.PROJECTED: Shape.PROJECTED,
    QueryPath.UNKNOWN: Shape.UNKNOWN,
}


class NormalizationState(str, Enum):
    """States of a single normalization call."""

    DETECTING = "detecting"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    FALLING_BACK = "falling_back"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OrchestratorConfig:
    """Configuration for the normalization orchestrator."""

    number_format: NumberFormat = field(default_factory=NumberFormat)
    enforce_count_hint: bool = True


class NormalizationOrchestrator:
    """Reduce a raw store payload of any known shape to an :class:`InvoiceRecord`.

    The instance holds only configuration and stateless extractors, so one
    orchestrator can serve concurrent calls.
    """

    def __init__(self, config: OrchestratorConfig | None = None) -> None:
        self._config = config or OrchestratorConfig()
        number_format = self._config.number_format
        self._by_shape: Dict[Shape, Extractor] = {
            Shape.DOCUMENT: DocumentExtractor(number_format),
            Shape.PROJECTED: ProjectedExtractor(number_format),
            Shape.GENERIC_MAP: GenericMapExtractor(number_format),
        }
        self._fallbacks: List[Extractor] = [
            IntrospectionExtractor(number_format),
            RoundTripExtractor(),
        ]
        self._validator = CandidateValidator(ValidateConfig(enforce_count_hint=self._config.enforce_count_hint))

    def plan(self, node: RawNode, query_path_hint: QueryPath = QueryPath.UNKNOWN) -> List[Extractor]:
        """Order in which extractors are tried for ``node``.

        The detected shape always leads; the hint only adds its own extractor
        next when it names a different shape, or leads when detection found none.
        """

        order: List[Extractor] = []
        for shape in (node.shape, _HINTED_SHAPES[QueryPath(query_path_hint)]):
            extractor = self._by_shape.get(shape)
            if extractor is not None and extractor not in order:
                order.append(extractor)
        return order + self._fallbacks

    def normalize(self, raw: Any, query_path_hint: QueryPath = QueryPath.UNKNOWN) -> InvoiceRecord:
        """Normalize ``raw`` (a payload or :class:`RawNode`) or raise :class:`ExhaustedFallbacks`."""

        state = NormalizationState.DETECTING
        node = RawNode.of(raw)
        hint = QueryPath(query_path_hint)
        expected_count = count_hint(node.payload, self._config.number_format)
        LOGGER.debug("%s: shape=%s hint=%s count_hint=%s", state.value, node.shape.value, hint.value, expected_count)

        attempts: List[ExtractionAttempt] = []
        last_error: Optional[Exception] = None
        for position, extractor in enumerate(self.plan(node, hint)):
            state = NormalizationState.EXTRACTING if position == 0 else NormalizationState.FALLING_BACK
            LOGGER.debug("%s: trying %s extractor", state.value, extractor.name)
            try:
                candidate = extractor.extract(node)
            except ShapeMismatch as exc:
                attempts.append(ExtractionAttempt(extractor=extractor.name, outcome="shape_mismatch", reason=exc.reason))
                last_error = exc
                continue
            except ExtractionError as exc:
                attempts.append(ExtractionAttempt(extractor=extractor.name, outcome="error", reason=exc.reason))
                last_error = exc
                continue

            state = NormalizationState.VALIDATING
            LOGGER.debug("%s: %s candidate with %d line items", state.value, extractor.name, len(candidate.line_items))
            try:
                self._validator.check(candidate, expected_count)
            except CandidateRejected as exc:
                LOGGER.warning("%s extractor candidate rejected: %s", extractor.name, exc.reason)
                attempts.append(
                    ExtractionAttempt(
                        extractor=extractor.name,
                        outcome="rejected",
                        reason=exc.reason,
                        item_count=len(candidate.line_items),
                    )
                )
                last_error = exc
                continue

            attempts.append(
                ExtractionAttempt(extractor=extractor.name, outcome="accepted", item_count=len(candidate.line_items))
            )
            state = NormalizationState.DONE
            LOGGER.debug("%s: accepted %s candidate", state.value, extractor.name)
            if position > 0:
                LOGGER.info("Normalized %s payload via fallback %s extractor", node.shape.value, extractor.name)
            return self._build_record(node, extractor, candidate, expected_count, attempts)

        state = NormalizationState.FAILED
        LOGGER.debug("%s: %d extractors exhausted", state.value, len(attempts))
        raise ExhaustedFallbacks(attempts, shape=node.shape.value) from last_error

    def _build_record(
        self,
        node: RawNode,
        extractor: Extractor,
        candidate: Extraction,
        expected_count: Optional[int],
        attempts: List[ExtractionAttempt],
    ) -> InvoiceRecord:
        return InvoiceRecord(
            **candidate.header,
            line_items=candidate.line_items,
            reported_line_items_count=expected_count,
            coercion_failures=candidate.coercion_failures,
            shape=node.shape.value,
            extractor=extractor.name,
            attempts=attempts,
        )

    @property
    def config(self) -> OrchestratorConfig:
        return self._config


_DEFAULT_ORCHESTRATOR = NormalizationOrchestrator()


def normalize(raw: Any, query_path_hint: QueryPath = QueryPath.UNKNOWN) -> InvoiceRecord:
    """Normalize ``raw`` with the default configuration."""

    return _DEFAULT_ORCHESTRATOR.normalize(raw, query_path_hint)
