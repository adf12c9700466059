import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from propwatch.errors import PropwatchError, ValidationError
from propwatch.models import (
    CONFIRMED_FRAUD,
    NOT_FRAUD,
    SUSPICIOUS,
    VERIFICATION_ERROR,
    FraudReport,
    VerificationResult,
)

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.85
MEDIUM_CONFIDENCE = 0.7
DEFAULT_LIMIT = 100

ALL_STATUSES = "all"
STATUS_FILTERS = (ALL_STATUSES, SUSPICIOUS, CONFIRMED_FRAUD, NOT_FRAUD)

STATUS_LABELS = {
    SUSPICIOUS: "Suspicious",
    CONFIRMED_FRAUD: "Confirmed Fraud",
    NOT_FRAUD: "Cleared",
    VERIFICATION_ERROR: "Error",
}

# matches at these levels were already checked against official records
VERIFIED_RISK_LEVELS = ("CRITICAL", "HIGH")


def select_high_confidence_pending(reports: Iterable[FraudReport], threshold: float = HIGH_CONFIDENCE) -> List[FraudReport]:
    return [r for r in reports if r.verification_status == SUSPICIOUS and r.confidence_score >= threshold]


def confidence_band(score: float, high: float = HIGH_CONFIDENCE, medium: float = MEDIUM_CONFIDENCE) -> str:
    if score >= high:
        return "high"
    if score >= medium:
        return "medium"
    return "low"


def needs_manual_check(report: FraudReport) -> bool:
    """Suspicious matches that still need a "dig deeper" verification."""
    return report.verification_status == SUSPICIOUS and report.risk_level not in VERIFIED_RISK_LEVELS


@dataclass(frozen=True)
class ReportFilter:
    status: str = ALL_STATUSES
    min_confidence: float = 0.0

    def __post_init__(self):
        if self.status not in STATUS_FILTERS:
            raise ValidationError(f"Unknown status filter: {self.status}")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValidationError("Minimum confidence must be between 0 and 1")

    def to_params(self, limit: int = DEFAULT_LIMIT) -> Dict:
        params = {"limit": limit}
        if self.status != ALL_STATUSES:
            params["verification_status"] = self.status
        if self.min_confidence > 0:
            params["min_confidence"] = self.min_confidence
        return params


class VerificationCoordinator:
    """Sends a batch of match ids for verification and reports the aggregate outcome.

    The response only carries counts, so nothing is patched per match here;
    callers re-fetch the report list after a successful call.
    """

    def __init__(self, client):
        self.client = client
        self._in_flight = threading.Lock()

    @property
    def is_pending(self) -> bool:
        return self._in_flight.locked()

    def verify(self, ids: Iterable[str]) -> Optional[VerificationResult]:
        """Returns None without sending anything if a batch is already in flight."""
        if isinstance(ids, str):
            raise ValidationError("Expected a collection of match ids, got a single string")
        batch: Tuple[str, ...] = tuple(dict.fromkeys(str(i) for i in ids))
        if not batch:
            raise ValidationError("No matches selected for verification")
        if not self._in_flight.acquire(blocking=False):
            logger.info("Verification already in progress, ignoring request for %d matches", len(batch))
            return None
        try:
            result = self.client.verify_matches(batch)
        finally:
            self._in_flight.release()
        logger.info(
            "Verification complete: %d confirmed fraud, %d cleared, %d errors",
            result.confirmed_fraud,
            result.not_fraud,
            result.errors,
        )
        return result


class ReportView:
    """Last-fetched fraud reports plus the filters they were fetched with."""

    def __init__(self, client, coordinator: Optional[VerificationCoordinator] = None,
                 limit: int = DEFAULT_LIMIT, high_confidence: float = HIGH_CONFIDENCE,
                 report_filter: Optional[ReportFilter] = None):
        self.client = client
        self.coordinator = coordinator or VerificationCoordinator(client)
        self.limit = limit
        self.high_confidence = high_confidence
        self._lock = threading.Lock()
        self._filter = report_filter or ReportFilter()
        self._reports: Tuple[FraudReport, ...] = ()

    @property
    def filter(self) -> ReportFilter:
        return self._filter

    @property
    def reports(self) -> Tuple[FraudReport, ...]:
        return self._reports

    def refresh(self) -> Tuple[FraudReport, ...]:
        current = self._filter
        reports = tuple(self.client.list_fraud_reports(current.to_params(self.limit)))
        with self._lock:
            if self._filter != current:
                logger.debug("Filters changed during fetch, keeping newer results")
                return self._reports
            self._reports = reports
        return reports

    def _set_filter(self, new_filter: ReportFilter) -> Tuple[FraudReport, ...]:
        with self._lock:
            if new_filter == self._filter:
                return self._reports
            self._filter = new_filter
        return self.refresh()

    def set_status_filter(self, status: str) -> Tuple[FraudReport, ...]:
        return self._set_filter(replace(self._filter, status=status))

    def set_min_confidence(self, min_confidence: float) -> Tuple[FraudReport, ...]:
        return self._set_filter(replace(self._filter, min_confidence=float(min_confidence)))

    def verify(self, ids: Sequence[str]) -> Optional[VerificationResult]:
        result = self.coordinator.verify(ids)
        if result is not None:
            # the list is a cache of server state; counts alone cannot update it
            try:
                self.refresh()
            except PropwatchError as e:
                logger.warning("Verification applied but reports could not be reloaded: %s", e)
        return result

    def verify_one(self, report_id: str) -> Optional[VerificationResult]:
        return self.verify([report_id])

    def high_confidence_candidates(self) -> List[FraudReport]:
        return select_high_confidence_pending(self._reports, self.high_confidence)

    def verify_high_confidence(self) -> Optional[VerificationResult]:
        candidates = self.high_confidence_candidates()
        if not candidates:
            logger.info("No high confidence suspicious matches to verify")
            return None
        return self.verify([r.id for r in candidates])
