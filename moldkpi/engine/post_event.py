"""
Post-Event Rate Detector — Defect Rate of Production Following Downtime.

A single pass over the time-ordered document stream (all molds) classifies
each document as downtime, production or neither and keeps the production
documents that come strictly after the most recent downtime document. Only
after the scan are the candidates narrowed to the selected mold, so the
downtime anchor can come from any mold on the machine.

State model:
    NORMAL              no downtime seen yet
    FOLLOWING_DOWNTIME  entered on the first downtime document; a later
                        downtime document only moves the anchor
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Optional

import structlog

from moldkpi.engine.normalize import filter_by_mold, is_valid_count
from moldkpi.models.enums import DetectorState, StatusClass
from moldkpi.models.telemetry import TelemetryDocument

logger = structlog.get_logger()

DOWNTIME_KEYWORDS = ("DOWNTIME", "DOWN", "MAINTENANCE", "STOP", "OFF", "0", "STOPPED")
PRODUCTION_KEYWORDS = ("PRODUCTION", "RUN", "RUNNING", "ACTIVE", "ON", "1", "PRODUCING")


class StatusClassifier(ABC):
    """Strategy that classifies a status indicator text."""

    @abstractmethod
    def classify(self, text: Optional[str]) -> StatusClass:
        """Classify a status text as downtime, production or unknown."""
        pass


class KeywordStatusClassifier(StatusClassifier):
    """
    Case-insensitive substring match against keyword sets.

    Downtime keywords win when a text matches both sets.
    """

    def __init__(
        self,
        downtime_keywords: Sequence[str] = DOWNTIME_KEYWORDS,
        production_keywords: Sequence[str] = PRODUCTION_KEYWORDS,
    ):
        self.downtime_keywords = tuple(k.upper() for k in downtime_keywords)
        self.production_keywords = tuple(k.upper() for k in production_keywords)

    def classify(self, text: Optional[str]) -> StatusClass:
        value = (text or "").upper()
        if not value:
            return StatusClass.UNKNOWN
        if any(keyword in value for keyword in self.downtime_keywords):
            return StatusClass.DOWNTIME
        if any(keyword in value for keyword in self.production_keywords):
            return StatusClass.PRODUCTION
        return StatusClass.UNKNOWN


class PostEventDetector:
    """
    Computes the post-downtime defect rate of a mold.

    Attributes:
        classifier: Status classification strategy

    Example:
        >>> detector = PostEventDetector()
        >>> detector.defect_rate(machine_docs, "TRAY-A")
        1.25
    """

    def __init__(self, classifier: Optional[StatusClassifier] = None):
        self.classifier = classifier or KeywordStatusClassifier()

    def classify(self, document: TelemetryDocument) -> StatusClass:
        """Classify a document, falling back to its unit count."""
        status = self.classifier.classify(document.status_indicator)
        if status is StatusClass.UNKNOWN and (document.units_produced or 0) > 0:
            return StatusClass.PRODUCTION
        return status

    def scan(self, documents: Iterable[TelemetryDocument]) -> list[TelemetryDocument]:
        """
        Production documents that strictly follow a downtime document.

        Args:
            documents: Machine documents of any mold; undated ones are dropped

        Returns:
            Candidate documents in time order
        """
        ordered = sorted(
            (document for document in documents if document.timestamp is not None),
            key=lambda document: document.timestamp,
        )

        state = DetectorState.NORMAL
        anchor = -1
        candidates = []
        for index, document in enumerate(ordered):
            status = self.classify(document)
            if status is StatusClass.DOWNTIME:
                state = DetectorState.FOLLOWING_DOWNTIME
                anchor = index
            elif (
                status is StatusClass.PRODUCTION
                and state is DetectorState.FOLLOWING_DOWNTIME
                and index > anchor
            ):
                candidates.append(document)

        logger.debug(
            "post_event_scan_complete",
            dated_documents=len(ordered),
            candidates=len(candidates),
            last_downtime_index=anchor,
        )
        return candidates

    def defect_rate(self, documents: Iterable[TelemetryDocument], mold: str) -> float:
        """
        Defect rate over post-downtime production of one mold.

        Returns:
            ``sum(defects) / sum(units) * 100`` rounded to 2 decimals, or 0
        """
        candidates = filter_by_mold(self.scan(documents), mold)

        rejections = sum(
            d.rejection_count for d in candidates if is_valid_count(d.rejection_count)
        )
        units = sum(d.units_produced for d in candidates if is_valid_count(d.units_produced))

        rate = round(rejections / units * 100, 2) if units > 0 else 0.0

        logger.debug(
            "post_event_defect_rate",
            mold=mold,
            candidates=len(candidates),
            rejections=rejections,
            units=units,
            rate=rate,
        )
        return rate
