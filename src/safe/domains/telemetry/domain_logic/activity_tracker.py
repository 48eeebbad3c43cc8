"""Activity session tracking.

Turns a stream of activity classifications into non-overlapping intervals.
The open interval for a device is always read back from storage; nothing is
cached between requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from safe.core.storage.models import ACTIVITY_TYPES, ActivityInterval
from safe.core.storage.repository import PersistenceError, TelemetryRepository
from safe.domains.telemetry.errors import ValidationError

logger = logging.getLogger(__name__)

SessionOutcome = Literal["started", "continued", "changed"]


@dataclass
class SessionUpdate:
    """Result of feeding one classification into the tracker."""

    outcome: SessionOutcome
    current: ActivityInterval
    previous: ActivityInterval | None = None  # set only when outcome == "changed"

    @property
    def message(self) -> str:
        return {
            "started": "New activity started",
            "continued": "Activity continues",
            "changed": "Activity changed successfully",
        }[self.outcome]

    def as_dict(self) -> dict:
        if self.outcome == "started":
            return {"activity_type": self.current.activity_type, "id": self.current.id}
        if self.outcome == "continued":
            return {"current_activity": self.current.activity_type, "id": self.current.id}
        return {
            "previous_activity": self.previous.activity_type,
            "new_activity": self.current.activity_type,
            "new_id": self.current.id,
            "previous_duration_seconds": self.previous.duration_seconds,
        }


class ActivitySessionTracker:
    """Opens and closes activity intervals for a device.

    Usage::

        tracker = ActivitySessionTracker(repository)
        update = tracker.observe("SAFE-001", "walking", 0.82)
        update.outcome  # 'started' | 'continued' | 'changed'
    """

    def __init__(self, repository: TelemetryRepository) -> None:
        self._repo = repository

    def observe(
        self,
        device_id: str,
        activity_type: str,
        confidence: float,
        *,
        now: datetime | None = None,
    ) -> SessionUpdate:
        """Decide whether a classification continues the open session or starts a new one.

        Args:
            device_id: Device reporting the classification.
            activity_type: One of ``ACTIVITY_TYPES``.
            confidence: Classifier confidence, 0-1.
            now: Server time of the observation. Defaults to the repository clock.

        Raises:
            ValidationError: If ``activity_type`` is not recognised.
            PersistenceError: On storage failure, or if another request closed
                the open interval between the read and the close.
        """
        if activity_type not in ACTIVITY_TYPES:
            raise ValidationError("Invalid activity type")

        now = now or self._repo.now()

        with self._repo.transaction():
            current = self._repo.get_open_activity_interval(device_id)

            if current is None:
                opened = self._repo.open_activity_interval(device_id, activity_type, confidence, now)
                logger.info("Device %s started activity %s", device_id, activity_type)
                return SessionUpdate(outcome="started", current=opened)

            # Confidence of the open interval is left as first observed.
            if current.activity_type == activity_type:
                return SessionUpdate(outcome="continued", current=current)

            closed = self._repo.close_activity_interval(current.id, now)
            if closed is None:
                raise PersistenceError(
                    f"Activity interval {current.id} for {device_id} was closed concurrently"
                )
            opened = self._repo.open_activity_interval(device_id, activity_type, confidence, now)

        logger.info(
            "Device %s activity changed %s -> %s after %ss",
            device_id,
            closed.activity_type,
            activity_type,
            closed.duration_seconds,
        )
        return SessionUpdate(outcome="changed", current=opened, previous=closed)
