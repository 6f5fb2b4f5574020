"""Notification dispatcher port.

The core never talks to a delivery transport directly. It receives a
``NotificationDispatcher`` and emits events fire-and-forget; callers wrap
every ``notify`` in ``run_best_effort``.
"""

import enum
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class NotificationEvent(str, enum.Enum):
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    CARE_TEAM_ASSIGNED = "care_team_assigned"


class NotificationDispatcher(Protocol):
    """Delivers an event to a user. Return value is never consumed."""

    async def notify(self, event_kind: str, recipient_id: str, payload: dict[str, Any]) -> None: ...


class LoggingNotificationDispatcher:
    """Dispatcher that only writes a structured log line.

    Used when no delivery transport is wired in.
    """

    async def notify(self, event_kind: str, recipient_id: str, payload: dict[str, Any]) -> None:
        logger.info(
            "Notification %s for %s",
            event_kind,
            recipient_id,
            extra={"event_kind": event_kind, "recipient_id": recipient_id, "payload": payload},
        )
