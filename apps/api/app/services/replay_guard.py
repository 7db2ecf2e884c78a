"""Timestamp window admission filter for inbound backend notifications."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError

from app.errors import WebhookRejected
from app.services.transitions import utc_now

logger = logging.getLogger(__name__)

REPLAY_WINDOW_SECONDS = 300.0
TIMESTAMP_HEADER = "x-webhook-timestamp"
_TIMESTAMP_FIELDS = ("timestamp", "created_at")
_datetime_adapter = TypeAdapter(datetime)


class ReplayGuard:
    """Rejects notifications whose timestamp is outside ``window_seconds`` of now.

    Never touches job state. Notifications that carry no timestamp at all are
    admitted; unparseable timestamps are rejected as malformed.
    """

    def __init__(
        self,
        window_seconds: float = REPLAY_WINDOW_SECONDS,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock

    @staticmethod
    def extract_timestamp(payload: Mapping[str, Any], headers: Mapping[str, str]) -> datetime | None:
        raw = next((payload[name] for name in _TIMESTAMP_FIELDS if payload.get(name)), None)
        if raw is None:
            raw = headers.get(TIMESTAMP_HEADER)
        if raw is None or raw == "":
            return None
        try:
            parsed = _datetime_adapter.validate_python(raw)
        except ValidationError as exc:
            raise WebhookRejected("malformed", details={"field": "timestamp"}) from exc
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)

    def check(self, timestamp: datetime | None) -> None:
        if timestamp is None:
            return
        age_seconds = abs((self._clock() - timestamp).total_seconds())
        if age_seconds > self.window_seconds:
            logger.warning(
                "webhook.rejected reason=stale age_s=%.1f window_s=%.1f",
                age_seconds,
                self.window_seconds,
            )
            raise WebhookRejected("stale", details={"max_age_seconds": self.window_seconds})

    def admit(self, payload: Mapping[str, Any], headers: Mapping[str, str]) -> None:
        self.check(self.extract_timestamp(payload, headers))
