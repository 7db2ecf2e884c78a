"""Shared fixtures for job lifecycle tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import os
import random
import unittest

from app.adapters.archive import InMemoryArchive
from app.adapters.backend import FakeTranscriptionGateway
from app.adapters.notify import RecordingNotifier
from app.core.config import Settings, get_settings
from app.repositories.base import JobStore
from app.repositories.memory import InMemoryStore
from app.schemas.backend import BackendReport
from app.services.reconciliation import ReconciliationHandler
from app.services.submission import SubmissionService
from app.services.sweep import ReconciliationSweep
from app.services.transitions import TransitionEngine

START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@dataclass
class RecordedTimer:
    delay_s: float
    callback: Callable[[], None]
    started: bool = False

    def start(self) -> None:
        self.started = True

    def fire(self) -> None:
        self.callback()


class RecordingTimerFactory:
    def __init__(self) -> None:
        self.timers: list[RecordedTimer] = []

    def __call__(self, delay_s: float, callback: Callable[[], None]) -> RecordedTimer:
        timer = RecordedTimer(delay_s=delay_s, callback=callback)
        self.timers.append(timer)
        return timer


def make_settings(**overrides) -> Settings:
    values = {
        "api_token": "test-api-token",
        "backend_provider": "fake",
        "retry_timers_enabled": False,
        "retry_jitter_seconds": 0.0,
        "media_base_url": "https://media.example.test/uploads",
        "public_webhook_url": "https://api.example.test/api/v1/webhooks/transcription",
    }
    values.update(overrides)
    return Settings(**values)


class Harness:
    """Wires a store, engine and services against fakes sharing one clock."""

    def __init__(
        self,
        *,
        store: JobStore | None = None,
        clock: FakeClock | None = None,
        timer_factory: RecordingTimerFactory | None = None,
        notifier: RecordingNotifier | None = None,
        gateway: FakeTranscriptionGateway | None = None,
        **setting_overrides,
    ) -> None:
        self.clock = clock or FakeClock()
        self.store = store or InMemoryStore(clock=self.clock)
        self.settings = make_settings(**setting_overrides)
        self.gateway = gateway or FakeTranscriptionGateway()
        self.notifier = notifier or RecordingNotifier()
        self.archive = InMemoryArchive()
        self.engine = TransitionEngine(self.store, clock=self.clock, lease_seconds=self.settings.lease_seconds)
        self.submission = SubmissionService(
            self.engine,
            self.gateway,
            self.notifier,
            self.settings,
            rng=random.Random(7),
            timer_factory=timer_factory,
        )
        self.reconciliation = ReconciliationHandler(self.engine, self.gateway, self.notifier, self.archive)
        self.sweep = ReconciliationSweep(
            self.engine,
            self.submission,
            self.reconciliation,
            stuck_after_s=self.settings.stuck_processing_after_seconds,
            abandon_after_s=self.settings.abandon_processing_after_seconds,
            stranded_after_s=self.settings.lease_seconds,
        )

    def processing_job(self, external_job_id: str = "ext-1", media_ref: str = "a.mp3"):
        self.gateway.queue_submit(external_job_id)
        return self.submission.create_job(media_ref=media_ref, filename=media_ref, file_size=1024)


def completed_report(external_job_id: str = "ext-1", text: str = "hello world", **extra) -> BackendReport:
    payload = {
        "job_id": external_job_id,
        "status": "completed",
        "transcript": text,
        "segments": [
            {"start": 0.0, "end": 1.5, "text": "hello", "speaker": "A"},
            {"start": 1.5, "end": 3.25, "text": "world", "speaker": "B"},
        ],
        "summary": "A greeting.",
    }
    payload.update(extra)
    return BackendReport.model_validate(payload)


def failed_report(external_job_id: str = "ext-1", error: str | None = "audio decode failed") -> BackendReport:
    return BackendReport.model_validate({"job_id": external_job_id, "status": "failed", "error": error})


class SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "TRANSCRIBE_API_TOKEN",
        "TRANSCRIBE_WEBHOOK_SECRET",
        "TRANSCRIBE_BACKEND_PROVIDER",
        "TRANSCRIBE_RETRY_TIMERS_ENABLED",
        "TRANSCRIBE_SWEEP_ENABLED",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["TRANSCRIBE_API_TOKEN"] = "test-api-token"
        os.environ.pop("TRANSCRIBE_WEBHOOK_SECRET", None)
        os.environ["TRANSCRIBE_BACKEND_PROVIDER"] = "fake"
        os.environ["TRANSCRIBE_RETRY_TIMERS_ENABLED"] = "false"
        os.environ["TRANSCRIBE_SWEEP_ENABLED"] = "false"
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()
