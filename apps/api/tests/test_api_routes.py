"""HTTP surface tests for job, webhook and maintenance endpoints."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
import time
import unittest

from fastapi.testclient import TestClient
from job_test_support import SettingsEnvCase, completed_report, make_settings

from app.adapters.archive import InMemoryArchive
from app.adapters.backend import FakeTranscriptionGateway, HttpTranscriptionGateway
from app.adapters.notify import LoggingNotifier, RecordingNotifier
from app.domain.errors import PollError, SubmissionError
from app.main import create_app
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStatus

AUTH = {"Authorization": "Bearer test-api-token"}


class _ApiCase(SettingsEnvCase):
    settings_overrides: dict = {}

    def setUp(self) -> None:
        super().setUp()
        self.store = InMemoryStore()
        self.gateway = FakeTranscriptionGateway()
        self.notifier = RecordingNotifier()
        self.archive = InMemoryArchive()
        self.app = create_app(
            settings=make_settings(**self.settings_overrides),
            store=self.store,
            gateway=self.gateway,
            notifier=self.notifier,
            archive=self.archive,
        )
        self.client = TestClient(self.app)

    def _create_job(self, external_job_id: str = "ext-1") -> dict:
        self.gateway.queue_submit(external_job_id)
        response = self.client.post(
            "/api/v1/jobs",
            headers=AUTH,
            json={"media_ref": "media/a.mp3", "filename": "a.mp3", "file_size": 2048},
        )
        self.assertEqual(response.status_code, 201)
        return response.json()


class AppWiringTests(SettingsEnvCase):
    def test_default_app_builds_from_environment(self) -> None:
        app = create_app()

        self.assertIsInstance(app.state.store, InMemoryStore)
        self.assertIsInstance(app.state.gateway, FakeTranscriptionGateway)
        self.assertIsInstance(app.state.notifier, LoggingNotifier)
        self.assertIsInstance(app.state.archive, InMemoryArchive)

    def test_http_backend_provider_builds_http_gateway(self) -> None:
        app = create_app(settings=make_settings(backend_provider="http", backend_api_key="k"))
        self.assertIsInstance(app.state.gateway, HttpTranscriptionGateway)

    def test_health(self) -> None:
        response = TestClient(create_app()).get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_openapi_lists_paths_and_contract_codes(self) -> None:
        schema = TestClient(create_app()).get("/openapi.json").json()

        for path in (
            "/api/v1/jobs",
            "/api/v1/jobs/{jobId}",
            "/api/v1/jobs/{jobId}/poll",
            "/api/v1/webhooks/transcription",
            "/api/v1/internal/sweep",
        ):
            self.assertIn(path, schema["paths"])
        webhook_codes = set(schema["paths"]["/api/v1/webhooks/transcription"]["post"]["responses"])
        self.assertEqual(webhook_codes, {"200", "400", "401", "404"})

    def test_unset_api_token_rejects_every_caller(self) -> None:
        client = TestClient(create_app(settings=make_settings(api_token=None)))

        response = client.get("/api/v1/jobs", headers=AUTH)

        self.assertEqual(response.status_code, 401)


class JobRouteTests(_ApiCase):
    def test_requests_without_valid_token_are_rejected(self) -> None:
        for headers in ({}, {"Authorization": "Bearer wrong"}, {"Authorization": "Basic dGVzdA=="}):
            with self.subTest(headers=headers):
                response = self.client.get("/api/v1/jobs", headers=headers)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["code"], "UNAUTHORIZED")

    def test_create_job_submits_to_backend(self) -> None:
        job = self._create_job("ext-1")

        self.assertEqual(job["status"], "processing")
        self.assertEqual(job["external_job_id"], "ext-1")
        self.assertEqual(job["filename"], "a.mp3")
        self.assertEqual(
            self.gateway.submissions[0].media_url,
            "https://media.example.test/uploads/media/a.mp3",
        )
        self.assertEqual(
            self.gateway.submissions[0].webhook_url,
            "https://api.example.test/api/v1/webhooks/transcription",
        )
        self.assertEqual([event.event_type for event in self.notifier.events], ["created"])

    def test_create_job_with_transient_failure_returns_retry(self) -> None:
        self.gateway.queue_submit(SubmissionError.from_status(503))

        response = self.client.post("/api/v1/jobs", headers=AUTH, json={"media_ref": "a.mp3"})

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["status"], "retry")
        self.assertEqual(body["retry_count"], 0)
        self.assertEqual(body["error_message"], "Retrying in 5 seconds (attempt 1/3)")
        self.assertIsNotNone(body["next_retry_at"])

    def test_deferred_job_stays_uploaded(self) -> None:
        response = self.client.post(
            "/api/v1/jobs",
            headers=AUTH,
            json={"media_ref": "a.mp3", "defer_submission": True},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["status"], "uploaded")
        self.assertEqual(self.gateway.submissions, [])

    def test_create_job_validates_payload(self) -> None:
        response = self.client.post("/api/v1/jobs", headers=AUTH, json={"media_ref": ""})
        self.assertEqual(response.status_code, 422)

    def test_list_jobs_newest_first(self) -> None:
        first = self._create_job("ext-1")
        time.sleep(0.002)
        second = self._create_job("ext-2")

        response = self.client.get("/api/v1/jobs", headers=AUTH, params={"limit": 10})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["id"] for item in response.json()["items"]], [second["id"], first["id"]])

    def test_get_unknown_job_does_not_leak(self) -> None:
        response = self.client.get("/api/v1/jobs/missing", headers=AUTH)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"code": "RESOURCE_NOT_FOUND", "message": "Resource not found"})

    def test_get_processing_job_polls_backend(self) -> None:
        job = self._create_job("ext-1")
        self.gateway.set_report("ext-1", completed_report("ext-1", text="hello"))

        response = self.client.get(f"/api/v1/jobs/{job['id']}", headers=AUTH)

        body = response.json()
        self.assertEqual(body["status"], "completed")
        self.assertEqual(body["result"]["text"], "hello")
        self.assertIsNotNone(body["completed_at"])

    def test_get_processing_job_survives_poll_failure(self) -> None:
        job = self._create_job("ext-1")
        self.gateway.set_report("ext-1", PollError("down"))

        response = self.client.get(f"/api/v1/jobs/{job['id']}", headers=AUTH)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "processing")

    def test_explicit_poll_reports_outcome(self) -> None:
        job = self._create_job("ext-1")

        still = self.client.post(f"/api/v1/jobs/{job['id']}/poll", headers=AUTH).json()
        self.gateway.set_report("ext-1", completed_report("ext-1"))
        done = self.client.post(f"/api/v1/jobs/{job['id']}/poll", headers=AUTH).json()
        again = self.client.post(f"/api/v1/jobs/{job['id']}/poll", headers=AUTH).json()

        self.assertEqual((still["applied"], still["detail"]), (False, "still_processing"))
        self.assertEqual((done["applied"], done["job"]["status"]), (True, "completed"))
        self.assertEqual((again["applied"], again["detail"]), (False, "not_processing"))
        self.assertEqual(len(self.notifier.events_of("completed")), 1)


class WebhookRouteTests(_ApiCase):
    def _post(self, payload, **headers):
        return self.client.post("/api/v1/webhooks/transcription", json=payload, headers=headers)

    def test_completion_webhook_completes_job(self) -> None:
        job = self._create_job("ext-1")

        response = self._post(
            {
                "job_id": "ext-1",
                "status": "completed",
                "transcript": "hello",
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"success": True, "job_id": job["id"], "applied": True, "current_status": "completed"},
        )
        stored = self.store.get_job(job["id"])
        self.assertEqual(stored.status, JobStatus.COMPLETED)
        self.assertEqual(stored.result.text, "hello")

    def test_duplicate_webhook_is_acknowledged_without_reapplying(self) -> None:
        self._create_job("ext-1")
        payload = {"job_id": "ext-1", "status": "completed", "transcript": "hello"}

        self._post(payload)
        response = self._post(payload)

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["applied"])
        self.assertEqual(len(self.notifier.events_of("completed")), 1)

    def test_stale_webhook_is_rejected_and_changes_nothing(self) -> None:
        job = self._create_job("ext-1")
        stale = (datetime.now(UTC) - timedelta(minutes=6)).isoformat()

        response = self._post({"job_id": "ext-1", "status": "completed", "transcript": "x", "timestamp": stale})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "WEBHOOK_EXPIRED")
        self.assertEqual(self.store.get_job(job["id"]).status, JobStatus.PROCESSING)

    def test_stale_header_timestamp_is_rejected(self) -> None:
        self._create_job("ext-1")
        stale = (datetime.now(UTC) - timedelta(hours=1)).isoformat()

        response = self._post({"job_id": "ext-1", "status": "failed"}, **{"X-Webhook-Timestamp": stale})

        self.assertEqual(response.status_code, 401)

    def test_unknown_job_is_not_found(self) -> None:
        response = self._post({"job_id": "ext-nope", "status": "completed", "transcript": "x"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "RESOURCE_NOT_FOUND")

    def test_malformed_bodies_are_rejected(self) -> None:
        invalid_json = self.client.post(
            "/api/v1/webhooks/transcription",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        missing_id = self._post({"status": "completed"})

        for response in (invalid_json, missing_id):
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["code"], "WEBHOOK_MALFORMED")


class WebhookSecretRouteTests(_ApiCase):
    settings_overrides = {"webhook_secret": "whsec-test"}

    def test_missing_or_wrong_secret_is_rejected(self) -> None:
        self._create_job("ext-1")
        payload = {"job_id": "ext-1", "status": "completed", "transcript": "x"}

        for headers in ({}, {"X-Webhook-Secret": "wrong"}):
            with self.subTest(headers=headers):
                response = self.client.post("/api/v1/webhooks/transcription", json=payload, headers=headers)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["code"], "UNAUTHORIZED")

    def test_matching_secret_is_admitted(self) -> None:
        self._create_job("ext-1")

        response = self.client.post(
            "/api/v1/webhooks/transcription",
            json={"job_id": "ext-1", "status": "completed", "transcript": "x"},
            headers={"X-Webhook-Secret": "whsec-test"},
        )

        self.assertEqual(response.status_code, 200)


class SweepRouteTests(_ApiCase):
    settings_overrides = {"stuck_processing_after_seconds": 0}

    def test_sweep_requires_token(self) -> None:
        self.assertEqual(self.client.post("/api/v1/internal/sweep").status_code, 401)

    def test_sweep_reconciles_stuck_jobs(self) -> None:
        job = self._create_job("ext-1")
        self.gateway.set_report("ext-1", completed_report("ext-1"))

        response = self.client.post("/api/v1/internal/sweep", headers=AUTH)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["message"], "Checked 1 jobs")
        self.assertEqual(
            body["results"],
            [{"job_id": job["id"], "action": "completed", "status": "completed", "detail": None}],
        )


class BackgroundSweepTests(_ApiCase):
    settings_overrides = {
        "stuck_processing_after_seconds": 0,
        "sweep_enabled": True,
        "sweep_interval_seconds": 0.05,
    }

    def test_lifespan_sweep_loop_reconciles_jobs(self) -> None:
        with TestClient(self.app) as client:
            self.client = client
            job = self._create_job("ext-1")
            self.gateway.set_report("ext-1", completed_report("ext-1"))

            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                if self.store.get_job(job["id"]).status is JobStatus.COMPLETED:
                    break
                time.sleep(0.02)

        self.assertEqual(self.store.get_job(job["id"]).status, JobStatus.COMPLETED)
        self.assertEqual(len(self.notifier.events_of("completed")), 1)


if __name__ == "__main__":
    unittest.main()
