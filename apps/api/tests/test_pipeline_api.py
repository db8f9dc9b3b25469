"""HTTP API tests: ingest, polling, worker re-entry and deletion."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
import tempfile
import unittest

from fastapi.testclient import TestClient

from vidsum.core.config import get_settings
from vidsum.core.context import PipelineContext, build_context
from vidsum.main import create_app
from vidsum.schemas.job import PipelineStep, QueueMessage
from vidsum.services.dispatcher import Dispatcher

YOUTUBE_URL = "https://www.youtube.com/watch?v=demo123"
WORKER_HEADERS = {"X-Worker-Secret": "test-worker-secret"}


class RecordingDispatcher(Dispatcher):
    def __init__(self) -> None:
        self.messages: list[QueueMessage] = []

    async def enqueue(self, message: QueueMessage, delay_seconds: float = 0) -> str:
        self.messages.append(message)
        return f"dispatch-{len(self.messages)}"


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "VIDSUM_PROVIDER",
        "VIDSUM_STORAGE_DIR",
        "VIDSUM_WORKER_SECRET",
        "VIDSUM_DISPATCH_MODE",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        self._tmp = tempfile.TemporaryDirectory()
        os.environ["VIDSUM_PROVIDER"] = "mock"
        os.environ["VIDSUM_STORAGE_DIR"] = self._tmp.name
        os.environ["VIDSUM_WORKER_SECRET"] = "test-worker-secret"
        os.environ["VIDSUM_DISPATCH_MODE"] = "local"
        get_settings.cache_clear()

        self.dispatcher = RecordingDispatcher()
        self.context: PipelineContext = build_context(get_settings(), dispatcher=self.dispatcher)
        self.client = TestClient(create_app(context=self.context))

    def tearDown(self) -> None:
        asyncio.run(self.context.aclose())
        self._tmp.cleanup()
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()

    def ingest(self, url: str = YOUTUBE_URL) -> str:
        response = self.client.post("/ingest", json={"url": url})
        self.assertEqual(response.status_code, 200)
        return response.json()["jobId"]

    def run_worker_until_idle(self) -> None:
        """Feed every scheduled message back through the worker endpoint."""
        delivered = 0
        while delivered < len(self.dispatcher.messages):
            message = self.dispatcher.messages[delivered]
            delivered += 1
            response = self.client.post(
                "/worker",
                headers=WORKER_HEADERS,
                json=message.model_dump(mode="json", by_alias=True, exclude_none=True),
            )
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json(), {"success": True})


class IngestApiTests(_SettingsEnvCase):
    def test_ingest_creates_queued_job_and_schedules_transcription(self) -> None:
        response = self.client.post("/ingest", json={"url": YOUTUBE_URL})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "queued")
        self.assertEqual(len(self.dispatcher.messages), 1)
        message = self.dispatcher.messages[0]
        self.assertEqual(
            (message.job_id, message.step, message.url, message.retry_count),
            (payload["jobId"], PipelineStep.TRANSCRIPTION, YOUTUBE_URL, 0),
        )

    def test_invalid_url_is_rejected_without_creating_a_job(self) -> None:
        for body in ({"url": "not-a-url"}, {"url": ""}, {}, {"url": 42}):
            with self.subTest(body=body):
                response = self.client.post("/ingest", json=body)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json(), {"error": "Valid URL is required", "code": "VALIDATION_ERROR"})

        self.assertEqual(self.dispatcher.messages, [])
        self.assertFalse((Path(self._tmp.name) / "jobs").exists())


class StatusApiTests(_SettingsEnvCase):
    def test_queued_job_status(self) -> None:
        job_id = self.ingest()

        response = self.client.get("/status", params={"jobId": job_id})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["jobId"], job_id)
        self.assertEqual(payload["status"], "queued")
        self.assertEqual(payload["progress"], 0)
        self.assertEqual(payload["currentStep"], "In queue")
        self.assertEqual(payload["estimatedTimeRemaining"], 300_000)
        self.assertNotIn("error", payload)
        self.assertEqual(
            [(s["step"], s["status"]) for s in payload["steps"]],
            [
                ("Transcription", "pending"),
                ("Keyframe Extraction", "pending"),
                ("Visual Analysis", "pending"),
                ("AI Summarization", "pending"),
            ],
        )

    def test_missing_and_unknown_job_ids(self) -> None:
        missing = self.client.get("/status")
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json(), {"error": "Job ID is required", "code": "VALIDATION_ERROR"})

        unknown = self.client.get("/status", params={"jobId": "job-missing"})
        self.assertEqual(unknown.status_code, 404)
        self.assertEqual(unknown.json(), {"error": "Job not found", "code": "NOT_FOUND"})

    def test_failed_job_reports_error_without_estimate(self) -> None:
        job_id = self.ingest()
        asyncio.run(self.context.jobs.mark_error(job_id, "Failed in step transcription: boom"))

        payload = self.client.get("/status", params={"jobId": job_id}).json()

        self.assertEqual(payload["status"], "error")
        self.assertEqual(payload["progress"], 0)
        self.assertEqual(payload["currentStep"], "Error occurred")
        self.assertEqual(payload["error"], "Failed in step transcription: boom")
        self.assertNotIn("estimatedTimeRemaining", payload)


class SummaryApiTests(_SettingsEnvCase):
    def test_summary_before_completion_is_accepted_not_ready(self) -> None:
        job_id = self.ingest()

        response = self.client.get("/summary", params={"jobId": job_id})

        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json(), {"summary": None, "error": "Job not complete. Current status: queued"})

    def test_summary_mid_pipeline(self) -> None:
        job_id = self.ingest()
        first = self.dispatcher.messages[0]
        self.client.post("/worker", headers=WORKER_HEADERS, json=first.model_dump(mode="json", by_alias=True))

        response = self.client.get("/summary", params={"jobId": job_id})

        self.assertEqual(response.status_code, 202)
        self.assertIsNone(response.json()["summary"])
        self.assertEqual(response.json()["error"], "Job not complete. Current status: processing")

    def test_unknown_job_and_missing_summary(self) -> None:
        self.assertEqual(self.client.get("/summary", params={"jobId": "job-missing"}).status_code, 404)

        job_id = self.ingest()
        self.run_worker_until_idle()
        asyncio.run(self.context.store.delete("summaries", f"{job_id}.json"))

        response = self.client.get("/summary", params={"jobId": job_id})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"summary": None, "error": "Summary not found"})


class EndToEndApiTests(_SettingsEnvCase):
    def test_youtube_video_is_processed_to_a_summary(self) -> None:
        job_id = self.ingest()

        self.run_worker_until_idle()

        status_payload = self.client.get("/status", params={"jobId": job_id}).json()
        self.assertEqual(status_payload["status"], "done")
        self.assertEqual(status_payload["progress"], 100)
        self.assertEqual(status_payload["currentStep"], "Complete")
        self.assertEqual(status_payload["estimatedTimeRemaining"], 0)
        self.assertTrue(all(step["status"] == "completed" for step in status_payload["steps"]))
        self.assertTrue(all("startTime" in step and "endTime" in step for step in status_payload["steps"]))

        response = self.client.get("/summary", params={"jobId": job_id})
        self.assertEqual(response.status_code, 200)
        summary = response.json()["summary"]
        self.assertEqual(summary["job_id"], job_id)
        self.assertTrue(summary["tldr"])
        self.assertEqual(len(summary["chapters"]), 2)
        self.assertEqual(summary["sources"]["transcript_provider"], "Mock Captions")


class WorkerApiTests(_SettingsEnvCase):
    def test_invalid_message_format(self) -> None:
        bodies = (
            {"jobId": "job-1"},
            {"jobId": "", "step": "vision"},
            {"jobId": "job-1", "step": "rendering"},
            {"jobId": "job-1", "step": "vision", "retryCount": -1},
        )
        for body in bodies:
            with self.subTest(body=body):
                response = self.client.post("/worker", headers=WORKER_HEADERS, json=body)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json(), {"error": "Invalid message format", "code": "VALIDATION_ERROR"})

    def test_worker_secret_is_required(self) -> None:
        body = {"jobId": "job-1", "step": "vision"}
        for headers in ({}, {"X-Worker-Secret": "wrong"}):
            with self.subTest(headers=headers):
                response = self.client.post("/worker", headers=headers, json=body)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.json()["code"], "UNAUTHORIZED")

    def test_message_for_unknown_job_is_acknowledged(self) -> None:
        response = self.client.post(
            "/worker",
            headers=WORKER_HEADERS,
            json={"jobId": "job-missing", "step": "summarization"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.dispatcher.messages, [])


class JobLifecycleApiTests(_SettingsEnvCase):
    def test_delete_job_removes_artifacts(self) -> None:
        job_id = self.ingest()
        self.run_worker_until_idle()

        response = self.client.delete("/job", params={"jobId": job_id})

        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get("/status", params={"jobId": job_id}).status_code, 404)
        self.assertIsNone(asyncio.run(self.context.artifacts.get_transcript(job_id)))
        self.assertEqual(self.client.delete("/job", params={"jobId": job_id}).status_code, 404)

    def test_health_reports_storage_mode(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "storage": "local"})


if __name__ == "__main__":
    unittest.main()
