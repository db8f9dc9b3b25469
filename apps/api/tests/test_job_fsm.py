"""Job status transition tests."""

from __future__ import annotations

import tempfile
import unittest

from vidsum.core.config import Settings
from vidsum.domain.job_fsm import allowed_next_statuses, ensure_transition, is_terminal
from vidsum.errors import ApiError
from vidsum.repositories.artifact_store import ArtifactStore
from vidsum.repositories.jobs import JobRepository
from vidsum.schemas.job import JobStatus, PipelineStep, StepStatus


class JobFsmUnitTests(unittest.TestCase):
    def test_allowed_transition_examples_across_lifecycle(self) -> None:
        allowed_pairs = [
            (JobStatus.QUEUED, JobStatus.PROCESSING),
            (JobStatus.QUEUED, JobStatus.ERROR),
            (JobStatus.PROCESSING, JobStatus.PROCESSING),
            (JobStatus.PROCESSING, JobStatus.SUMMARIZING),
            (JobStatus.PROCESSING, JobStatus.ERROR),
            (JobStatus.SUMMARIZING, JobStatus.SUMMARIZING),
            (JobStatus.SUMMARIZING, JobStatus.DONE),
            (JobStatus.SUMMARIZING, JobStatus.ERROR),
        ]
        for old_status, new_status in allowed_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                ensure_transition(old_status, new_status)

    def test_forbidden_transitions_are_rejected(self) -> None:
        invalid_pairs = [
            (JobStatus.QUEUED, JobStatus.SUMMARIZING),
            (JobStatus.QUEUED, JobStatus.DONE),
            (JobStatus.PROCESSING, JobStatus.DONE),
            (JobStatus.SUMMARIZING, JobStatus.PROCESSING),
        ]
        for old_status, new_status in invalid_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                with self.assertRaises(ApiError) as context:
                    ensure_transition(old_status, new_status)
                self.assertEqual(context.exception.status_code, 409)
                self.assertEqual(context.exception.code, "FSM_TRANSITION_INVALID")

    def test_terminal_states_are_immutable(self) -> None:
        for terminal_status in (JobStatus.DONE, JobStatus.ERROR):
            with self.subTest(terminal_status=terminal_status):
                self.assertTrue(is_terminal(terminal_status))
                self.assertEqual(allowed_next_statuses(terminal_status), [])
                with self.assertRaises(ApiError) as context:
                    ensure_transition(terminal_status, JobStatus.PROCESSING)
                self.assertEqual(context.exception.code, "FSM_TERMINAL_IMMUTABLE")

    def test_allowed_next_statuses_are_sorted(self) -> None:
        self.assertEqual(
            allowed_next_statuses(JobStatus.PROCESSING),
            [JobStatus.ERROR, JobStatus.PROCESSING, JobStatus.SUMMARIZING],
        )


class JobRepositoryTransitionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = ArtifactStore(Settings(provider="mock", storage_dir=self._tmp.name))
        self.jobs = JobRepository(self.store)

    async def asyncTearDown(self) -> None:
        await self.store.aclose()
        self._tmp.cleanup()

    async def test_update_status_applies_valid_transition(self) -> None:
        job = await self.jobs.create("https://example.com/video.mp4")

        updated = await self.jobs.update_status(job.id, JobStatus.PROCESSING)

        self.assertEqual(updated.status, JobStatus.PROCESSING)
        self.assertGreaterEqual(updated.updated_at, job.updated_at)
        reloaded = await self.jobs.load(job.id)
        self.assertEqual(reloaded.status, JobStatus.PROCESSING)

    async def test_invalid_transition_leaves_stored_job_unchanged(self) -> None:
        job = await self.jobs.create("https://example.com/video.mp4")

        with self.assertRaises(ApiError):
            await self.jobs.update_status(job.id, JobStatus.DONE)

        self.assertEqual(await self.jobs.load(job.id), job)

    async def test_mark_error_records_cause_and_freezes_job(self) -> None:
        job = await self.jobs.create("https://example.com/video.mp4")

        await self.jobs.mark_error(job.id, "Failed in step transcription: boom")

        stored = await self.jobs.load(job.id)
        self.assertEqual(stored.status, JobStatus.ERROR)
        self.assertEqual(stored.error, "Failed in step transcription: boom")
        with self.assertRaises(ApiError):
            await self.jobs.update_status(job.id, JobStatus.PROCESSING)

    async def test_record_step_tracks_attempts_and_timestamps(self) -> None:
        job = await self.jobs.create("https://example.com/video.mp4")

        await self.jobs.record_step(job.id, PipelineStep.TRANSCRIPTION, StepStatus.PROCESSING)
        await self.jobs.record_step(job.id, PipelineStep.TRANSCRIPTION, StepStatus.ERROR, error="timeout")
        await self.jobs.record_step(job.id, PipelineStep.TRANSCRIPTION, StepStatus.PROCESSING)
        stored = await self.jobs.record_step(job.id, PipelineStep.TRANSCRIPTION, StepStatus.COMPLETED)

        state = stored.step_state(PipelineStep.TRANSCRIPTION)
        self.assertEqual(state.status, StepStatus.COMPLETED)
        self.assertEqual(state.attempts, 2)
        self.assertIsNone(state.error)
        self.assertIsNotNone(state.started_at)
        self.assertGreaterEqual(state.ended_at, state.started_at)
        self.assertEqual(stored.step_state(PipelineStep.VISION).status, StepStatus.PENDING)

    async def test_missing_job_operations_return_none(self) -> None:
        self.assertIsNone(await self.jobs.load("job-missing"))
        self.assertIsNone(await self.jobs.update_status("job-missing", JobStatus.PROCESSING))
        self.assertIsNone(await self.jobs.mark_error("job-missing", "cause"))


if __name__ == "__main__":
    unittest.main()
