import asyncio
import json
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.analysis.suggest import HeuristicCandidateGenerator  # noqa: E402
from resume_patch.approval.gate import ScriptedReviewer  # noqa: E402
from resume_patch.core.errors import FetchError, WorkflowError  # noqa: E402
from resume_patch.schemas.patch import PatchProposal  # noqa: E402
from resume_patch.workflow.graph import Pipeline, next_stage, run  # noqa: E402
from resume_patch.workflow.stages import Collaborators  # noqa: E402
from resume_patch.workflow.state import WorkflowOptions, WorkflowState  # noqa: E402

JOB_TEXT = "We are hiring a backend engineer. Requirements: Python, React, Docker and Kafka. 3+ years of experience."

CORE_RESUME = {"skills": [{"name": "Core", "keywords": ["Python", "Docker"]}]}


def _fixed_generator(*proposals):
    def generate(content, job, analysis):
        return list(proposals)

    return generate


class WorkflowTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _resume_file(self, text: str = "Experience\nEngineer at Acme\nSkills\nPython, SQL") -> Path:
        path = self.tmp_dir / "resume.txt"
        path.write_text(text, encoding="utf-8")
        return path

    def test_end_to_end_core_scenario(self):
        generator = _fixed_generator(
            PatchProposal.build("add_skill", "React", priority="high"),
            PatchProposal.build("add_skill", "Python", priority="high"),
        )
        result = run(
            CORE_RESUME,
            {"text": JOB_TEXT},
            {"auto_apply": True},
            collaborators=Collaborators(generator=generator),
        )

        self.assertEqual([outcome.proposal.value for outcome in result.applied_patches], ["React"])
        self.assertEqual([outcome.proposal.value for outcome in result.failed_patches], ["Python"])
        self.assertIn("already exists", result.failed_patches[0].reason)
        groups = result.document.skill_groups
        self.assertEqual([(group.name, group.keywords) for group in groups], [("Core", ["Python", "Docker", "React"])])
        self.assertEqual(result.export_artifacts.json_resume["meta"]["appliedPatches"], 1)
        self.assertEqual(result.retry_count, 0)

    def test_parse_retry_bound(self):
        calls = []

        def failing_extractor(path):
            calls.append(path)
            raise RuntimeError("corrupt file")

        with self.assertRaises(WorkflowError) as ctx:
            run(
                self._resume_file(),
                JOB_TEXT,
                {"auto_apply": True},
                collaborators=Collaborators(extractor=failing_extractor),
            )

        error = ctx.exception
        self.assertEqual(error.stage, "parse")
        self.assertEqual(error.retry_count, 2)
        self.assertEqual(len(calls), 3)
        self.assertEqual(len(error.errors), 3)
        self.assertEqual(error.state.stage_retries, {"parse": 2})

    def test_parse_recovers_on_retry(self):
        attempts = []

        def flaky_extractor(path):
            attempts.append(path)
            if len(attempts) == 1:
                raise RuntimeError("transient")
            return Path(path).read_text(encoding="utf-8")

        result = run(
            self._resume_file(),
            JOB_TEXT,
            {"auto_apply": True},
            collaborators=Collaborators(extractor=flaky_extractor, generator=_fixed_generator()),
        )
        self.assertEqual(result.retry_count, 1)
        self.assertIn("Python", result.content.sections.skills)

    def test_slow_extractor_times_out_and_exhausts_retries(self):
        def slow_extractor(path):
            time.sleep(0.3)
            return Path(path).read_text(encoding="utf-8")

        with self.assertRaises(WorkflowError) as ctx:
            run(
                self._resume_file(),
                JOB_TEXT,
                {"auto_apply": True, "collaborator_timeout_s": 0.05},
                collaborators=Collaborators(extractor=slow_extractor),
            )

        error = ctx.exception
        self.assertEqual(error.stage, "parse")
        self.assertEqual(error.retry_count, 2)
        codes = [record.code for record in error.state.error_history]
        self.assertEqual(codes, ["collaborator_timeout"] * 3)
        self.assertIn("did not respond", error.state.error_history[0].message)

    def test_json_resume_file_runs_end_to_end(self):
        path = self.tmp_dir / "resume.json"
        path.write_text(
            json.dumps({"basics": {"name": "Ada Example"}, **CORE_RESUME}),
            encoding="utf-8",
        )
        result = run(path, JOB_TEXT, {"auto_apply": True}, collaborators=Collaborators(generator=_fixed_generator()))

        self.assertEqual(result.retry_count, 0)
        self.assertEqual(result.document.basics.name, "Ada Example")
        self.assertEqual(result.document.skill_groups[0].keywords, ["Python", "Docker"])

    def test_invalid_json_resume_file_fails_at_parse(self):
        path = self.tmp_dir / "resume.json"
        path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(WorkflowError) as ctx:
            run(path, JOB_TEXT, {"auto_apply": True})
        self.assertEqual(ctx.exception.stage, "parse")
        self.assertEqual(ctx.exception.retry_count, 2)

    def test_broken_generator_falls_back_to_rule_based_proposals(self):
        def broken_generator(content, job, analysis):
            raise RuntimeError("model offline")

        result = run(CORE_RESUME, JOB_TEXT, {"auto_apply": True}, collaborators=Collaborators(generator=broken_generator))

        self.assertTrue(result.proposals)
        keywords = [keyword for group in result.document.skill_groups for keyword in group.keywords]
        self.assertIn("React", keywords)
        self.assertIn("Kafka", keywords)

    def test_rule_based_generator_failure_fails_at_suggest(self):
        with patch.object(HeuristicCandidateGenerator, "__call__", side_effect=RuntimeError("rules broken")):
            with self.assertRaises(WorkflowError) as ctx:
                run(CORE_RESUME, JOB_TEXT, {"auto_apply": True})
        self.assertEqual(ctx.exception.stage, "suggest")
        self.assertEqual(ctx.exception.retry_count, 0)

    def test_fetch_failures_share_the_retry_counter(self):
        fetches = []

        def fetcher(url):
            fetches.append(url)
            raise FetchError(f"HTTP 503 fetching {url}")

        with self.assertRaises(WorkflowError) as ctx:
            run(
                CORE_RESUME,
                {"url": "https://jobs.example.com/backend"},
                {"auto_apply": True},
                collaborators=Collaborators(fetcher=fetcher),
            )
        self.assertEqual(ctx.exception.stage, "fetch_jd")
        self.assertEqual(ctx.exception.retry_count, 2)
        self.assertEqual(len(fetches), 3)

    def test_validation_failure_is_fatal(self):
        extractor_calls = []

        with self.assertRaises(WorkflowError) as ctx:
            run(
                self.tmp_dir / "missing.pdf",
                JOB_TEXT,
                {"auto_apply": True},
                collaborators=Collaborators(extractor=lambda path: extractor_calls.append(path)),
            )
        self.assertEqual(ctx.exception.stage, "start")
        self.assertEqual(ctx.exception.retry_count, 0)
        self.assertEqual(extractor_calls, [])

    def test_missing_reviewer_is_a_validation_error(self):
        with self.assertRaises(WorkflowError) as ctx:
            run(CORE_RESUME, JOB_TEXT, {"auto_apply": False})
        self.assertEqual(ctx.exception.stage, "start")

    def test_invalid_options_fail_at_start(self):
        with self.assertRaises(WorkflowError) as ctx:
            run(CORE_RESUME, JOB_TEXT, {"auto_apply": True, "max_skill_groups": 0})
        self.assertEqual(ctx.exception.stage, "start")

    def test_no_proposals_skips_approval_and_apply(self):
        result = run(
            CORE_RESUME,
            JOB_TEXT,
            {"auto_apply": False},
            collaborators=Collaborators(generator=_fixed_generator(), reviewer=ScriptedReviewer([])),
        )
        stages = {entry.stage for entry in result.processing_log}
        self.assertNotIn("approve", stages)
        self.assertNotIn("apply", stages)
        self.assertIn("export", stages)
        self.assertEqual(result.applied_patches, [])
        self.assertEqual(result.document.skill_groups[0].keywords, ["Python", "Docker"])
        self.assertIsNotNone(result.export_artifacts)

    def test_reviewer_decisions_flow_to_apply(self):
        generator = _fixed_generator(
            PatchProposal.build("add_skill", "React", priority="high"),
            PatchProposal.build("add_skill", "Kafka", priority="high"),
        )
        result = run(
            CORE_RESUME,
            JOB_TEXT,
            WorkflowOptions(auto_apply=False),
            collaborators=Collaborators(generator=generator, reviewer=ScriptedReviewer(["skip", "apply"])),
        )
        self.assertEqual([outcome.proposal.value for outcome in result.applied_patches], ["Kafka"])
        self.assertEqual([proposal.value for proposal in result.skipped], ["React"])

    def test_export_writes_files_only_when_allowed(self):
        out_dir = self.tmp_dir / "out"
        run(CORE_RESUME, JOB_TEXT, {"auto_apply": True, "allow_disk": False, "output_path": str(out_dir)})
        self.assertFalse(out_dir.exists())

        result = run(CORE_RESUME, JOB_TEXT, {"auto_apply": True, "allow_disk": True, "output_path": str(out_dir)})
        self.assertTrue((out_dir / "resume.json").exists())
        self.assertTrue((out_dir / "patchReport.md").exists())
        self.assertEqual(set(result.export_artifacts.files), {"json", "text", "patchReport"})

    def test_each_run_gets_fresh_state(self):
        first = run(CORE_RESUME, JOB_TEXT, {"auto_apply": True})
        second = run(CORE_RESUME, JOB_TEXT, {"auto_apply": True})
        self.assertEqual(
            first.document.skill_groups[0].keywords, second.document.skill_groups[0].keywords
        )
        self.assertEqual(CORE_RESUME["skills"][0]["keywords"], ["Python", "Docker"])


class TransitionTests(unittest.TestCase):
    def test_suggest_routes_on_proposals(self):
        state = WorkflowState(stage="suggest")
        self.assertEqual(next_stage(state, max_retries=2), "export")
        state.proposals = [PatchProposal.build("add_skill", "Go")]
        self.assertEqual(next_stage(state, max_retries=2), "approve")

    def test_analyze_errors_are_not_retried(self):
        state = WorkflowState(stage="analyze", errors=["boom"])
        self.assertEqual(next_stage(state, max_retries=2), "error")

    def test_retry_edges(self):
        state = WorkflowState(stage="fetch_jd", errors=["boom"], retry_count=1)
        self.assertEqual(next_stage(state, max_retries=2), "retry_fetch")
        state.retry_count = 2
        self.assertEqual(next_stage(state, max_retries=2), "error")
        self.assertEqual(next_stage(WorkflowState(stage="retry_fetch"), max_retries=2), "fetch_jd")

    def test_error_always_ends(self):
        self.assertEqual(next_stage(WorkflowState(stage="error", errors=["x"]), max_retries=2), "end")


class CancellationTests(unittest.IsolatedAsyncioTestCase):
    async def test_cancel_moves_state_to_error_and_propagates(self):
        entered = threading.Event()
        release = threading.Event()

        def slow_generator(content, job, analysis):
            entered.set()
            release.wait(5)
            return []

        pipeline = Pipeline(
            CORE_RESUME,
            JOB_TEXT,
            WorkflowOptions(auto_apply=True),
            Collaborators(generator=slow_generator),
        )
        task = asyncio.create_task(pipeline.run())
        try:
            for _ in range(200):
                if entered.is_set():
                    break
                await asyncio.sleep(0.01)
            self.assertTrue(entered.is_set())
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task
        finally:
            release.set()

        self.assertEqual(pipeline.state.stage, "error")
        self.assertEqual(pipeline.state.failed_stage, "suggest")
        self.assertIn("cancelled", pipeline.state.errors)


if __name__ == "__main__":
    unittest.main()
