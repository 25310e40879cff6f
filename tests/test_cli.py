import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.cli import ConsoleReviewer, build_parser, main  # noqa: E402
from resume_patch.schemas.patch import PatchProposal  # noqa: E402

JOB_TEXT = "Requirements: Python, React and Docker."


class CliTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = Path(self._tmp.name)
        self.resume_path = self.tmp_dir / "resume.json"
        self.resume_path.write_text(
            json.dumps({"skills": [{"name": "Core", "keywords": ["Python", "Docker"]}]}), encoding="utf-8"
        )
        self._env = patch.dict(os.environ, {"AI_PROVIDER": "heuristic"})
        self._env.start()

    def tearDown(self):
        self._env.stop()
        self._tmp.cleanup()

    def test_job_source_is_required_and_exclusive(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                build_parser().parse_args([str(self.resume_path)])
            with self.assertRaises(SystemExit):
                build_parser().parse_args([str(self.resume_path), "--job-text", "a", "--job-url", "https://x.example"])

    def test_auto_apply_writes_exports(self):
        out_dir = self.tmp_dir / "out"
        with redirect_stdout(io.StringIO()) as stdout:
            code = main(
                [str(self.resume_path), "--job-text", JOB_TEXT, "--auto-apply", "--allow-disk", "--output", str(out_dir)]
            )
        self.assertEqual(code, 0)
        self.assertIn("Applied:", stdout.getvalue())
        saved = json.loads((out_dir / "resume.json").read_text(encoding="utf-8"))
        self.assertIn("React", saved["skills"][0]["keywords"])

    def test_failed_run_returns_one(self):
        with redirect_stderr(io.StringIO()) as stderr:
            code = main([str(self.tmp_dir / "missing.json"), "--job-text", JOB_TEXT, "--auto-apply"])
        self.assertEqual(code, 1)
        self.assertIn("Failed at stage 'start'", stderr.getvalue())

    def test_unreadable_job_file_returns_two(self):
        with redirect_stderr(io.StringIO()):
            code = main([str(self.resume_path), "--job-file", str(self.tmp_dir / "nope.txt"), "--auto-apply"])
        self.assertEqual(code, 2)


class ConsoleReviewerTests(unittest.TestCase):
    def test_shortcuts_and_eof(self):
        reviewer = ConsoleReviewer(stream=io.StringIO())
        proposal = PatchProposal.build("add_skill", "React")
        with patch("builtins.input", side_effect=["x", "A"]):
            self.assertEqual(reviewer.decide(proposal, 1, 1), "approve_all")
        with patch("builtins.input", side_effect=EOFError):
            self.assertEqual(reviewer.decide(proposal, 1, 1), "skip")


if __name__ == "__main__":
    unittest.main()
