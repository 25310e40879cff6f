import json
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.export.exporter import (  # noqa: E402
    ExportArtifacts,
    RenderedResume,
    build_json_resume,
    build_patch_report,
    build_text_summary,
    document_from_sections,
    write_artifacts,
)
from resume_patch.patching.engine import PatchEngine  # noqa: E402
from resume_patch.schemas.document import Document, ResumeContent, TextSections  # noqa: E402
from resume_patch.schemas.patch import PatchProposal  # noqa: E402


class ExportTests(unittest.TestCase):
    def setUp(self):
        content = ResumeContent.from_document(
            Document.model_validate(
                {
                    "basics": {"name": "Ada Example"},
                    "skills": [{"name": "Core", "keywords": ["Python", "Docker"]}],
                }
            ),
            source="resume.json",
        )
        self.batch = PatchEngine().apply_batch(
            [PatchProposal.build("add_skill", "React", priority="high"), PatchProposal.build("add_skill", "Python")],
            content,
        )

    def test_json_resume_carries_patch_meta(self):
        payload = build_json_resume(self.batch.content, self.batch.applied, self.batch.failed)
        self.assertTrue(payload["meta"]["patched"])
        self.assertEqual(payload["meta"]["appliedPatches"], 1)
        self.assertEqual(payload["meta"]["failedPatches"], 1)
        self.assertEqual(payload["meta"]["patchedSections"], ["skills"])
        self.assertEqual(payload["skills"][0]["keywords"], ["Python", "Docker", "React"])

    def test_report_and_summary(self):
        report = build_patch_report(self.batch.content, self.batch.applied, self.batch.failed, skipped=2)
        self.assertIn("**Original Resume:** resume.json", report)
        self.assertIn("- **Patches Skipped:** 2", report)
        self.assertIn("## Failed Patches", report)
        self.assertIn("already exists", report)

        summary = build_text_summary(self.batch.content, self.batch.applied)
        self.assertIn("SKILLS:", summary)
        self.assertIn("1. Add skill: React", summary)

    def test_write_artifacts(self):
        artifacts = ExportArtifacts(
            json_resume=build_json_resume(self.batch.content, self.batch.applied, self.batch.failed),
            text_summary="summary",
            patch_report="# report",
            rendered=RenderedResume(html="<html></html>"),
        )
        with tempfile.TemporaryDirectory() as tmp_dir:
            files = write_artifacts(artifacts, Path(tmp_dir) / "out")
            self.assertEqual(set(files), {"json", "text", "patchReport", "html"})
            saved = json.loads(Path(files["json"]).read_text(encoding="utf-8"))
            self.assertEqual(saved["meta"]["appliedPatches"], 1)

    def test_document_from_sections(self):
        document = document_from_sections(
            TextSections(basics="Ada ada@example.com", skills="• Languages: Python, Go.\nDocker", projects="Log search CLI")
        )
        self.assertEqual([group.name for group in document.skill_groups], ["Languages", "Skills"])
        self.assertEqual(document.skill_groups[1].keywords, ["Docker"])
        self.assertEqual(document.projects[0].name, "Log search CLI")
        self.assertEqual(document.basics.email, "ada@example.com")
        self.assertIsNone(document.basics.phone)


if __name__ == "__main__":
    unittest.main()
