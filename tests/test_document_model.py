import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.schemas.document import ADDITIONAL_SKILLS_KEY, Document, ResumeContent  # noqa: E402


class DocumentModelTests(unittest.TestCase):
    def test_keywords_are_unique_across_groups(self):
        document = Document.model_validate(
            {
                "skills": [
                    {"name": "Languages", "keywords": ["Python", "python", "Go"]},
                    {"name": "Backend", "keywords": ["PYTHON", "Django"]},
                ]
            }
        )
        self.assertEqual(document.skill_groups[0].keywords, ["Python", "Go"])
        self.assertEqual(document.skill_groups[1].keywords, ["Django"])

    def test_flat_skill_entries_are_grouped(self):
        document = Document.model_validate({"skills": ["Python", {"name": "SQL"}, {"name": "Cloud", "keywords": ["AWS"]}]})
        self.assertEqual([group.name for group in document.skill_groups], ["Cloud", "Skills"])
        self.assertEqual(document.skill_groups[1].keywords, ["Python", "SQL"])

    def test_json_resume_round_trip_uses_aliases(self):
        payload = {
            "basics": {"name": "Ada", "location": "Berlin"},
            "work": [{"name": "Acme", "startDate": "2020-01", "highlights": None}],
            "skills": [{"name": "Core", "keywords": ["Python"]}],
        }
        document = Document.model_validate(payload)
        exported = document.to_json_resume()
        self.assertEqual(exported["work"][0]["startDate"], "2020-01")
        self.assertEqual(exported["skills"][0]["keywords"], ["Python"])
        self.assertEqual(exported["basics"]["location"], {"address": "Berlin"})
        self.assertNotIn("annotations", exported)

    def test_text_sections_include_textual_edits(self):
        document = Document.model_validate(
            {
                "work": [{"name": "Acme", "position": "Engineer", "summary": "Built APIs."}],
                "skills": [{"name": "Core", "keywords": ["Python"]}],
                "annotations": {ADDITIONAL_SKILLS_KEY: ["Kafka"], "experience": [" Led migrations."]},
            }
        )
        sections = document.to_text_sections()
        self.assertEqual(sections.skills, "• Core: Python.\n• Additional: Kafka.")
        self.assertTrue(sections.experience.endswith("Built APIs. Led migrations."))
        self.assertEqual(document.loose_skills(), ["Kafka"])
        self.assertEqual(document.to_json_resume()["meta"]["textualEdits"]["additional_skills"], ["Kafka"])

    def test_empty_document(self):
        self.assertTrue(Document().is_empty())
        self.assertTrue(ResumeContent.from_document(Document()).is_empty())


if __name__ == "__main__":
    unittest.main()
