import asyncio
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.ai.heuristic import HeuristicClassifier  # noqa: E402
from resume_patch.analysis.analyze import analyze, extract_years, years_from_work  # noqa: E402
from resume_patch.analysis.suggest import HeuristicCandidateGenerator, suggest_patches  # noqa: E402
from resume_patch.core.errors import InvalidResponseError, ProcessingError  # noqa: E402
from resume_patch.parsing.jd import JobDescriptionSource, build_job_description  # noqa: E402
from resume_patch.schemas.document import Document, ResumeContent  # noqa: E402

JOB_TEXT = "Requirements: Python, React, Docker and Kafka. 5+ years of experience."


def _content() -> ResumeContent:
    return ResumeContent.from_document(
        Document.model_validate(
            {
                "work": [
                    {
                        "name": "Acme",
                        "position": "Engineer",
                        "startDate": "2022-01",
                        "endDate": "2024-01",
                        "summary": "Built billing APIs.",
                    }
                ],
                "skills": [{"name": "Core", "keywords": ["Python", "Docker"]}],
            }
        )
    )


def _job():
    return build_job_description(JobDescriptionSource(text=JOB_TEXT), JOB_TEXT)


class AnalysisTests(unittest.TestCase):
    def test_gap_analysis_with_heuristic_classifier(self):
        analysis = asyncio.run(analyze(_content(), _job(), HeuristicClassifier()))

        self.assertEqual(analysis.keyword_analysis.common, ["Python", "Docker"])
        self.assertEqual(analysis.skill_gaps, ["React", "Kafka"])
        self.assertEqual(analysis.match_score, 0.5)
        self.assertFalse(analysis.experience_match.match)
        self.assertEqual(analysis.experience_match.job_years, 5)
        self.assertEqual(analysis.experience_match.resume_years, 2)
        self.assertEqual(
            [recommendation.type for recommendation in analysis.recommendations], ["add_skills", "expand_skills"]
        )
        self.assertEqual(analysis.keyword_source, "heuristic")

    def test_classifier_failure_falls_back_to_heuristic(self):
        classifier = MagicMock()
        classifier.extract_keywords.side_effect = InvalidResponseError("not json")
        analysis = asyncio.run(analyze(_content(), _job(), classifier))
        self.assertEqual(analysis.keyword_source, "heuristic")
        self.assertEqual(analysis.skill_gaps, ["React", "Kafka"])

    def test_classifier_keywords_are_used(self):
        classifier = MagicMock()
        classifier.extract_keywords.side_effect = lambda text, limit=20: (
            ["Python", "Postgres"] if "Requirements" in text else ["Python"]
        )
        analysis = asyncio.run(analyze(_content(), _job(), classifier))
        self.assertEqual(analysis.keyword_source, "classifier")
        self.assertEqual(analysis.skill_gaps, ["Postgres"])

    def test_empty_resume_is_a_processing_error(self):
        with self.assertRaises(ProcessingError):
            asyncio.run(analyze(ResumeContent.from_document(Document()), _job(), HeuristicClassifier()))

    def test_years_helpers(self):
        self.assertEqual(extract_years("Minimum 3 yrs experience"), 3)
        self.assertEqual(extract_years("No numbers here"), 0)
        document = Document.model_validate({"work": [{"startDate": "2018-05"}]})
        self.assertEqual(years_from_work(document, now=datetime(2024, 1, 1, tzinfo=timezone.utc)), 6)


class SuggestTests(unittest.TestCase):
    def setUp(self):
        self.content = _content()
        self.job = _job()
        self.analysis = asyncio.run(analyze(self.content, self.job, HeuristicClassifier()))

    def _suggest(self, generator=None, max_proposals=15):
        return asyncio.run(
            suggest_patches(
                self.content,
                self.job,
                self.analysis,
                generator=generator or HeuristicCandidateGenerator(),
                classifier=HeuristicClassifier(),
                max_proposals=max_proposals,
            )
        )

    def test_generator_covers_gap_types_in_priority_order(self):
        proposals = self._suggest()
        types = [proposal.type for proposal in proposals]

        self.assertEqual([p.value for p in proposals if p.type == "add_skill"], ["React", "Kafka"])
        for expected in ("enhance_section", "enhance_experience", "align_experience", "add_content", "recommendation_based"):
            self.assertIn(expected, types)
        ranks = {"high": 0, "medium": 1, "low": 2}
        self.assertEqual([ranks[p.priority] for p in proposals], sorted(ranks[p.priority] for p in proposals))
        self.assertEqual(len({p.id for p in proposals}), len(proposals))

    def test_limit_keeps_highest_ranked(self):
        proposals = self._suggest(max_proposals=3)
        self.assertEqual(len(proposals), 3)
        self.assertTrue(all(proposal.priority == "high" for proposal in proposals))

    def test_generator_failure_falls_back_to_heuristic(self):
        def broken(content, job, analysis):
            raise RuntimeError("model offline")

        self.assertEqual(self._suggest(generator=broken), self._suggest())
        self.assertTrue(self._suggest(generator=broken))

    def test_heuristic_generator_failure_is_a_processing_error(self):
        with patch.object(HeuristicCandidateGenerator, "__call__", side_effect=RuntimeError("rules broken")):
            with self.assertRaises(ProcessingError) as ctx:
                self._suggest()
        self.assertEqual(ctx.exception.details["cause"], "collaborator_error")


if __name__ == "__main__":
    unittest.main()
