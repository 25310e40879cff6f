import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.core.errors import InvalidResponseError  # noqa: E402
from resume_patch.patching.categories import (  # noqa: E402
    CategoryResolver,
    ResolverWeights,
    best_group_index,
    score_group,
)
from resume_patch.schemas.document import SkillGroup  # noqa: E402


class CategoryResolverTests(unittest.TestCase):
    def test_exact_member_match_is_case_insensitive(self):
        groups = [SkillGroup(name="Backend", keywords=["Python"])]
        self.assertEqual(CategoryResolver().resolve("python", groups), 0)

    def test_exact_member_wins_over_classifier_advice(self):
        classifier = MagicMock()
        classifier.assign_category.return_value = 0
        groups = [
            SkillGroup(name="Frontend", keywords=["React"]),
            SkillGroup(name="Backend", keywords=["Python", "Django"]),
        ]
        self.assertEqual(CategoryResolver(classifier).resolve("django", groups), 1)
        classifier.assign_category.assert_not_called()

    def test_group_name_hint(self):
        groups = [
            SkillGroup(name="Languages", keywords=["Python"]),
            SkillGroup(name="Cloud", keywords=["AWS"]),
        ]
        self.assertEqual(CategoryResolver().resolve("cloud", groups), 1)

    def test_similarity_prefers_shared_tokens(self):
        groups = [
            SkillGroup(name="Languages", keywords=["Python", "Go"]),
            SkillGroup(name="Data", keywords=["Apache Spark", "Kafka"]),
        ]
        self.assertEqual(CategoryResolver().resolve("Apache Airflow", groups), 1)

    def test_ties_resolve_to_first_group(self):
        groups = [SkillGroup(name="A", keywords=["x1"]), SkillGroup(name="B", keywords=["y1"])]
        self.assertEqual(best_group_index("unrelated", groups, ResolverWeights()), 0)

    def test_score_weights_are_configurable(self):
        group = SkillGroup(name="Web", keywords=["React"])
        weights = ResolverWeights(exact_member=1, substring=2, shared_token=3, name_token_overlap=4)
        self.assertEqual(score_group("react", group, weights), 1 + 2 + 3)

    def test_classifier_advice_used_and_out_of_range_ignored(self):
        groups = [
            SkillGroup(name="Languages", keywords=["Python"]),
            SkillGroup(name="Infra", keywords=["Terraform"]),
        ]
        classifier = MagicMock()
        classifier.assign_category.return_value = 1
        self.assertEqual(CategoryResolver(classifier).resolve("Pulumi", groups), 1)

        classifier.assign_category.return_value = 7
        self.assertIn(CategoryResolver(classifier).resolve("Pulumi", groups), (0, 1))

    def test_classifier_failure_falls_back_to_scoring(self):
        groups = [
            SkillGroup(name="Languages", keywords=["Python"]),
            SkillGroup(name="Data", keywords=["Apache Spark"]),
        ]
        classifier = MagicMock()
        classifier.assign_category.side_effect = InvalidResponseError("bad json")
        self.assertEqual(CategoryResolver(classifier).resolve("Apache Beam", groups), 1)


class PrefetchHintsTests(unittest.IsolatedAsyncioTestCase):
    async def test_prefetch_caches_hints_and_records_failures(self):
        groups = [
            SkillGroup(name="Languages", keywords=["Python"]),
            SkillGroup(name="Infra", keywords=["Terraform"]),
        ]
        classifier = MagicMock()

        def assign(keyword, hints):
            if keyword == "Pulumi":
                return 1
            raise InvalidResponseError("no answer")

        classifier.assign_category.side_effect = assign
        resolver = CategoryResolver(classifier)
        hints = await resolver.prefetch_hints(["Pulumi", "Haskell", "Python"], groups, timeout_s=2)

        self.assertEqual(hints, {"pulumi": 1, "haskell": None})
        calls_after_prefetch = classifier.assign_category.call_count
        self.assertEqual(resolver.resolve("Pulumi", groups), 1)
        resolver.resolve("Rust", groups)
        self.assertEqual(classifier.assign_category.call_count, calls_after_prefetch)


if __name__ == "__main__":
    unittest.main()
