import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.patching.dedupe import dedupe_proposals  # noqa: E402
from resume_patch.schemas.patch import PatchProposal  # noqa: E402


class DedupeTests(unittest.TestCase):
    def test_case_and_substring_variants_collapse_to_first(self):
        proposals = [
            PatchProposal.build("add_skill", "React", priority="high"),
            PatchProposal.build("add_skill", "react", priority="high"),
            PatchProposal.build("add_keyword", "React.js", priority="low"),
        ]
        kept = dedupe_proposals(proposals)
        self.assertEqual([proposal.value for proposal in kept], ["React"])

    def test_is_deterministic_and_order_preserving(self):
        proposals = [
            PatchProposal.build("add_skill", "Docker"),
            PatchProposal.build("add_skill", "Kubernetes"),
            PatchProposal.build("add_skill", "docker"),
            PatchProposal.build("align_experience", "Applied Docker in day-to-day delivery"),
        ]
        first = dedupe_proposals(proposals)
        second = dedupe_proposals(proposals)
        self.assertEqual([p.id for p in first], [p.id for p in second])
        self.assertEqual([p.value for p in first], ["Docker", "Kubernetes", "Applied Docker in day-to-day delivery"])

    def test_different_kinds_do_not_suppress_each_other(self):
        proposals = [
            PatchProposal.build("add_skill", "Go"),
            PatchProposal.build("role_enhancement", "Go-to person for incident reviews"),
        ]
        self.assertEqual(len(dedupe_proposals(proposals)), 2)

    def test_min_overlap_threshold_keeps_short_values(self):
        proposals = [
            PatchProposal.build("add_skill", "Go"),
            PatchProposal.build("add_skill", "Google Cloud"),
        ]
        self.assertEqual(len(dedupe_proposals(proposals, min_overlap_chars=3)), 2)
        self.assertEqual(len(dedupe_proposals(proposals, min_overlap_chars=1)), 1)


if __name__ == "__main__":
    unittest.main()
