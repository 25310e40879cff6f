import random
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from resume_patch.approval.gate import (  # noqa: E402
    ApprovalGate,
    DecisionMapReviewer,
    ScriptedReviewer,
)
from resume_patch.core.errors import ProcessingError  # noqa: E402
from resume_patch.schemas.patch import PatchProposal  # noqa: E402


def _proposals(count: int) -> list[PatchProposal]:
    return [PatchProposal.build("add_skill", f"Skill{index}") for index in range(count)]


class ApprovalGateTests(unittest.TestCase):
    def test_auto_apply_approves_everything(self):
        result = ApprovalGate(auto_apply=True).review(_proposals(4))
        self.assertEqual(len(result.approved), 4)
        self.assertEqual(result.skipped, [])
        self.assertEqual(result.mode, "auto")

    def test_per_item_decisions_keep_original_order(self):
        proposals = _proposals(4)
        reviewer = ScriptedReviewer(["skip", "apply", "inspect", "apply"], after_inspect=["apply"])
        result = ApprovalGate(reviewer).review(proposals)
        self.assertEqual([p.value for p in result.approved], ["Skill1", "Skill2", "Skill3"])
        self.assertEqual([p.value for p in result.skipped], ["Skill0"])
        self.assertTrue(result.decisions[2]["inspected"])

    def test_approve_all_settles_current_and_remaining(self):
        result = ApprovalGate(ScriptedReviewer(["skip", "approve_all"])).review(_proposals(5))
        self.assertEqual([p.value for p in result.skipped], ["Skill0"])
        self.assertEqual(len(result.approved), 4)
        self.assertEqual(result.mode, "approve_all")

    def test_skip_all(self):
        result = ApprovalGate(ScriptedReviewer(["apply", "skip_all"])).review(_proposals(3))
        self.assertEqual([p.value for p in result.approved], ["Skill0"])
        self.assertEqual(len(result.skipped), 2)

    def test_totality_for_random_scripts(self):
        rng = random.Random(7)
        for count in range(0, 8):
            for _ in range(20):
                script = [rng.choice(["apply", "skip", "inspect", "approve_all", "skip_all"]) for _ in range(count)]
                after = [rng.choice(["apply", "skip"]) for _ in range(count)]
                result = ApprovalGate(ScriptedReviewer(script, after)).review(_proposals(count))
                self.assertEqual(len(result.approved) + len(result.skipped), count)
                self.assertNotIn("pending", result.statuses)

    def test_decision_map_defaults_to_skip(self):
        proposals = _proposals(3)
        reviewer = DecisionMapReviewer({proposals[1].id: "apply"})
        result = ApprovalGate(reviewer).review(proposals)
        self.assertEqual([p.id for p in result.approved], [proposals[1].id])

    def test_unknown_response_is_rejected(self):
        with self.assertRaises(ProcessingError):
            ApprovalGate(ScriptedReviewer(["maybe"])).review(_proposals(1))

    def test_reviewer_required_without_auto_apply(self):
        with self.assertRaises(ProcessingError):
            ApprovalGate()


if __name__ == "__main__":
    unittest.main()
