from .document import (
    Basics,
    Document,
    EducationEntry,
    Project,
    ResumeContent,
    SkillGroup,
    TextSections,
    WorkEntry,
)
from .patch import EditOp, PatchOutcome, PatchProposal, PatchType, Priority, proposal_id

__all__ = [
    "Basics",
    "Document",
    "EducationEntry",
    "Project",
    "ResumeContent",
    "SkillGroup",
    "TextSections",
    "WorkEntry",
    "EditOp",
    "PatchOutcome",
    "PatchProposal",
    "PatchType",
    "Priority",
    "proposal_id",
]
