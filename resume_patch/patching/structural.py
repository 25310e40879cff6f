from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from resume_patch.schemas.document import Document, normalize_keyword
from resume_patch.schemas.patch import PATCH_TYPES, SKILL_PATCH_TYPES, EditOp, PatchProposal

from .categories import CategoryResolver


@dataclass(frozen=True)
class StructuralPlan:
    ops: tuple[EditOp, ...]
    section: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StructuralFailure:
    reason: str


@dataclass(frozen=True)
class NoMapping:
    """The proposal type has no structural edit; the textual fallback handles it."""

    patch_type: str


PlanResult = StructuralPlan | StructuralFailure | NoMapping


class PatchPathError(ValueError):
    pass


def _escape(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def _pointer(*tokens: Any) -> str:
    return "/" + "/".join(_escape(str(token)) for token in tokens)


def _skill_conflict(keyword: str, document: Document) -> StructuralFailure | None:
    if not keyword:
        return StructuralFailure("empty skill value")
    existing = document.find_keyword_group(keyword)
    if existing is not None:
        return StructuralFailure(
            f"'{keyword}' already exists in skill group '{document.skill_groups[existing].name}'"
        )
    if normalize_keyword(keyword) in {normalize_keyword(item) for item in document.loose_skills()}:
        return StructuralFailure(f"'{keyword}' already exists in skills")
    return None


def _plan_skill(proposal: PatchProposal, document: Document, resolver: CategoryResolver) -> PlanResult:
    keyword = " ".join(proposal.value.split())
    conflict = _skill_conflict(keyword, document)
    if conflict is not None:
        return conflict

    if not document.skill_groups:
        name = "Skills"
        ops = (EditOp(op="add", path=_pointer("skills", "-"), value={"name": name, "keywords": [keyword]}),)
    else:
        index = resolver.resolve(keyword, document.skill_groups)
        name = document.skill_groups[index].name
        ops = (EditOp(op="add", path=_pointer("skills", index, "keywords", "-"), value=keyword),)
    return StructuralPlan(ops=ops, section="skills", changes={"added": keyword, "group": name})


def _plan_highlight(proposal: PatchProposal, document: Document, resolver: CategoryResolver) -> PlanResult:
    index = document.latest_work_index()
    if index is None:
        return StructuralFailure("no work entries to attach the highlight to")
    value = proposal.value.strip()
    if not value:
        return StructuralFailure("empty highlight value")
    entry = document.work[index]
    if normalize_keyword(value) in {normalize_keyword(item) for item in entry.highlights}:
        return StructuralFailure("highlight already exists in the most recent work entry")
    return StructuralPlan(
        ops=(EditOp(op="add", path=_pointer("work", index, "highlights", "-"), value=value),),
        section="experience",
        changes={"highlight": value, "work_index": index, "employer": entry.employer},
    )


def _plan_summary(proposal: PatchProposal, document: Document, resolver: CategoryResolver) -> PlanResult:
    index = document.latest_work_index()
    if index is None:
        return StructuralFailure("no work entries to enhance")
    value = proposal.value.strip()
    if not value:
        return StructuralFailure("empty summary value")
    summary = document.work[index].summary.rstrip(" .")
    if normalize_keyword(value.rstrip(" .")) in normalize_keyword(summary):
        return StructuralFailure("summary text already exists in the most recent work entry")
    updated = f"{summary}. {value}" if summary else value
    return StructuralPlan(
        ops=(EditOp(op="replace", path=_pointer("work", index, "summary"), value=updated),),
        section="experience",
        changes={"summary": updated, "appended": value, "work_index": index},
    )


_Planner = Callable[[PatchProposal, Document, CategoryResolver], PlanResult]

_PLANNERS: dict[str, _Planner | None] = {
    "add_skill": _plan_skill,
    "add_keyword": _plan_skill,
    "align_experience": _plan_highlight,
    "role_enhancement": _plan_highlight,
    "enhance_experience": _plan_summary,
    "enhance_section": None,
    "add_content": None,
    "recommendation_based": None,
}

if set(_PLANNERS) != set(PATCH_TYPES):
    raise RuntimeError(f"Structural planners out of sync with patch types: {sorted(set(PATCH_TYPES) ^ set(_PLANNERS))}")


def _section_for_path(path: str) -> str:
    head = path.split("/")[1] if path.count("/") >= 1 else ""
    return {"work": "experience", "skills": "skills"}.get(head, head or "document")


def plan_structural(proposal: PatchProposal, document: Document, resolver: CategoryResolver) -> PlanResult:
    """Turn one proposal into edit ops against the current document. Total: never raises."""
    if proposal.ops:
        if proposal.type in SKILL_PATCH_TYPES:
            conflict = _skill_conflict(" ".join(proposal.value.split()), document)
            if conflict is not None:
                return conflict
        return StructuralPlan(ops=tuple(proposal.ops), section=_section_for_path(proposal.ops[0].path))
    planner = _PLANNERS[proposal.type]
    if planner is None:
        return NoMapping(proposal.type)
    return planner(proposal, document, resolver)


def _parse_pointer(path: str) -> list[str]:
    if not path.startswith("/"):
        raise PatchPathError(f"invalid pointer '{path}'")
    return [token.replace("~1", "/").replace("~0", "~") for token in path[1:].split("/")]


def _list_index(container: list[Any], token: str, *, allow_end: bool) -> int:
    if allow_end and token == "-":
        return len(container)
    if not token.isdigit():
        raise PatchPathError(f"'{token}' is not a list index")
    index = int(token)
    limit = len(container) if allow_end else len(container) - 1
    if index > limit:
        raise PatchPathError(f"list index {index} out of range")
    return index


def _apply_op(data: dict[str, Any], op: EditOp) -> None:
    tokens = _parse_pointer(op.path)
    parent: Any = data
    for token in tokens[:-1]:
        if isinstance(parent, list):
            parent = parent[_list_index(parent, token, allow_end=False)]
        elif isinstance(parent, dict):
            if token not in parent:
                raise PatchPathError(f"path segment '{token}' not found in '{op.path}'")
            parent = parent[token]
        else:
            raise PatchPathError(f"cannot descend into '{token}' in '{op.path}'")

    last = tokens[-1]
    value = copy.deepcopy(op.value)
    if isinstance(parent, list):
        if op.op == "add":
            parent.insert(_list_index(parent, last, allow_end=True), value)
        else:
            parent[_list_index(parent, last, allow_end=False)] = value
    elif isinstance(parent, dict):
        if op.op == "replace" and last not in parent:
            raise PatchPathError(f"cannot replace missing member '{last}' in '{op.path}'")
        parent[last] = value
    else:
        raise PatchPathError(f"cannot set '{last}' in '{op.path}'")


def apply_ops(document: Document, ops: Sequence[EditOp]) -> Document:
    """Apply all ops to a copy of the document and revalidate; the input is never touched.

    Raises PatchPathError for unresolvable pointers and pydantic's ValidationError when
    the edited payload is no longer a valid document.
    """
    data = copy.deepcopy(document.model_dump(by_alias=True))
    for op in ops:
        _apply_op(data, op)
    return Document.model_validate(data)
