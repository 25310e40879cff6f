from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import sentry_sdk

from resume_patch.ai.factory import get_classifier
from resume_patch.core.config import settings
from resume_patch.core.errors import WorkflowError
from resume_patch.parsing.resume_parser import HeuristicResumeParser, LLMResumeParser
from resume_patch.schemas.patch import PatchProposal
from resume_patch.workflow.graph import run
from resume_patch.workflow.stages import Collaborators
from resume_patch.workflow.state import RunResult

_PROMPT = "[a]pply  [s]kip  [i]nspect  approve [A]ll  skip a[L]l > "
_SHORTCUTS = {"a": "apply", "s": "skip", "i": "inspect", "A": "approve_all", "L": "skip_all"}
_AFTER_INSPECT = {"a": "apply", "s": "skip"}


class ConsoleReviewer:
    """Asks on stdin for every proposal. EOF counts as skip."""

    def __init__(self, stream=None) -> None:
        self._out = stream or sys.stdout

    def _ask(self, prompt: str, choices: dict[str, str]) -> str:
        while True:
            try:
                answer = input(prompt).strip()
            except EOFError:
                return "skip"
            if answer in choices:
                return choices[answer]
            if answer.lower() in choices.values():
                return answer.lower()
            print(f"Unknown response '{answer}'", file=self._out)

    def decide(self, proposal: PatchProposal, position: int, total: int) -> str:
        print(f"\n[{position}/{total}] {proposal.priority.upper()} {proposal.type}: {proposal.value}", file=self._out)
        if proposal.description:
            print(f"  {proposal.description}", file=self._out)
        return self._ask(_PROMPT, _SHORTCUTS)

    def decide_after_inspect(self, proposal: PatchProposal, details: dict[str, Any]) -> str:
        print(json.dumps(details, indent=2, default=str), file=self._out)
        return self._ask("[a]pply  [s]kip > ", _AFTER_INSPECT)


def _job_source(args: argparse.Namespace) -> dict[str, str]:
    if args.job_url:
        return {"url": args.job_url}
    if args.job_file:
        return {"text": Path(args.job_file).read_text(encoding="utf-8")}
    return {"text": args.job_text}


def _print_result(result: RunResult) -> None:
    print(f"\nApplied: {len(result.applied_patches)}  Failed: {len(result.failed_patches)}  Skipped: {len(result.skipped)}")
    for outcome in result.failed_patches:
        print(f"  failed {outcome.proposal.id}: {outcome.reason}")
    artifacts = result.export_artifacts
    if artifacts and artifacts.files:
        for kind, path in artifacts.files.items():
            print(f"  {kind}: {path}")
    elif artifacts:
        print(artifacts.patch_report)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="resume-patch", description="Tailor a resume to a job description.")
    parser.add_argument("resume", help="Resume file (.json, .pdf, .docx or .txt)")
    job = parser.add_mutually_exclusive_group(required=True)
    job.add_argument("--job-url", help="Job posting URL to fetch")
    job.add_argument("--job-text", help="Job description text")
    job.add_argument("--job-file", help="File containing the job description")
    parser.add_argument("--auto-apply", action="store_true", help="Apply every proposal without asking.")
    parser.add_argument("--allow-disk", action="store_true", help="Write export files under --output.")
    parser.add_argument("--output", default=settings.output_path, help="Output directory for exported files")
    parser.add_argument("--max-skill-groups", type=int, default=settings.max_skill_groups)
    parser.add_argument("--max-proposals", type=int, default=settings.max_proposals)
    parser.add_argument("--llm-parser", action="store_true", help="Parse free-text resumes with the LLM.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.log_level, format="%(message)s")
    if settings.sentry_dsn:
        sentry_sdk.init(dsn=settings.sentry_dsn)

    try:
        job_source = _job_source(args)
    except OSError as exc:
        print(f"Cannot read job description file: {exc}", file=sys.stderr)
        return 2

    options = {
        "auto_apply": args.auto_apply,
        "allow_disk": args.allow_disk,
        "output_path": args.output,
        "max_skill_groups": args.max_skill_groups,
        "max_proposals": args.max_proposals,
    }
    collaborators = Collaborators(
        classifier=get_classifier(),
        parser=LLMResumeParser() if args.llm_parser else HeuristicResumeParser(),
        reviewer=None if args.auto_apply else ConsoleReviewer(),
    )
    try:
        result = run(args.resume, job_source, options, collaborators=collaborators)
    except WorkflowError as exc:
        print(f"Failed at stage '{exc.stage}' after {exc.retry_count} retries:", file=sys.stderr)
        for message in exc.errors:
            print(f"  - {message}", file=sys.stderr)
        return 1

    _print_result(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
