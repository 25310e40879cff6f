from __future__ import annotations

import re

_BULLET_CHARS = "•◦▪▫●○■□◆◇▶►-–—*·"
_BULLET_PATTERN = re.compile(rf"^\s*(?:[{re.escape(_BULLET_CHARS)}]|(?:\d+[\.\)]))\s+")
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_PHONE_RE = re.compile(r"\+?\d[\d\s().-]{7,}\d")
_URL_RE = re.compile(r"(?:https?://|www\.|linkedin\.com|github\.com)", re.IGNORECASE)

SECTION_ALIASES = {
    "summary": "basics",
    "objective": "basics",
    "profile": "basics",
    "about": "basics",
    "experience": "experience",
    "work experience": "experience",
    "professional experience": "experience",
    "employment history": "experience",
    "work history": "experience",
    "skills": "skills",
    "technical skills": "skills",
    "core competencies": "skills",
    "education": "education",
    "certifications": "education",
    "projects": "projects",
    "personal projects": "projects",
    "selected projects": "projects",
}
_SECTION_RE = re.compile(
    r"^\s*(" + "|".join(re.escape(name) for name in sorted(SECTION_ALIASES, key=len, reverse=True)) + r")\s*:?\s*$",
    re.IGNORECASE,
)


def normalize_line(line: str) -> str:
    return re.sub(r"\s+", " ", line).strip()


def is_bullet_like(line: str) -> bool:
    return bool(_BULLET_PATTERN.match(line))


def strip_bullet_prefix(line: str) -> str:
    return _BULLET_PATTERN.sub("", line).strip()


def section_for_heading(line: str) -> str | None:
    """Map a heading line to a resume section name, or None if it is not a known heading."""
    stripped = normalize_line(line)
    if not stripped:
        return None
    match = _SECTION_RE.match(stripped)
    if match:
        return SECTION_ALIASES[match.group(1).lower()]
    if stripped.isupper() and len(stripped.split()) <= 5 and len(stripped) <= 36:
        return SECTION_ALIASES.get(stripped.lower().rstrip(":"))
    return None


def is_contact_or_url(line: str) -> bool:
    stripped = normalize_line(line)
    if not stripped:
        return False
    return bool(_EMAIL_RE.search(stripped) or _PHONE_RE.search(stripped) or _URL_RE.search(stripped))


def find_email(text: str) -> str | None:
    match = _EMAIL_RE.search(text or "")
    return match.group(0) if match else None


def find_phone(text: str) -> str | None:
    match = _PHONE_RE.search(text or "")
    return match.group(0).strip() if match else None
