from __future__ import annotations

import logging
import re
from html import unescape
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel, Field, model_validator

from resume_patch.core.config import settings
from resume_patch.core.errors import FetchError

logger = logging.getLogger(__name__)

_JD_HEADINGS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("requirements", ("requirements", "qualifications")),
    ("responsibilities", ("responsibilities", "duties")),
    ("skills", ("skills", "technologies", "tech stack")),
    ("experience", ("experience", "years")),
)


class JobDescriptionSource(BaseModel):
    """Exactly one of pasted text or a URL to fetch."""

    text: str | None = None
    url: str | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "JobDescriptionSource":
        has_text = bool((self.text or "").strip())
        has_url = bool((self.url or "").strip())
        if has_text == has_url:
            raise ValueError("Provide either job description text or a job description URL")
        if has_url and not is_http_url(self.url or ""):
            raise ValueError(f"Job description URL must be http(s): '{self.url}'")
        return self

    @classmethod
    def coerce(cls, value: "str | JobDescriptionSource | dict") -> "JobDescriptionSource":
        if isinstance(value, JobDescriptionSource):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)
        if is_http_url(value.strip()):
            return cls(url=value.strip())
        return cls(text=value)


class JobDescription(BaseModel):
    source: Literal["text", "url"]
    url: str | None = None
    content: str
    sections: dict[str, str] = Field(default_factory=dict)

    @property
    def length(self) -> int:
        return len(self.content)


class JobFetcher(Protocol):
    def __call__(self, url: str) -> str: ...


def is_http_url(value: str) -> bool:
    return bool(re.match(r"^https?://[^\s/$.?#].\S*$", value or "", re.IGNORECASE))


def strip_html(html: str) -> str:
    html = re.sub(r"(?is)<script.*?>.*?</script>", " ", html)
    html = re.sub(r"(?is)<style.*?>.*?</style>", " ", html)
    html = re.sub(r"(?is)<noscript.*?>.*?</noscript>", " ", html)
    html = re.sub(r"(?i)<br\s*/?>|</(?:p|div|li|h[1-6]|tr)>", "\n", html)
    text = re.sub(r"(?is)<[^>]+>", " ", html)
    text = unescape(text)
    text = re.sub(r"[ \t\f\v\u00a0]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def fetch_job_description(url: str, *, timeout_s: float | None = None) -> str:
    """GET the page and return its visible text. Raises FetchError on any HTTP failure."""
    timeout = timeout_s if timeout_s is not None else settings.jd_fetch_timeout_s
    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            response = client.get(url)
            response.raise_for_status()
    except httpx.TimeoutException as exc:
        raise FetchError(f"Timed out fetching job description from {url}", details={"url": url}) from exc
    except httpx.HTTPStatusError as exc:
        raise FetchError(
            f"HTTP {exc.response.status_code} fetching job description from {url}",
            details={"url": url, "status": exc.response.status_code},
        ) from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"Failed to fetch job description from {url}: {exc}", details={"url": url}) from exc

    text = strip_html(response.text)
    logger.info("jd_fetched url=%s length=%s", url, len(text))
    return text


def _heading_section(line: str) -> str | None:
    lowered = line.lower().rstrip(":")
    if not line.endswith(":") and (len(lowered.split()) > 4 or re.search(r"[\d,.]", lowered)):
        return None
    for section, markers in _JD_HEADINGS:
        if any(marker in lowered for marker in markers):
            return section
    return None


def extract_jd_sections(text: str) -> dict[str, str]:
    """Split a JD into overview / requirements / responsibilities / skills / experience.

    A line switches sections when it ends with a colon, or is a short label without digits
    or punctuation. Heading lines themselves are not kept.
    """
    sections: dict[str, list[str]] = {}
    current = "overview"
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        heading = _heading_section(line)
        if heading is not None:
            current = heading
            continue
        sections.setdefault(current, []).append(line)
    return {name: "\n".join(lines) for name, lines in sections.items() if lines}


def build_job_description(source: JobDescriptionSource, content: str) -> JobDescription:
    clean = (content or "").strip()
    return JobDescription(
        source="url" if source.url else "text",
        url=source.url,
        content=clean,
        sections=extract_jd_sections(clean),
    )
