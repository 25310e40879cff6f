from __future__ import annotations

import hashlib
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pypdf import PdfReader
from pypdf.errors import PdfReadError
from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError

from resume_patch.core.config import settings
from resume_patch.core.errors import ExtractionError, ValidationError

_PAGE_NUMBER_LINE_RE = re.compile(r"^\s*(?:page\s+)?\d+\s*(?:of|/)\s*\d+\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class ExtractedText:
    doc_id: str
    source_type: str
    text: str
    warnings: list[str] = field(default_factory=list)


class TextExtractor(Protocol):
    def __call__(self, path: Path) -> ExtractedText: ...


def _compute_doc_id(text: str, file_path: Path) -> str:
    seed = text if text.strip() else file_path.name
    digest = hashlib.sha256(seed.encode("utf-8", errors="ignore")).hexdigest()
    return digest[:16]


def normalize_pdf_text(text: str) -> str:
    text = (text or "").replace("\u00a0", " ").replace("\ufeff", " ").replace("\f", "\n")
    text = re.sub(r"[\r\t]", " ", text)
    text = re.sub(r" {2,}", " ", text)
    lines = [line.strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if not _PAGE_NUMBER_LINE_RE.match(line)).strip()


def validate_resume_file(file_path: str | Path) -> Path:
    """Existence, size and format checks. Raises ValidationError (fatal, never retried)."""
    path = Path(file_path)
    if not path.exists() or not path.is_file():
        raise ValidationError(f"Resume file not found: '{path}'", details={"path": str(path)})

    size = path.stat().st_size
    if size > settings.max_resume_bytes:
        raise ValidationError(
            f"File size {size} bytes exceeds maximum allowed size {settings.max_resume_bytes} bytes",
            details={"path": str(path), "size": size},
        )

    extension = path.suffix.lower()
    if extension not in settings.supported_resume_formats:
        raise ValidationError(
            f"Unsupported file format: {extension or '<none>'}. "
            f"Supported formats: {', '.join(settings.supported_resume_formats)}",
            details={"path": str(path), "extension": extension},
        )
    return path


def _extract_txt(file_path: Path) -> tuple[str, list[str]]:
    return file_path.read_text(encoding="utf-8", errors="replace"), []


def _extract_pdf(file_path: Path) -> tuple[str, list[str]]:
    warnings: list[str] = []
    try:
        reader = PdfReader(str(file_path))
        parts = [(page.extract_text() or "").strip() for page in reader.pages]
    except (PdfReadError, OSError, ValueError) as exc:
        raise ExtractionError(f"PDF parsing failed: {exc}", details={"path": str(file_path)}) from exc

    text = normalize_pdf_text("\n".join(part for part in parts if part))
    if not text:
        warnings.append("No extractable text found in PDF.")
    return text, warnings


def _extract_docx(file_path: Path) -> tuple[str, list[str]]:
    warnings: list[str] = []
    try:
        document = DocxDocument(str(file_path))
    except (PackageNotFoundError, zipfile.BadZipFile, OSError, ValueError, KeyError) as exc:
        raise ExtractionError(f"DOCX parsing failed: {exc}", details={"path": str(file_path)}) from exc

    paragraphs = [p.text.strip() for p in document.paragraphs if p.text and p.text.strip()]
    if not paragraphs:
        warnings.append("No extractable text found in DOCX.")
    return "\n".join(paragraphs), warnings


_EXTRACTORS = {
    ".txt": ("txt", _extract_txt),
    ".pdf": ("pdf", _extract_pdf),
    ".docx": ("docx", _extract_docx),
}


def extract_text(file_path: str | Path) -> ExtractedText:
    path = Path(file_path)
    extension = path.suffix.lower()
    if extension not in _EXTRACTORS:
        raise ExtractionError(
            f"Unsupported file type '{extension}'. Supported types: {', '.join(_EXTRACTORS)}",
            details={"path": str(path)},
        )
    source_type, extractor = _EXTRACTORS[extension]
    try:
        text, warnings = extractor(path)
    except OSError as exc:
        raise ExtractionError(f"Failed to read '{path}': {exc}", details={"path": str(path)}) from exc
    return ExtractedText(doc_id=_compute_doc_id(text, path), source_type=source_type, text=text, warnings=warnings)
