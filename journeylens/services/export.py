"""Export a vision's story as plain text or PDF."""

from __future__ import annotations

import textwrap
import unicodedata
from typing import Iterable, Optional

from fpdf import FPDF

from ..errors import JourneyLensError


class ExportError(JourneyLensError):
    """Raised when a story export cannot be rendered."""


_LATIN1_REPLACEMENTS = {
    ord("\u2010"): "-",
    ord("\u2011"): "-",
    ord("\u2013"): "-",
    ord("\u2014"): "-",
    ord("\u2212"): "-",
    ord("\u2018"): "'",
    ord("\u2019"): "'",
    ord("\u201C"): '"',
    ord("\u201D"): '"',
    ord("\u2026"): "...",
    ord("\u00A0"): " ",
    ord("\u202F"): " ",
    ord("\u200B"): "",
    ord("\ufeff"): "",
}


def _clean(value: Optional[str]) -> str:
    if not value:
        return ""
    return str(value).strip()


def _todo_lines(todos: Iterable[object]) -> list[str]:
    lines = []
    for item in todos or []:
        if not isinstance(item, dict) or not _clean(item.get("text")):
            continue
        marker = "[x]" if item.get("checked") else "[ ]"
        lines.append(f"{marker} {_clean(item.get('text'))}")
    return lines


def export_story_to_txt(vision: object, stories: Iterable[object]) -> str:
    """Return the vision and its chapters as a UTF-8 text document."""

    lines: list[str] = [_clean(getattr(vision, "title", "")) or "Untitled Vision"]

    description = _clean(getattr(vision, "description", ""))
    if description:
        lines.extend(["", description])

    for label, attribute in (("Long-term goals", "long_term_todos"), ("Short-term goals", "short_term_todos")):
        todo_lines = _todo_lines(getattr(vision, attribute, None) or [])
        if todo_lines:
            lines.extend(["", f"{label}:", *todo_lines])

    for story in stories:
        lines.extend(["", f"Chapter {getattr(story, 'chapter', '?')}", ""])
        lines.append(_clean(getattr(story, "text", "")) or "(No chapter text available.)")

    return "\n".join(lines).rstrip() + "\n"


def _pdf_safe_text(text: str) -> str:
    normalized = unicodedata.normalize("NFKC", text or "").replace("\t", " ")
    return normalized.translate(_LATIN1_REPLACEMENTS).encode("latin-1", "replace").decode("latin-1")


def _wrapped(text: str, width: int = 100) -> str:
    wrapped_lines = []
    for raw_line in _pdf_safe_text(text).splitlines():
        wrapped_lines.extend(
            textwrap.wrap(raw_line, width=width, break_long_words=True, break_on_hyphens=False) or [""]
        )
    return "\n".join(wrapped_lines)


def _write(pdf: FPDF, height: float, text: str) -> None:
    pdf.set_x(pdf.l_margin)
    pdf.multi_cell(pdf.w - pdf.l_margin - pdf.r_margin, height, _wrapped(text))


def export_story_to_pdf(vision: object, stories: Iterable[object]) -> bytes:
    """Render the vision and its chapters to PDF bytes."""

    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.set_margins(15, 15, 15)

    pdf.add_page()
    pdf.set_font("Times", "B", 18)
    _write(pdf, 10, _clean(getattr(vision, "title", "")) or "Untitled Vision")
    pdf.ln(4)

    description = _clean(getattr(vision, "description", ""))
    if description:
        pdf.set_font("Times", "I", 12)
        _write(pdf, 6, description)

    for story in stories:
        pdf.add_page()
        pdf.set_font("Times", "B", 14)
        _write(pdf, 10, f"Chapter {getattr(story, 'chapter', '?')}")
        pdf.set_font("Times", "", 12)
        content = _clean(getattr(story, "text", "")) or "(No chapter text available.)"
        for paragraph in content.split("\n\n"):
            if paragraph.strip():
                _write(pdf, 6.5, paragraph.strip())
                pdf.ln(1.5)

    try:
        return bytes(pdf.output())
    except Exception as exc:  # pragma: no cover - fpdf internals
        raise ExportError(f"Unable to export PDF: {exc}") from exc
