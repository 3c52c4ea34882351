"""Narrative generation: story chapters, illustration prompts and running summaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from ..errors import UpstreamServiceError
from ..system_prompts import get_prompt, get_prompt_max_new_tokens
from .results import StageResult, run_stage
from .text_generation import generate_text

FALLBACK_PROMPT_CHAPTER_CHARS = 400


@dataclass
class ChapterDraft:
    text: str
    image_prompt: str


def _lines(*parts: Optional[str]) -> str:
    return "\n".join(part for part in parts if part)


def _ask(prompt_key: str, context: str) -> str:
    messages = [
        {"role": "system", "content": get_prompt(prompt_key)},
        {"role": "user", "content": context},
    ]
    return generate_text(messages, max_new_tokens=get_prompt_max_new_tokens(prompt_key))


def write_first_chapter(
    *,
    title: str,
    description: str,
    character_description: str = "",
    full_name: str = "",
) -> StageResult[ChapterDraft]:
    """Write chapter one and the prompt used to illustrate it.

    A failed chapter degrades to empty text; a failed illustration prompt
    keeps the chapter and degrades only the prompt.
    """

    empty = ChapterDraft(text="", image_prompt="")
    if not description:
        return StageResult.degraded(empty, "description is required to generate a story")

    story_context = _lines(
        f"Vision Title: {title}" if title else None,
        f"Vision Description: {description}",
        f"Main Character Name: {full_name}" if full_name else None,
        "Write the first chapter of this motivational story.",
    )
    try:
        story = _ask("first_chapter", story_context)
    except UpstreamServiceError as exc:
        current_app.logger.warning("First chapter generation failed; continuing without a story. Error: %s", exc)
        return StageResult.degraded(empty, str(exc))

    if not story:
        return StageResult.degraded(empty, "Story generation returned empty text")

    prompt_result = run_stage(
        "chapter image prompt",
        lambda: write_chapter_image_prompt(
            description=description,
            character_description=character_description,
            chapter_text=story,
            full_name=full_name,
        ),
        fallback="",
    )
    draft = ChapterDraft(text=story, image_prompt=prompt_result.value or "")
    if prompt_result.error:
        return StageResult.degraded(draft, prompt_result.error)
    return StageResult.ok(draft)


def write_chapter_image_prompt(
    *,
    description: str,
    character_description: str,
    chapter_text: str,
    full_name: str = "",
) -> str:
    context = _lines(
        f"Vision Description: {description or ''}",
        f"Character Description: {character_description}" if character_description else None,
        f"Main Character Name: {full_name}" if full_name else None,
        "Chapter Text:",
        chapter_text,
    )
    return _ask("chapter_image_prompt", context)


def fallback_image_prompt(chapter_text: str, character_description: str = "") -> str:
    """Deterministic illustration prompt used when the model returns nothing."""

    return _lines(
        "Illustrate this chapter:",
        (chapter_text or "")[:FALLBACK_PROMPT_CHAPTER_CHARS],
        f"Keep the character consistent: {character_description}" if character_description else None,
    )


def update_journal_summary(previous_summary: str, new_entry: str) -> StageResult[str]:
    context = f"previousSummary:\n{previous_summary or ''}\n\nnewEntry:\n{new_entry}"
    return run_stage("journal summary", lambda: _ask("journal_summary", context), fallback="")


def write_next_chapter(
    *,
    vision_title: str,
    vision_description: str,
    story_running_summary: str,
    last_chapter: str,
    latest_journal: str,
) -> StageResult[str]:
    context = "\n".join(
        [
            f"visionTitle: {vision_title or ''}",
            f"visionDescription: {vision_description or ''}",
            f"storyRunningSummary: {story_running_summary or ''}",
            f"lastChapter: {last_chapter or ''}",
            f"latestJournal: {latest_journal}",
        ]
    )
    return run_stage("next chapter", lambda: _ask("next_chapter", context), fallback="")


def append_running_summary(previous: Optional[str], chapter_text: str) -> Optional[str]:
    if previous:
        return f"{previous}\n\n{chapter_text}".strip()
    return chapter_text or None
