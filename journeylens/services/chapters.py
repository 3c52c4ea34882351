"""Journal-triggered chapter pipeline.

Saving a journal entry folds it into the vision's running summary and
continues the story with a new illustrated chapter.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from flask import current_app

from ..errors import ValidationError
from ..models import Journal, Story, Vision
from . import gateway
from .illustration import render_chapter_image
from .narrative import (
    append_running_summary,
    fallback_image_prompt,
    update_journal_summary,
    write_chapter_image_prompt,
    write_next_chapter,
)
from .results import run_stage


@dataclass
class ChapterOutcome:
    journal: Journal
    vision: Vision
    story: Optional[Story] = None
    journal_summary: str = ""
    chapter_text: str = ""
    image_prompt: str = ""
    image: str = ""


def _chapter_number(story: Optional[Story]) -> int:
    if story is None:
        return 0
    try:
        return int(story.chapter or 0)
    except (TypeError, ValueError):
        return 0


def create_journal_with_chapter(
    vision_id: int,
    journal_text: str,
    *,
    user_id: Optional[int] = None,
    entry_date: Optional[date] = None,
) -> ChapterOutcome:
    """Persist a journal entry and the chapter it inspires.

    Raises :class:`NotFoundError` before anything is written when the vision
    does not exist. Generation failures degrade; write failures propagate.
    """

    text = (journal_text or "").strip()
    if not text:
        raise ValidationError("Journal text is required")

    vision = gateway.get_vision(vision_id, user_id)

    last_story = gateway.latest_story(vision.id)
    last_chapter = _chapter_number(last_story)
    last_chapter_text = (last_story.text if last_story is not None else "") or ""

    journal_summary = update_journal_summary(vision.journal_running_summary or "", text).value or ""

    chapter_text = write_next_chapter(
        vision_title=vision.title,
        vision_description=vision.description or "",
        story_running_summary=vision.story_running_summary or "",
        last_chapter=last_chapter_text,
        latest_journal=text,
    ).value or ""

    image_prompt = ""
    image = ""
    if chapter_text:
        image_prompt = run_stage(
            "chapter image prompt",
            lambda: write_chapter_image_prompt(
                description=vision.description or "",
                character_description=vision.character_description or "",
                chapter_text=chapter_text,
            ),
            fallback="",
        ).value or ""
        if not image_prompt:
            image_prompt = fallback_image_prompt(chapter_text, vision.character_description or "")

        image = render_chapter_image(
            image_prompt,
            character_description=vision.character_description or "",
            reference_image=vision.image_url or None,
        ).value or ""

    journal = gateway.create_journal(vision.id, text, entry_date)

    story_summary = vision.story_running_summary
    if chapter_text:
        story_summary = append_running_summary(story_summary, chapter_text)
    gateway.update_running_summaries(vision, journal_summary=journal_summary, story_summary=story_summary)

    story = None
    if chapter_text:
        story = gateway.create_story(
            vision.id,
            chapter=last_chapter + 1,
            text=chapter_text,
            image=image,
            prompt=image_prompt,
        )
        current_app.logger.info("Saved chapter %s for vision %s", story.chapter, vision.id)

    return ChapterOutcome(
        journal=journal,
        vision=vision,
        story=story,
        journal_summary=journal_summary,
        chapter_text=chapter_text,
        image_prompt=image_prompt,
        image=image,
    )
