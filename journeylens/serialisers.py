"""JSON representations of the persisted models."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .models import CalibrationSession, Journal, Story, User, Vision


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def user_to_dict(user: User) -> Dict[str, Any]:
    return {"id": user.id, "username": user.username, "fullname": user.fullname}


def vision_to_dict(vision: Vision, *, include_history: bool = False) -> Dict[str, Any]:
    data = {
        "id": vision.id,
        "user_id": vision.user_id,
        "title": vision.title,
        "description": vision.description or "",
        "character_description": vision.character_description or "",
        "image_url": vision.image_url or "",
        "long_term_todos": list(vision.long_term_todos or []),
        "short_term_todos": list(vision.short_term_todos or []),
        "story_running_summary": vision.story_running_summary or "",
        "journal_running_summary": vision.journal_running_summary or "",
        "created_at": _iso(vision.created_at),
    }
    if include_history:
        data["chat_history"] = list(vision.chat_history or [])
    return data


def journal_to_dict(journal: Journal) -> Dict[str, Any]:
    return {
        "id": journal.id,
        "vision_id": journal.vision_id,
        "entry_date": _iso(journal.entry_date),
        "journal_text": journal.journal_text,
        "created_at": _iso(journal.created_at),
    }


def story_to_dict(story: Story) -> Dict[str, Any]:
    return {
        "id": story.id,
        "vision_id": story.vision_id,
        "chapter": story.chapter,
        "text": story.text,
        "images": list(story.images or []),
        "image_descriptions": list(story.image_descriptions or []),
        "created_at": _iso(story.created_at),
    }


def calibration_to_dict(record: CalibrationSession) -> Dict[str, Any]:
    return {
        "id": record.id,
        "stage": record.stage,
        "summarization_triggered": bool(record.summarization_triggered),
        "messages": list(record.messages or []),
    }
