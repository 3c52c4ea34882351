"""Persistence gateway for visions, journals, stories and calibration sessions.

Every write commits on success and rolls back on failure so that a failed
stage never leaves the session in a dirty state.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import JourneyLensError, NotFoundError, SessionInvalidError, ValidationError
from ..extensions import db
from ..models import CalibrationSession, Journal, Story, User, Vision
from .extraction import normalize_todos

SESSION_LOST_MESSAGE = "User not found. Please log in again."

_VISION_FIELDS = ("title", "description", "character_description", "image_url")


class PersistenceError(JourneyLensError):
    """Raised when a database write fails for a reason other than a lost session."""


def _commit(action: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning("Integrity error while trying to %s: %s", action, exc)
        raise PersistenceError(f"Could not {action}.") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Database error while trying to %s", action)
        raise PersistenceError(f"Could not {action}.") from exc


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "23503":
        return True
    return "foreign key" in str(orig or exc).lower()


def create_vision(
    user_id: int,
    *,
    title: str,
    description: str = "",
    character_description: str = "",
    image_url: str = "",
    long_term_todos: Optional[Iterable[Any]] = None,
    short_term_todos: Optional[Iterable[Any]] = None,
    story_running_summary: Optional[str] = None,
    chat_history: Optional[List[Dict[str, str]]] = None,
) -> Vision:
    """Insert a vision for ``user_id``.

    Raises :class:`SessionInvalidError` when the owning user no longer exists.
    """

    if db.session.get(User, user_id) is None:
        raise SessionInvalidError(SESSION_LOST_MESSAGE)

    vision = Vision(
        user_id=user_id,
        title=title,
        description=description or "",
        character_description=character_description or "",
        image_url=image_url or "",
        long_term_todos=normalize_todos(long_term_todos),
        short_term_todos=normalize_todos(short_term_todos),
        story_running_summary=story_running_summary,
        chat_history=list(chat_history or []),
    )
    db.session.add(vision)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if _is_foreign_key_violation(exc):
            # The user row vanished between the check and the insert.
            raise SessionInvalidError(SESSION_LOST_MESSAGE) from exc
        current_app.logger.warning("Integrity error while inserting vision for user %s: %s", user_id, exc)
        raise PersistenceError("Could not save vision.") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to insert vision for user %s", user_id)
        raise PersistenceError("Could not save vision.") from exc
    return vision


def get_vision(vision_id: int, user_id: Optional[int] = None) -> Vision:
    vision = db.session.get(Vision, vision_id)
    if vision is None or (user_id is not None and vision.user_id != user_id):
        raise NotFoundError("Vision not found")
    return vision


def list_visions(user_id: int) -> List[Vision]:
    return (
        Vision.query.filter_by(user_id=user_id)
        .order_by(Vision.created_at.desc(), Vision.id.desc())
        .all()
    )


def update_vision(vision_id: int, user_id: int, changes: Mapping[str, Any]) -> Vision:
    """Apply ``changes`` to a vision; keys that are not present stay untouched."""

    vision = get_vision(vision_id, user_id)

    for field in _VISION_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(vision, field, str(changes[field]))
    if "title" in changes and not (vision.title or "").strip():
        raise ValidationError("Title is required")

    for field in ("long_term_todos", "short_term_todos"):
        if field in changes and changes[field] is not None:
            setattr(vision, field, normalize_todos(changes[field]))

    _commit("update vision")
    return vision


def delete_vision(vision_id: int, user_id: int) -> None:
    vision = get_vision(vision_id, user_id)
    db.session.delete(vision)
    _commit("delete vision")


def create_journal(vision_id: int, journal_text: str, entry_date: Optional[date] = None) -> Journal:
    journal = Journal(
        vision_id=vision_id,
        journal_text=journal_text,
        entry_date=entry_date or date.today(),
    )
    db.session.add(journal)
    _commit("save journal")
    return journal


def list_journals(vision_id: int) -> List[Journal]:
    return (
        Journal.query.filter_by(vision_id=vision_id)
        .order_by(Journal.entry_date.desc(), Journal.created_at.desc(), Journal.id.desc())
        .all()
    )


def latest_journal(vision_id: int) -> Optional[Journal]:
    journals = list_journals(vision_id)
    return journals[0] if journals else None


def create_story(
    vision_id: int,
    *,
    chapter: int,
    text: str,
    image: str = "",
    prompt: str = "",
) -> Story:
    story = Story(
        vision_id=vision_id,
        chapter=chapter,
        text=text,
        images=[{"chapter": chapter, "prompt": prompt, "image": image}],
        image_descriptions=[{"chapter": chapter, "prompt": prompt}],
    )
    db.session.add(story)
    _commit("save story")
    return story


def list_stories(vision_id: int) -> List[Story]:
    return (
        Story.query.filter_by(vision_id=vision_id)
        .order_by(Story.created_at.asc(), Story.id.asc())
        .all()
    )


def latest_story(vision_id: int) -> Optional[Story]:
    return (
        Story.query.filter_by(vision_id=vision_id)
        .order_by(Story.created_at.desc(), Story.id.desc())
        .first()
    )


def get_story(story_id: int, vision_id: Optional[int] = None) -> Story:
    story = db.session.get(Story, story_id)
    if story is None or (vision_id is not None and story.vision_id != vision_id):
        raise NotFoundError("Story not found")
    return story


def update_story_image(
    story_id: int,
    *,
    image: str,
    prompt: Optional[str] = None,
    chapter: Optional[int] = None,
) -> Story:
    """Replace the first illustration of a story.

    ``chapter`` and ``prompt`` keep their stored values unless overridden.
    """

    story = get_story(story_id)
    current_image = dict(story.images[0]) if story.images and isinstance(story.images[0], dict) else {}
    current_description = (
        dict(story.image_descriptions[0])
        if story.image_descriptions and isinstance(story.image_descriptions[0], dict)
        else {}
    )
    current_image.setdefault("chapter", story.chapter or 1)
    current_description.setdefault("chapter", current_image["chapter"])
    current_description.setdefault("prompt", current_image.get("prompt", ""))

    if chapter is not None:
        current_image["chapter"] = chapter
        current_description["chapter"] = chapter
    if prompt is not None:
        current_image["prompt"] = prompt
        current_description["prompt"] = prompt
    current_image["image"] = image

    # Assign new lists so the JSON columns are flagged as modified.
    story.images = [current_image] + list(story.images[1:] if story.images else [])
    story.image_descriptions = [current_description] + list(
        story.image_descriptions[1:] if story.image_descriptions else []
    )
    _commit("update story image")
    return story


def get_calibration_session(session_id: int, user_id: int) -> CalibrationSession:
    record = db.session.get(CalibrationSession, session_id)
    if record is None or record.user_id != user_id:
        raise NotFoundError("Calibration session not found")
    return record


def save_calibration_session(record: CalibrationSession) -> CalibrationSession:
    db.session.add(record)
    _commit("save calibration session")
    return record


def delete_calibration_session(record: CalibrationSession) -> None:
    db.session.delete(record)
    _commit("delete calibration session")


def update_running_summaries(vision: Vision, *, journal_summary: str, story_summary: Optional[str]) -> Vision:
    vision.journal_running_summary = journal_summary
    vision.story_running_summary = story_summary
    _commit("update vision summaries")
    return vision
