"""Vision creation orchestrator.

A calibration session is a short interview: the assistant asks one question
per turn until the user has answered ``CALIBRATION_THRESHOLD`` times, then the
conversation is distilled into a persisted vision with to-dos, a main image
and an illustrated first chapter.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app, url_for

from ..errors import JourneyLensError, NotFoundError, SessionInvalidError, UpstreamServiceError, ValidationError
from ..models import CalibrationSession
from ..system_prompts import get_prompt, get_prompt_max_new_tokens
from . import gateway
from .extraction import extract_vision_summary, generate_todos, transcript_messages
from .illustration import render_chapter_image, render_vision_image
from .narrative import write_first_chapter
from .text_generation import generate_text

INTRO_MESSAGE = "Hi! I'd love to help you craft your vision. What would you like this vision to be about?"
EMPTY_REPLY_MESSAGE = "I'm not sure how to respond to that yet."
REPLY_FAILED_MESSAGE = "I'm having trouble responding right now. Please try again."
SUMMARY_FAILED_MESSAGE = "I had trouble summarizing your vision. Please try again."
SAVE_FAILED_MESSAGE = "Could not save vision. Please try again."
SESSION_LOST_MESSAGE = "Session lost. Please log in again."
DEFAULT_VISION_TITLE = "Untitled Vision"


class CalibrationStage(str, enum.Enum):
    COLLECTING = "collecting"
    SUMMARIZING = "summarizing"
    GENERATING_TODOS = "generating_todos"
    GENERATING_ARTIFACTS = "generating_artifacts"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ConversationMessage:
    id: int
    sender: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "sender": self.sender, "text": self.text}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConversationMessage":
        return cls(id=int(data["id"]), sender=str(data.get("sender") or "user"), text=str(data.get("text") or ""))


@dataclass
class CalibrationState:
    messages: List[ConversationMessage] = field(default_factory=list)
    stage: CalibrationStage = CalibrationStage.COLLECTING
    summarization_triggered: bool = False

    @classmethod
    def from_record(cls, record: CalibrationSession) -> "CalibrationState":
        return cls(
            messages=[ConversationMessage.from_dict(item) for item in record.messages or []],
            stage=CalibrationStage(record.stage or CalibrationStage.COLLECTING.value),
            summarization_triggered=bool(record.summarization_triggered),
        )

    def apply_to(self, record: CalibrationSession) -> CalibrationSession:
        record.messages = [message.to_dict() for message in self.messages]
        record.stage = self.stage.value
        record.summarization_triggered = self.summarization_triggered
        return record

    @property
    def user_message_count(self) -> int:
        return sum(1 for message in self.messages if message.sender == "user")

    def append(self, sender: str, text: str) -> ConversationMessage:
        next_id = max((message.id for message in self.messages), default=0) + 1
        message = ConversationMessage(id=next_id, sender=sender, text=text)
        self.messages.append(message)
        return message

    def compact_history(self, limit: int) -> List[Dict[str, str]]:
        return [{"sender": message.sender, "text": message.text} for message in self.messages[-limit:]]


@dataclass
class PipelineOutcome:
    vision_id: Optional[int] = None
    redirect: Optional[str] = None
    session_invalid: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.vision_id is not None and self.error is None


@dataclass
class TurnOutcome:
    state: CalibrationState
    reply: Optional[ConversationMessage] = None
    pipeline: Optional[PipelineOutcome] = None


class VisionCreationOrchestrator:
    """Drive a calibration conversation for one user."""

    def __init__(self, user, *, threshold: Optional[int] = None, history_limit: Optional[int] = None):
        self.user = user
        self.threshold = threshold or int(current_app.config.get("CALIBRATION_THRESHOLD", 10))
        self.history_limit = history_limit or int(current_app.config.get("CHAT_HISTORY_LIMIT", 50))

    def start_session(self) -> CalibrationState:
        state = CalibrationState()
        state.append("ai", INTRO_MESSAGE)
        return state

    def submit_message(self, state: CalibrationState, text: str) -> TurnOutcome:
        self._ensure_collecting(state)
        cleaned = (text or "").strip()
        if not cleaned:
            raise ValidationError("Message text is required")

        state.append("user", cleaned)
        return self._process_turn(state)

    def edit_message(self, state: CalibrationState, message_id: int, text: str) -> TurnOutcome:
        """Rewrite a user message and discard everything after it."""

        self._ensure_collecting(state)
        cleaned = (text or "").strip()
        if not cleaned:
            raise ValidationError("Message text is required")

        index = next((i for i, message in enumerate(state.messages) if message.id == message_id), None)
        if index is None:
            raise NotFoundError("Message not found")
        if state.messages[index].sender != "user":
            raise ValidationError("Only your own messages can be edited")

        state.messages = state.messages[: index + 1]
        state.messages[index].text = cleaned
        return self._process_turn(state)

    def _ensure_collecting(self, state: CalibrationState) -> None:
        if state.summarization_triggered or state.stage is not CalibrationStage.COLLECTING:
            raise ValidationError("This vision is already being created.")

    def _process_turn(self, state: CalibrationState) -> TurnOutcome:
        if state.user_message_count >= self.threshold and not state.summarization_triggered:
            state.summarization_triggered = True
            outcome = self.run_pipeline(state)
            reply = None
            if outcome.error:
                reply = state.messages[-1]
            return TurnOutcome(state=state, reply=reply, pipeline=outcome)

        return TurnOutcome(state=state, reply=self._ask_next_question(state))

    def _ask_next_question(self, state: CalibrationState) -> ConversationMessage:
        transcript = transcript_messages(state.messages)
        for message in reversed(transcript):
            if message["role"] == "user":
                message["content"] = message["content"] + get_prompt("calibration_steering")
                break

        messages = [{"role": "system", "content": get_prompt("calibration_persona")}, *transcript]
        try:
            reply = generate_text(messages, max_new_tokens=get_prompt_max_new_tokens("calibration_persona"))
        except UpstreamServiceError as exc:
            current_app.logger.warning("Calibration reply failed: %s", exc)
            reply = REPLY_FAILED_MESSAGE
        return state.append("ai", reply or EMPTY_REPLY_MESSAGE)

    def run_pipeline(self, state: CalibrationState) -> PipelineOutcome:
        """Turn the collected conversation into a saved vision."""

        transcript = transcript_messages(state.messages)
        current_app.logger.info("Starting vision pipeline for user %s", self.user.id)

        state.stage = CalibrationStage.SUMMARIZING
        summary_result = extract_vision_summary(transcript)
        if summary_result.is_fatal:
            current_app.logger.warning("Vision summary failed: %s", summary_result.error)
            return self._fail(state, SUMMARY_FAILED_MESSAGE)
        summary = summary_result.value

        state.stage = CalibrationStage.GENERATING_TODOS
        long_term = generate_todos(transcript, "long").value or []
        short_term = generate_todos(transcript, "short").value or []

        state.stage = CalibrationStage.GENERATING_ARTIFACTS
        image_url = render_vision_image(summary.image_subject).value or ""
        chapter = write_first_chapter(
            title=summary.title,
            description=summary.description,
            character_description=summary.character_description,
            full_name=getattr(self.user, "fullname", "") or "",
        ).value
        chapter_image = ""
        if chapter.text and chapter.image_prompt:
            chapter_image = (
                render_chapter_image(
                    chapter.image_prompt,
                    character_description=summary.character_description,
                    reference_image=image_url or None,
                ).value
                or ""
            )

        state.stage = CalibrationStage.PERSISTING
        try:
            vision = gateway.create_vision(
                self.user.id,
                title=summary.title or DEFAULT_VISION_TITLE,
                description=summary.description,
                character_description=summary.character_description,
                image_url=image_url,
                long_term_todos=long_term,
                short_term_todos=short_term,
                story_running_summary=chapter.text or None,
                chat_history=state.compact_history(self.history_limit),
            )
        except SessionInvalidError:
            current_app.logger.warning("User %s no longer exists; vision not saved", self.user.id)
            outcome = self._fail(state, SESSION_LOST_MESSAGE)
            outcome.session_invalid = True
            outcome.redirect = url_for("auth.login")
            return outcome
        except JourneyLensError as exc:
            current_app.logger.warning("Vision insert failed: %s", exc)
            return self._fail(state, SAVE_FAILED_MESSAGE)

        if chapter.text:
            try:
                gateway.create_story(
                    vision.id,
                    chapter=1,
                    text=chapter.text,
                    image=chapter_image,
                    prompt=chapter.image_prompt,
                )
            except JourneyLensError as exc:
                current_app.logger.warning("Story insert failed for vision %s: %s", vision.id, exc)

        state.stage = CalibrationStage.DONE
        current_app.logger.info("Created vision %s for user %s", vision.id, self.user.id)
        return PipelineOutcome(vision_id=vision.id, redirect=url_for("visions.detail", vision_id=vision.id))

    def _fail(self, state: CalibrationState, message: str) -> PipelineOutcome:
        state.stage = CalibrationStage.COLLECTING
        state.summarization_triggered = False
        state.append("ai", message)
        return PipelineOutcome(error=message)
