"""Coaching replies grounded in the user's latest vision and journal."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..errors import ValidationError
from ..system_prompts import get_prompt, get_prompt_max_new_tokens
from . import gateway
from .text_generation import generate_text, normalise_messages

EMPTY_ADVICE_MESSAGE = "I'm not sure yet, could you clarify?"


def build_advice_context(user_id: int, vision_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Collect the vision and journal details the coach should know about.

    Uses ``vision_id`` when given, otherwise the user's most recent vision.
    Returns ``None`` when the user has no vision yet.
    """

    if vision_id is not None:
        vision = gateway.get_vision(vision_id, user_id)
    else:
        visions = gateway.list_visions(user_id)
        if not visions:
            return None
        vision = visions[0]

    journal = gateway.latest_journal(vision.id)
    return {
        "vision_title": vision.title or "",
        "vision_description": vision.description or "",
        "journal_summary": vision.journal_running_summary or "",
        "latest_journal": journal.journal_text if journal is not None else "",
        "long_term_todos": list(vision.long_term_todos or []),
        "short_term_todos": list(vision.short_term_todos or []),
    }


def _format_todos(items: Iterable[Any]) -> str:
    texts = []
    for item in items or []:
        text = item if isinstance(item, str) else (item.get("text") if isinstance(item, Mapping) else "")
        if text:
            texts.append(str(text))
    return "; ".join(texts)


def build_system_message(context: Optional[Mapping[str, Any]]) -> str:
    lines = [get_prompt("advice_persona").strip()]
    if not context:
        return lines[0]

    lines.append(f"Vision Title: {context.get('vision_title', '')}")
    lines.append(f"Vision Description: {context.get('vision_description', '')}")
    if context.get("journal_summary"):
        lines.append(f"Journal Running Summary: {context['journal_summary']}")
    if context.get("latest_journal"):
        lines.append(f"Latest Journal Entry: {context['latest_journal']}")
    lines.append(f"Long-Term Todos: {_format_todos(context.get('long_term_todos'))}")
    lines.append(f"Short-Term Todos: {_format_todos(context.get('short_term_todos'))}")
    return "\n".join(lines)


def _conversation(messages: Iterable[Mapping[str, Any]]) -> List[Dict[str, str]]:
    converted = []
    for message in messages:
        if "sender" in message:
            role = "assistant" if message.get("sender") == "ai" else "user"
            converted.append({"role": role, "content": message.get("text") or ""})
        else:
            converted.append(dict(message))
    return [item for item in normalise_messages(converted) if item["role"] != "system"]


def advise(messages: Iterable[Mapping[str, Any]], user_id: int, vision_id: Optional[int] = None) -> str:
    conversation = _conversation(messages)
    if not conversation:
        raise ValidationError("Invalid messages format")

    system_message = build_system_message(build_advice_context(user_id, vision_id))
    reply = generate_text(
        [{"role": "system", "content": system_message}, *conversation],
        max_new_tokens=get_prompt_max_new_tokens("advice_persona"),
    )
    return reply or EMPTY_ADVICE_MESSAGE
