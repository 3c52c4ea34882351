"""Structured extraction of a vision and its to-do lists from a calibration chat."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from flask import current_app

from ..errors import ParseError, UpstreamServiceError
from ..system_prompts import get_prompt, get_prompt_max_new_tokens
from .results import ParseAttempt, StageResult
from .text_generation import generate_text


@dataclass
class VisionSummary:
    title: str
    description: str
    character_description: str

    @property
    def image_subject(self) -> str:
        return self.character_description or self.description or self.title


_TODO_KEYS = {
    "long": ("longTermTodos", "long_term_todos"),
    "short": ("shortTermTodos", "short_term_todos"),
}
_TODO_PROMPTS = {"long": "long_term_todos", "short": "short_term_todos"}

_BRACKET_PATTERN = re.compile(r"\[(.*)\]", re.DOTALL)


def transcript_messages(messages: Iterable[Any]) -> List[Dict[str, str]]:
    """Map conversation messages onto the generic ``{role, content}`` shape."""

    mapped: List[Dict[str, str]] = []
    for message in messages:
        sender = _field(message, "sender")
        mapped.append(
            {
                "role": "assistant" if sender == "ai" else "user",
                "content": _field(message, "text") or "",
            }
        )
    return mapped


def _field(message: Any, name: str) -> Any:
    if isinstance(message, Mapping):
        return message.get(name)
    return getattr(message, name, None)


def try_direct_parse(text: str) -> ParseAttempt:
    try:
        parsed = json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        return ParseAttempt.failure(f"not valid JSON: {exc}")
    if not isinstance(parsed, dict):
        return ParseAttempt.failure("JSON is not an object")
    return ParseAttempt.success(parsed, "direct")


def try_brace_extract(text: str) -> ParseAttempt:
    candidate = _extract_json_object(text or "")
    if candidate is None:
        return ParseAttempt.failure("no JSON object found")
    attempt = try_direct_parse(candidate)
    if not attempt.ok:
        return attempt
    return ParseAttempt.success(attempt.value, "brace_extract")


DEFAULT_PARSE_CHAIN: Sequence[Callable[[str], ParseAttempt]] = (try_direct_parse, try_brace_extract)


def parse_json_object(
    text: Optional[str],
    chain: Sequence[Callable[[str], ParseAttempt]] = DEFAULT_PARSE_CHAIN,
) -> ParseAttempt:
    """Run ``text`` through ``chain`` and return the first successful attempt."""

    cleaned = (text or "").strip()
    if not cleaned:
        return ParseAttempt.failure("empty response")

    reasons = []
    for step in chain:
        attempt = step(cleaned)
        if attempt.ok:
            return attempt
        reasons.append(attempt.reason or "unknown")
    return ParseAttempt.failure("; ".join(reasons))


def _extract_json_object(text: str) -> Optional[str]:
    """Return the first top-level JSON object found in ``text`` or ``None``."""

    start = None
    depth = 0
    in_string = False
    escape = False
    for index, char in enumerate(text):
        if start is None:
            if char == "{":
                start = index
                depth = 1
            continue

        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]

    return None


def _base_conversation(transcript: List[Dict[str, str]]) -> List[Dict[str, str]]:
    return [{"role": "system", "content": get_prompt("calibration_persona")}, *transcript]


def extract_vision_summary(transcript: List[Dict[str, str]]) -> StageResult[VisionSummary]:
    """Ask the model to distil the calibration chat into a vision summary.

    Both a provider failure and an unparseable reply are fatal to the
    calibration pipeline; there is no sensible default vision.
    """

    messages = [
        *_base_conversation(transcript),
        {"role": "user", "content": get_prompt("vision_summary")},
    ]
    try:
        raw_response = generate_text(messages, max_new_tokens=get_prompt_max_new_tokens("vision_summary"))
    except UpstreamServiceError as exc:
        current_app.logger.warning("Vision summary generation failed: %s", exc)
        return StageResult.fatal(f"Failed to summarize: {exc}", exc)

    attempt = parse_json_object(raw_response)
    if not attempt.ok:
        current_app.logger.warning("Unable to parse vision summary (%s): %s", attempt.reason, raw_response)
        return StageResult.fatal(
            "Failed to summarize: the vision summary could not be parsed.",
            ParseError(attempt.reason or "unparseable vision summary"),
        )

    data = attempt.value
    summary = VisionSummary(
        title=_clean_text(data.get("title")),
        description=_clean_text(data.get("description")),
        character_description=_clean_text(
            data.get("characterDescription") or data.get("character_description")
        ),
    )
    return StageResult.ok(summary)


def generate_todos(transcript: List[Dict[str, str]], kind: str) -> StageResult[List[Dict[str, Any]]]:
    """Generate the ``long`` or ``short`` term to-do list; failures yield ``[]``."""

    prompt_key = _TODO_PROMPTS[kind]
    messages = [
        *_base_conversation(transcript),
        {"role": "user", "content": get_prompt(prompt_key)},
    ]
    try:
        raw_response = generate_text(messages, max_new_tokens=get_prompt_max_new_tokens(prompt_key))
    except UpstreamServiceError as exc:
        current_app.logger.warning("%s-term to-do generation failed; using empty list. Error: %s", kind, exc)
        return StageResult.degraded([], str(exc))

    attempt = parse_json_object(raw_response)
    if not attempt.ok:
        current_app.logger.warning("Unable to parse %s-term to-dos (%s): %s", kind, attempt.reason, raw_response)
        return StageResult.degraded([], attempt.reason or "unparseable to-do list")

    camel_key, snake_key = _TODO_KEYS[kind]
    raw_list = attempt.value.get(camel_key)
    if raw_list is None:
        raw_list = attempt.value.get(snake_key)
    return StageResult.ok(normalize_todos(coerce_todo_list(raw_list)))


def coerce_todo_list(value: Any) -> List[Any]:
    """Return ``value`` as a list, splitting string payloads into items."""

    if isinstance(value, list):
        return value
    if not isinstance(value, str):
        return []

    trimmed = value.strip()
    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return parsed

    match = _BRACKET_PATTERN.search(trimmed)
    inner = match.group(1) if match else trimmed
    items = [item.strip().strip("\"'").strip() for item in inner.split(",")]
    return [item for item in items if item]


def normalize_todos(items: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    """Normalise to-do entries to ``{"text": str, "checked": bool}``.

    Bare strings are unchecked; objects keep their ``checked`` flag. Entries
    without text are dropped.
    """

    normalised: List[Dict[str, Any]] = []
    for item in items or []:
        if isinstance(item, str):
            text, checked = item, False
        elif isinstance(item, Mapping):
            text, checked = item.get("text"), bool(item.get("checked"))
        elif item is None:
            continue
        else:
            text, checked = str(item), False

        cleaned = _clean_text(text)
        if cleaned:
            normalised.append({"text": cleaned, "checked": checked})
    return normalised


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return value.strip()
