import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from journeylens import create_app
from journeylens.config import TestConfig
from journeylens.errors import ParseError, UpstreamServiceError
from journeylens.services import extraction
from journeylens.services.text_generation import GENERATOR_CACHE_KEY


class DummyGenerator:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def generate(self, messages, **_: object) -> str:
        self.calls.append(messages)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture
def app_ctx():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    ctx.pop()


TRANSCRIPT = [
    {"sender": "ai", "text": "What would you like this vision to be about?"},
    {"sender": "user", "text": "Running my first marathon."},
]


def test_normalize_todos_converts_strings_and_keeps_checked_flags():
    items = ["a", {"text": "b", "checked": True}]

    assert extraction.normalize_todos(items) == [
        {"text": "a", "checked": False},
        {"text": "b", "checked": True},
    ]


def test_normalize_todos_drops_blank_entries():
    items = ["  ", {"text": ""}, None, {"checked": True}, " Stretch daily "]

    assert extraction.normalize_todos(items) == [{"text": "Stretch daily", "checked": False}]


def test_coerce_todo_list_parses_json_array_strings():
    assert extraction.coerce_todo_list('["Buy shoes", "Run 5k"]') == ["Buy shoes", "Run 5k"]


def test_coerce_todo_list_splits_bracketed_text():
    assert extraction.coerce_todo_list("Goals: [Buy shoes, 'Run 5k' , ]") == ["Buy shoes", "Run 5k"]


def test_parse_json_object_recovers_json_embedded_in_prose():
    text = 'Sure! Here is the summary:\n{"title": "Marathon", "nested": {"a": "}"}}\nGood luck!'

    attempt = extraction.parse_json_object(text)

    assert attempt.ok
    assert attempt.method == "brace_extract"
    assert attempt.value == {"title": "Marathon", "nested": {"a": "}"}}


def test_parse_json_object_prefers_direct_parse():
    attempt = extraction.parse_json_object(json.dumps({"title": "Marathon"}))

    assert attempt.ok
    assert attempt.method == "direct"


def test_parse_json_object_fails_without_object():
    attempt = extraction.parse_json_object("I could not do that.")

    assert not attempt.ok
    assert attempt.reason


def test_transcript_messages_maps_ai_to_assistant():
    assert extraction.transcript_messages(TRANSCRIPT) == [
        {"role": "assistant", "content": "What would you like this vision to be about?"},
        {"role": "user", "content": "Running my first marathon."},
    ]


def test_extract_vision_summary_accepts_snake_case_keys(app_ctx):
    reply = 'Summary below.\n{"title": "Marathon", "description": "Finish 42km", "character_description": "A runner in blue"}'
    app_ctx.config[GENERATOR_CACHE_KEY] = DummyGenerator(reply)

    result = extraction.extract_vision_summary(extraction.transcript_messages(TRANSCRIPT))

    assert not result.is_fatal
    assert result.value.title == "Marathon"
    assert result.value.character_description == "A runner in blue"
    assert result.value.image_subject == "A runner in blue"


def test_extract_vision_summary_is_fatal_when_unparseable(app_ctx):
    app_ctx.config[GENERATOR_CACHE_KEY] = DummyGenerator("No JSON today.")

    result = extraction.extract_vision_summary(extraction.transcript_messages(TRANSCRIPT))

    assert result.is_fatal
    assert result.value is None
    assert isinstance(result.exception, ParseError)


def test_extract_vision_summary_is_fatal_when_provider_fails(app_ctx):
    app_ctx.config[GENERATOR_CACHE_KEY] = DummyGenerator(UpstreamServiceError("boom"))

    result = extraction.extract_vision_summary(extraction.transcript_messages(TRANSCRIPT))

    assert result.is_fatal
    assert "boom" in result.error


def test_generate_todos_splits_string_payload(app_ctx):
    reply = json.dumps({"shortTermTodos": '["Buy shoes", "Run 5k"]'})
    app_ctx.config[GENERATOR_CACHE_KEY] = DummyGenerator(reply)

    result = extraction.generate_todos(extraction.transcript_messages(TRANSCRIPT), "short")

    assert result.value == [
        {"text": "Buy shoes", "checked": False},
        {"text": "Run 5k", "checked": False},
    ]


def test_generate_todos_degrades_to_empty_list(app_ctx):
    app_ctx.config[GENERATOR_CACHE_KEY] = DummyGenerator(UpstreamServiceError("rate limited"))

    result = extraction.generate_todos(extraction.transcript_messages(TRANSCRIPT), "long")

    assert result.value == []
    assert result.error == "rate limited"
