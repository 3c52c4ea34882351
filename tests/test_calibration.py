import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from journeylens import create_app
from journeylens.config import TestConfig
from journeylens.errors import UpstreamServiceError, ValidationError
from journeylens.extensions import db
from journeylens.models import Story, User, Vision
from journeylens.services import calibration, gateway
from journeylens.services.gateway import PersistenceError
from journeylens.services.image_generation import GENERATOR_CACHE_KEY as IMAGE_CACHE_KEY
from journeylens.services.text_generation import GENERATOR_CACHE_KEY as TEXT_CACHE_KEY
from journeylens.system_prompts import get_prompt


class ScriptedGenerator:
    """Answers each pipeline prompt with a canned reply."""

    def __init__(self, summary=None):
        self.summary = summary or json.dumps(
            {
                "title": "Marathon Finisher",
                "description": "Cross the finish line of a full marathon.",
                "characterDescription": "A determined runner in a blue jacket",
            }
        )
        self.calls = []
        self.summary_calls = 0

    def generate(self, messages, **_: object) -> str:
        self.calls.append(messages)
        system = messages[0]["content"]
        last = messages[-1]["content"]
        if last == get_prompt("vision_summary"):
            self.summary_calls += 1
            return self.summary
        if last == get_prompt("long_term_todos"):
            return json.dumps({"longTermTodos": ["Finish a marathon", {"text": "Join a club", "checked": True}]})
        if last == get_prompt("short_term_todos"):
            return json.dumps({"short_term_todos": ["Buy running shoes"]})
        if system == get_prompt("first_chapter"):
            return "Maya laced her shoes before sunrise."
        if system == get_prompt("chapter_image_prompt"):
            return "A runner on an empty road at dawn"
        return f"Question {len(self.calls)}?"


class DummyImageGenerator:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def generate_image(self, prompt, *, reference_image=None, model=None):
        self.calls.append({"prompt": prompt, "reference_image": reference_image, "model": model})
        if self.fail:
            raise UpstreamServiceError("image provider down")
        return f"https://images.test/{len(self.calls)}.png"


@pytest.fixture
def app_instance():
    app = create_app(TestConfig)
    ctx = app.test_request_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def user(app_instance):
    account = User(username="maya", fullname="Maya Lopez")
    account.set_password("password123")
    db.session.add(account)
    db.session.commit()
    return account


@pytest.fixture
def generator(app_instance):
    scripted = ScriptedGenerator()
    app_instance.config[TEXT_CACHE_KEY] = scripted
    return scripted


@pytest.fixture
def images(app_instance):
    dummy = DummyImageGenerator()
    app_instance.config[IMAGE_CACHE_KEY] = dummy
    return dummy


def _answer(orchestrator, state, count):
    outcome = None
    for index in range(count):
        outcome = orchestrator.submit_message(state, f"Answer {index + 1}")
    return outcome


def test_start_session_opens_with_intro_message(app_instance, user):
    state = calibration.VisionCreationOrchestrator(user).start_session()

    assert [message.to_dict() for message in state.messages] == [
        {"id": 1, "sender": "ai", "text": calibration.INTRO_MESSAGE}
    ]
    assert state.stage is calibration.CalibrationStage.COLLECTING


def test_fewer_than_threshold_messages_stay_collecting(app_instance, user, generator, images):
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    outcome = _answer(orchestrator, state, 9)

    assert state.stage is calibration.CalibrationStage.COLLECTING
    assert not state.summarization_triggered
    assert outcome.pipeline is None
    assert outcome.reply.sender == "ai"
    assert generator.summary_calls == 0
    assert Vision.query.count() == 0


def test_steering_suffix_is_added_to_latest_user_message_only(app_instance, user, generator):
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    _answer(orchestrator, state, 2)

    sent = generator.calls[-1]
    user_contents = [message["content"] for message in sent if message["role"] == "user"]
    assert user_contents == ["Answer 1", "Answer 2" + get_prompt("calibration_steering")]
    assert sent[0] == {"role": "system", "content": get_prompt("calibration_persona")}


def test_threshold_triggers_pipeline_exactly_once(app_instance, user, generator, images):
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    outcome = _answer(orchestrator, state, 10)

    assert generator.summary_calls == 1
    assert outcome.pipeline.succeeded
    assert state.stage is calibration.CalibrationStage.DONE
    assert outcome.pipeline.redirect == f"/visions/{outcome.pipeline.vision_id}"

    with pytest.raises(ValidationError):
        orchestrator.submit_message(state, "One more thing")
    assert generator.summary_calls == 1

    vision = db.session.get(Vision, outcome.pipeline.vision_id)
    assert vision.title == "Marathon Finisher"
    assert vision.long_term_todos == [
        {"text": "Finish a marathon", "checked": False},
        {"text": "Join a club", "checked": True},
    ]
    assert vision.short_term_todos == [{"text": "Buy running shoes", "checked": False}]
    assert vision.image_url == "https://images.test/1.png"
    assert vision.story_running_summary == "Maya laced her shoes before sunrise."
    assert len(vision.chat_history) == 20
    assert vision.chat_history[0] == {"sender": "ai", "text": calibration.INTRO_MESSAGE}

    story = Story.query.filter_by(vision_id=vision.id).one()
    assert story.chapter == 1
    assert story.images == [
        {"chapter": 1, "prompt": "A runner on an empty road at dawn", "image": "https://images.test/2.png"}
    ]


def test_chapter_image_uses_main_image_as_reference(app_instance, user, generator, images):
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    _answer(orchestrator, state, 10)

    main_call, chapter_call = images.calls
    assert main_call["prompt"] == "A determined runner in a blue jacket"
    assert main_call["reference_image"] is None
    assert chapter_call["reference_image"] == "https://images.test/1.png"
    assert chapter_call["model"] == app_instance.config["IMAGE_REFERENCE_MODEL"]
    assert "Keep the established character style: A determined runner in a blue jacket" in chapter_call["prompt"]


def test_image_failure_still_saves_vision_and_story(app_instance, user, generator):
    app_instance.config[IMAGE_CACHE_KEY] = DummyImageGenerator(fail=True)
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    outcome = _answer(orchestrator, state, 10)

    vision = db.session.get(Vision, outcome.pipeline.vision_id)
    assert vision.image_url == ""
    story = Story.query.filter_by(vision_id=vision.id).one()
    assert story.text == "Maya laced her shoes before sunrise."
    assert story.images[0]["image"] == ""


def test_unparseable_summary_keeps_history_and_resets_latch(app_instance, user, images):
    app_instance.config[TEXT_CACHE_KEY] = ScriptedGenerator(summary="I am not able to summarise that.")
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    outcome = _answer(orchestrator, state, 10)

    assert outcome.pipeline.error == calibration.SUMMARY_FAILED_MESSAGE
    assert outcome.reply.text == calibration.SUMMARY_FAILED_MESSAGE
    assert not state.summarization_triggered
    assert state.stage is calibration.CalibrationStage.COLLECTING
    assert state.user_message_count == 10
    assert Vision.query.count() == 0


def test_missing_user_marks_session_invalid(app_instance, generator, images):
    ghost = SimpleNamespace(id=999, fullname="Ghost")
    orchestrator = calibration.VisionCreationOrchestrator(ghost, threshold=1)
    state = orchestrator.start_session()

    outcome = orchestrator.submit_message(state, "I want to write a novel")

    assert outcome.pipeline.session_invalid
    assert outcome.pipeline.redirect == "/auth/login"
    assert outcome.pipeline.error == calibration.SESSION_LOST_MESSAGE
    assert Vision.query.count() == 0


def test_edit_truncates_history_and_regenerates_reply(app_instance, user, generator):
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()
    _answer(orchestrator, state, 3)
    assert [message.id for message in state.messages] == [1, 2, 3, 4, 5, 6, 7]

    outcome = orchestrator.edit_message(state, 4, "A better second answer")

    assert [message.id for message in state.messages] == [1, 2, 3, 4, 5]
    assert state.messages[3].text == "A better second answer"
    assert state.messages[-1] is outcome.reply
    assert outcome.reply.sender == "ai"


def test_editing_ai_message_is_rejected(app_instance, user, generator):
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    with pytest.raises(ValidationError):
        orchestrator.edit_message(state, 1, "Rewritten intro")


def test_reply_failure_is_appended_as_message(app_instance, user):
    class FailingGenerator:
        def generate(self, messages, **_: object) -> str:
            raise UpstreamServiceError("timeout")

    app_instance.config[TEXT_CACHE_KEY] = FailingGenerator()
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    outcome = orchestrator.submit_message(state, "Hello")

    assert outcome.reply.text == calibration.REPLY_FAILED_MESSAGE


def test_state_round_trips_through_session_record(app_instance, user, generator):
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()
    _answer(orchestrator, state, 1)

    record = state.apply_to(calibration.CalibrationSession(user_id=user.id))
    restored = calibration.CalibrationState.from_record(record)

    assert restored == state


def test_edit_that_reaches_threshold_runs_pipeline(app_instance, user, images):
    scripted = ScriptedGenerator()
    good_summary = scripted.summary
    scripted.summary = "Not a summary."
    app_instance.config[TEXT_CACHE_KEY] = scripted
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()
    failed = _answer(orchestrator, state, 10)
    assert failed.pipeline.error == calibration.SUMMARY_FAILED_MESSAGE

    scripted.summary = good_summary
    last_user_id = next(message.id for message in reversed(state.messages) if message.sender == "user")
    outcome = orchestrator.edit_message(state, last_user_id, "Answer 10, reworded")

    assert outcome.pipeline.succeeded
    assert state.stage is calibration.CalibrationStage.DONE
    assert scripted.summary_calls == 2
    assert state.messages[-1].text == "Answer 10, reworded"
    vision = db.session.get(Vision, outcome.pipeline.vision_id)
    assert vision.chat_history[-1] == {"sender": "user", "text": "Answer 10, reworded"}


def test_story_insert_failure_keeps_vision(monkeypatch, app_instance, user, generator, images):
    def failing_create_story(*args, **kwargs):
        raise PersistenceError("Could not save story.")

    monkeypatch.setattr(gateway, "create_story", failing_create_story)
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    outcome = _answer(orchestrator, state, 10)

    assert outcome.pipeline.succeeded
    assert state.stage is calibration.CalibrationStage.DONE
    assert Vision.query.count() == 1
    assert Story.query.count() == 0


def test_vision_insert_failure_reports_save_error_and_resets_latch(monkeypatch, app_instance, user, generator, images):
    def failing_create_vision(*args, **kwargs):
        raise PersistenceError("Could not save vision.")

    monkeypatch.setattr(gateway, "create_vision", failing_create_vision)
    orchestrator = calibration.VisionCreationOrchestrator(user)
    state = orchestrator.start_session()

    outcome = _answer(orchestrator, state, 10)

    assert outcome.pipeline.error == calibration.SAVE_FAILED_MESSAGE
    assert outcome.reply.text == calibration.SAVE_FAILED_MESSAGE
    assert not outcome.pipeline.session_invalid
    assert not state.summarization_triggered
    assert state.stage is calibration.CalibrationStage.COLLECTING
    assert Vision.query.count() == 0
