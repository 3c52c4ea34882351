import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy.exc import IntegrityError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from journeylens import create_app
from journeylens.config import TestConfig
from journeylens.errors import NotFoundError, SessionInvalidError
from journeylens.extensions import db
from journeylens.models import Journal, Story, User, Vision
from journeylens.services import gateway
from journeylens.services.gateway import PersistenceError


@pytest.fixture
def app_instance():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def user(app_instance):
    account = User(username="sam", fullname="Sam Okafor")
    account.set_password("password123")
    db.session.add(account)
    db.session.commit()
    return account


@pytest.fixture
def vision(user):
    return gateway.create_vision(user.id, title="Open a bakery", description="Sourdough every morning.")


def test_create_vision_for_missing_user_is_session_invalid(app_instance):
    with pytest.raises(SessionInvalidError) as excinfo:
        gateway.create_vision(42, title="Orphan")

    assert str(excinfo.value) == "User not found. Please log in again."
    assert Vision.query.count() == 0


def test_update_story_image_preserves_chapter_and_prompt(vision):
    story = gateway.create_story(vision.id, chapter=2, text="Flour everywhere.", image="old.png", prompt="A warm kitchen")

    updated = gateway.update_story_image(story.id, image="new.png")

    assert updated.images == [{"chapter": 2, "prompt": "A warm kitchen", "image": "new.png"}]
    assert updated.image_descriptions == [{"chapter": 2, "prompt": "A warm kitchen"}]


def test_update_story_image_applies_overrides(vision):
    story = gateway.create_story(vision.id, chapter=2, text="Flour everywhere.", image="old.png", prompt="A warm kitchen")

    updated = gateway.update_story_image(story.id, image="new.png", prompt="A busy counter")

    assert updated.images[0] == {"chapter": 2, "prompt": "A busy counter", "image": "new.png"}
    assert updated.image_descriptions[0] == {"chapter": 2, "prompt": "A busy counter"}


def test_update_story_image_defaults_chapter_when_images_missing(vision):
    story = Story(vision_id=vision.id, chapter=5, text="Legacy chapter", images=[], image_descriptions=[])
    db.session.add(story)
    db.session.commit()

    updated = gateway.update_story_image(story.id, image="fresh.png")

    assert updated.images == [{"chapter": 5, "image": "fresh.png"}]
    assert updated.image_descriptions == [{"chapter": 5, "prompt": ""}]


def test_journals_are_listed_newest_entry_first(vision):
    first = gateway.create_journal(vision.id, "Monday", date(2024, 1, 1))
    second = gateway.create_journal(vision.id, "Wednesday", date(2024, 1, 3))
    third = gateway.create_journal(vision.id, "Wednesday again", date(2024, 1, 3))

    assert [journal.id for journal in gateway.list_journals(vision.id)] == [third.id, second.id, first.id]
    assert gateway.latest_journal(vision.id).id == third.id


def test_stories_are_listed_in_creation_order(vision):
    first = gateway.create_story(vision.id, chapter=1, text="One")
    second = gateway.create_story(vision.id, chapter=2, text="Two")

    assert [story.id for story in gateway.list_stories(vision.id)] == [first.id, second.id]
    assert gateway.latest_story(vision.id).id == second.id


def test_delete_vision_cascades(vision, user):
    gateway.create_journal(vision.id, "Kneaded dough")
    gateway.create_story(vision.id, chapter=1, text="The oven hummed.")

    gateway.delete_vision(vision.id, user.id)

    assert Vision.query.count() == 0
    assert Journal.query.count() == 0
    assert Story.query.count() == 0


def test_vision_owned_by_someone_else_is_not_found(vision):
    with pytest.raises(NotFoundError):
        gateway.get_vision(vision.id, vision.user_id + 1)


def test_update_vision_normalises_todos(vision, user):
    updated = gateway.update_vision(
        vision.id,
        user.id,
        {"title": "Open two bakeries", "short_term_todos": ["Find a lease", {"text": " ", "checked": True}]},
    )

    assert updated.title == "Open two bakeries"
    assert updated.short_term_todos == [{"text": "Find a lease", "checked": False}]
    assert updated.description == "Sourdough every morning."


def _failing_commit(message):
    def commit():
        raise IntegrityError("INSERT INTO visions", {}, Exception(message))

    return commit


def test_foreign_key_failure_on_vision_insert_is_session_invalid(monkeypatch, user):
    monkeypatch.setattr(db.session, "commit", _failing_commit("FOREIGN KEY constraint failed"))

    with pytest.raises(SessionInvalidError):
        gateway.create_vision(user.id, title="Vanishing user")


def test_other_integrity_failure_on_vision_insert_is_persistence_error(monkeypatch, user):
    monkeypatch.setattr(db.session, "commit", _failing_commit("NOT NULL constraint failed: visions.title"))

    with pytest.raises(PersistenceError) as excinfo:
        gateway.create_vision(user.id, title="Broken row")

    assert str(excinfo.value) == "Could not save vision."


def test_missing_table_is_recreated_on_start(app_instance):
    from sqlalchemy import inspect

    from journeylens.db_utils import ensure_database_schema

    Story.__table__.drop(bind=db.engine)
    assert "stories" not in inspect(db.engine).get_table_names()

    ensure_database_schema()

    assert "stories" in inspect(db.engine).get_table_names()
