from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db, login_manager


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False, index=True)
    fullname = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    visions = db.relationship(
        "Vision",
        backref="owner",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Vision.created_at.desc()",
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def __repr__(self) -> str:  # pragma: no cover - repr for debugging
        return f"<User {self.username}>"


@login_manager.user_loader
def load_user(user_id: str) -> Optional["User"]:
    return db.session.get(User, int(user_id))


class Vision(db.Model):
    __tablename__ = "visions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    character_description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.Text, nullable=True)
    long_term_todos = db.Column(db.JSON, nullable=False, default=list)
    short_term_todos = db.Column(db.JSON, nullable=False, default=list)
    story_running_summary = db.Column(db.Text, nullable=True)
    journal_running_summary = db.Column(db.Text, nullable=True)
    chat_history = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    journals = db.relationship(
        "Journal",
        backref="vision",
        lazy=True,
        cascade="all, delete-orphan",
    )
    stories = db.relationship(
        "Story",
        backref="vision",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Vision {self.title} (user {self.user_id})>"


class Journal(db.Model):
    __tablename__ = "journals"

    id = db.Column(db.Integer, primary_key=True)
    vision_id = db.Column(db.Integer, db.ForeignKey("visions.id"), nullable=False, index=True)
    entry_date = db.Column(db.Date, nullable=False, default=date.today)
    journal_text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Journal {self.entry_date} (vision {self.vision_id})>"


class Story(db.Model):
    __tablename__ = "stories"

    id = db.Column(db.Integer, primary_key=True)
    vision_id = db.Column(db.Integer, db.ForeignKey("visions.id"), nullable=False, index=True)
    chapter = db.Column(db.Integer, nullable=False, default=1)
    text = db.Column(db.Text, nullable=False)
    images = db.Column(db.JSON, nullable=False, default=list)
    image_descriptions = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Story chapter {self.chapter} (vision {self.vision_id})>"

    @property
    def primary_image(self) -> dict:
        if isinstance(self.images, list) and self.images and isinstance(self.images[0], dict):
            return self.images[0]
        return {}


class CalibrationSession(db.Model):
    __tablename__ = "calibration_sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    stage = db.Column(db.String(50), nullable=False, default="collecting")
    summarization_triggered = db.Column(db.Boolean, nullable=False, default=False)
    messages = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<CalibrationSession {self.id} ({self.stage})>"
