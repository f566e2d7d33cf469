"""Unit tests validating Pydantic schema constraints."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import Settings
from app.models import NotificationType
from app.schemas import MessageCreate, NotificationCreate, UserCreate


def test_user_create_normalises_username():
    user = UserCreate(username="  Alice ", password="password123")
    assert user.username == "alice"


def test_user_create_enforces_password_length():
    with pytest.raises(ValidationError):
        UserCreate(username="bob", password="short", display_name="Bob")


def test_message_create_requires_text_or_image():
    with pytest.raises(ValidationError):
        MessageCreate(chat_id=1, text="   ")

    assert MessageCreate(chat_id=1, text="  hi  ").text == "hi"
    assert MessageCreate(chat_id=1, image_url="https://img.example/a.png").text == ""


def test_notification_create_rejects_unknown_type():
    with pytest.raises(ValidationError):
        NotificationCreate(recipient_id=1, type="poke", message="poked you")

    created = NotificationCreate(recipient_id=1, type="mention", message="mentioned you")
    assert created.type is NotificationType.MENTION


def test_settings_split_cors_origins_and_prefer_database_url():
    settings = Settings(
        cors_origins="http://a.example, http://b.example",
        DATABASE_URL="sqlite:///./local.db",
    )

    assert settings.cors_origins == ["http://a.example", "http://b.example"]
    assert settings.database_url == "sqlite:///./local.db"

    parts = Settings(DATABASE_URL=None, db_host="mysql", db_name="chat")
    assert parts.database_url.endswith("@mysql:3306/chat")
