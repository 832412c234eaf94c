"""Database models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from werkzeug.security import check_password_hash, generate_password_hash

from chat_backend import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_uuid() -> str:
    return str(uuid.uuid4())


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_new_uuid)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(255))
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    last_login_at = db.Column(db.DateTime(timezone=True))
    deleted_at = db.Column(db.DateTime(timezone=True), index=True)

    providers = db.relationship("Provider", back_populates="user", lazy="dynamic")

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str | None) -> bool:
        if not password or not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "email_verified": bool(self.email_verified),
            "created_at": _isoformat(self.created_at),
            "last_login_at": _isoformat(self.last_login_at),
        }

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class Provider(db.Model):
    """LLM provider configuration, global when user_id is NULL."""

    __tablename__ = "providers"
    __table_args__ = (
        db.UniqueConstraint("user_id", "name", name="uq_providers_user_name"),
        db.Index("idx_providers_user_enabled", "user_id", "enabled"),
    )

    id = db.Column(db.String(255), primary_key=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), index=True, nullable=True
    )
    name = db.Column(db.String(255), nullable=False)
    provider_type = db.Column(db.String(64), nullable=False)
    api_key = db.Column(db.Text)
    base_url = db.Column(db.Text)
    is_default = db.Column(db.Boolean, nullable=False, default=False, index=True)
    enabled = db.Column(db.Boolean, nullable=False, default=True, index=True)
    extra_headers = db.Column(db.JSON, nullable=False, default=dict)
    # `metadata` is reserved on declarative models.
    provider_metadata = db.Column("metadata", db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), index=True)

    user = db.relationship("User", back_populates="providers")

    def to_dict(self, include_api_key: bool = False, viewer_id: str | None = None) -> dict:
        payload = {
            "id": self.id,
            "name": self.name,
            "provider_type": self.provider_type,
            "base_url": self.base_url,
            "is_default": bool(self.is_default),
            "enabled": bool(self.enabled),
            "extra_headers": dict(self.extra_headers or {}),
            "metadata": dict(self.provider_metadata or {}),
            "user_id": self.user_id,
            "is_user_provider": viewer_id is not None and self.user_id == viewer_id,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }
        if include_api_key:
            payload["api_key"] = self.api_key
        return payload

    def __repr__(self) -> str:
        owner = self.user_id or "global"
        return f"<Provider {self.id} ({owner})>"


class Conversation(db.Model):
    __tablename__ = "conversations"

    id = db.Column(db.String(36), primary_key=True, default=_new_uuid)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), index=True, nullable=False
    )
    title = db.Column(db.String(500))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    deleted_at = db.Column(db.DateTime(timezone=True))


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()
