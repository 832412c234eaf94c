"""Row builders shared by the test modules."""

from flask_jwt_extended import create_access_token

from chat_backend import db
from chat_backend.models import Conversation, Provider, User, utcnow


def create_user(email, password="pw", deleted=False, display_name=None):
    user = User(email=email, display_name=display_name)
    user.set_password(password)
    if deleted:
        user.deleted_at = utcnow()
    db.session.add(user)
    db.session.commit()
    return user


def create_provider(
    provider_id,
    name,
    provider_type="openai",
    user_id=None,
    deleted=False,
    **fields,
):
    now = utcnow()
    provider = Provider(
        id=provider_id,
        user_id=user_id,
        name=name,
        provider_type=provider_type,
        api_key=fields.pop("api_key", None),
        base_url=fields.pop("base_url", None),
        is_default=fields.pop("is_default", False),
        enabled=fields.pop("enabled", True),
        extra_headers=fields.pop("extra_headers", {}),
        provider_metadata=fields.pop("metadata", {}),
        created_at=now,
        updated_at=now,
        deleted_at=now if deleted else None,
    )
    db.session.add(provider)
    db.session.commit()
    return provider


def auth_header(user):
    token = create_access_token(identity=str(user.id))
    return {"Authorization": f"Bearer {token}"}


def create_conversation(user, title="Chat", deleted=False):
    conversation = Conversation(user_id=user.id, title=title)
    if deleted:
        conversation.deleted_at = utcnow()
    db.session.add(conversation)
    db.session.commit()
    return conversation
