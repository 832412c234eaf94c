"""Read-only report of global providers and active users."""

from __future__ import annotations

from sqlalchemy import func

from chat_backend import db
from chat_backend.models import Conversation, Provider, User
from chat_backend.services.global_provider_migration import find_global_providers


def _yes_no(value) -> str:
    return "Yes" if value else "No"


def build_provider_report() -> dict:
    conversation_count = (
        db.session.query(func.count(Conversation.id))
        .filter(Conversation.user_id == User.id, Conversation.deleted_at.is_(None))
        .correlate(User)
        .scalar_subquery()
    )
    provider_count = (
        db.session.query(func.count(Provider.id))
        .filter(Provider.user_id == User.id, Provider.deleted_at.is_(None))
        .correlate(User)
        .scalar_subquery()
    )
    user_rows = (
        db.session.query(
            User,
            conversation_count.label("conversations"),
            provider_count.label("providers"),
        )
        .filter(User.deleted_at.is_(None))
        .order_by(User.created_at.asc(), User.id.asc())
        .all()
    )

    return {
        "global_providers": [
            {
                "id": provider.id,
                "name": provider.name,
                "provider_type": provider.provider_type,
                "base_url": provider.base_url,
                "is_default": bool(provider.is_default),
                "enabled": bool(provider.enabled),
            }
            for provider in find_global_providers()
        ],
        "active_users": [
            {
                "id": user.id,
                "email": user.email,
                "display_name": user.display_name,
                "conversation_count": int(conversations or 0),
                "provider_count": int(providers or 0),
            }
            for user, conversations, providers in user_rows
        ],
    }


def format_provider_report(report: dict) -> str:
    lines = ["=== Global Providers (user_id IS NULL) ==="]
    providers = report.get("global_providers", [])
    lines.append(f"Found: {len(providers)} providers")
    lines.append("")
    for provider in providers:
        lines.extend(
            [
                f"ID: {provider['id']}",
                f"  Name: {provider['name']}",
                f"  Type: {provider['provider_type']}",
                f"  Base URL: {provider['base_url']}",
                f"  Default: {_yes_no(provider['is_default'])}",
                f"  Enabled: {_yes_no(provider['enabled'])}",
                "",
            ]
        )

    users = report.get("active_users", [])
    lines.append("=== Active Users ===")
    lines.append(f"Found: {len(users)} users")
    lines.append("")
    for user in users:
        lines.extend(
            [
                f"ID: {user['id']}",
                f"  Email: {user['email']}",
                f"  Display Name: {user['display_name'] or '(none)'}",
                f"  Conversations: {user['conversation_count']}",
                f"  Providers: {user['provider_count']}",
                "",
            ]
        )
    return "\n".join(lines)
