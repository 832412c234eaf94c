from chat_backend.services.global_provider_migration import migrate_global_providers
from chat_backend.services.provider_report import (
    build_provider_report,
    format_provider_report,
)
from helpers import create_conversation, create_provider, create_user


def test_report_lists_globals_and_active_users(app):
    alice = create_user("alice@example.com", display_name="Alice")
    create_user("gone@example.com", deleted=True)
    create_conversation(alice)
    create_provider("openai", "OpenAI", base_url="https://api.openai.com/v1", is_default=True)
    create_provider("retired", "Retired", deleted=True)
    create_provider("alice-own", "Own", user_id=alice.id)

    report = build_provider_report()

    assert report["global_providers"] == [
        {
            "id": "openai",
            "name": "OpenAI",
            "provider_type": "openai",
            "base_url": "https://api.openai.com/v1",
            "is_default": True,
            "enabled": True,
        }
    ]
    assert report["active_users"] == [
        {
            "id": alice.id,
            "email": "alice@example.com",
            "display_name": "Alice",
            "conversation_count": 1,
            "provider_count": 1,
        }
    ]


def test_report_after_migration_shows_no_globals(app):
    alice = create_user("alice@example.com")
    create_provider("openai", "OpenAI")
    migrate_global_providers()

    report = build_provider_report()

    assert report["global_providers"] == []
    assert report["active_users"][0]["id"] == alice.id
    assert report["active_users"][0]["provider_count"] == 1


def test_format_provider_report_renders_sections(app):
    create_user("alice@example.com")
    create_provider("openai", "OpenAI", enabled=False)

    text = format_provider_report(build_provider_report())

    assert "=== Global Providers (user_id IS NULL) ===" in text
    assert "Found: 1 providers" in text
    assert "  Enabled: No" in text
    assert "=== Active Users ===" in text
    assert "  Email: alice@example.com" in text
    assert "  Display Name: (none)" in text
