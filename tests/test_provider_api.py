from chat_backend import db
from chat_backend.models import Provider
from helpers import auth_header, create_provider, create_user


def test_unauthenticated_requests_are_rejected(client):
    response = client.get("/v1/providers")
    assert response.status_code == 401
    assert response.get_json()["code"] == "UNAUTHORIZED"


def test_list_puts_own_providers_before_globals(client, app):
    alice = create_user("alice@example.com")
    bob = create_user("bob@example.com")
    create_provider("global-openai", "OpenAI", is_default=True)
    create_provider("alice-anthropic", "Claude", provider_type="anthropic", user_id=alice.id)
    create_provider("bob-openai", "Bob's", user_id=bob.id)
    create_provider("alice-old", "Old", user_id=alice.id, deleted=True)

    response = client.get("/v1/providers", headers=auth_header(alice))

    assert response.status_code == 200
    providers = response.get_json()["data"]["providers"]
    assert [p["id"] for p in providers] == ["alice-anthropic", "global-openai"]
    assert providers[0]["is_user_provider"] is True
    assert providers[1]["is_user_provider"] is False


def test_api_key_is_never_returned(client, app):
    alice = create_user("alice@example.com")
    create_provider("alice-openai", "OpenAI", user_id=alice.id, api_key="sk-secret")

    response = client.get("/v1/providers/alice-openai", headers=auth_header(alice))

    assert response.status_code == 200
    assert "api_key" not in response.get_json()["data"]
    assert "sk-secret" not in response.get_data(as_text=True)


def test_other_users_provider_is_not_visible(client, app):
    alice = create_user("alice@example.com")
    bob = create_user("bob@example.com")
    create_provider("bob-openai", "OpenAI", user_id=bob.id)

    response = client.get("/v1/providers/bob-openai", headers=auth_header(alice))

    assert response.status_code == 404


def test_create_provider_is_owned_by_caller(client, app):
    alice = create_user("alice@example.com")

    response = client.post(
        "/v1/providers",
        headers=auth_header(alice),
        json={
            "id": "alice-openai",
            "name": "OpenAI",
            "provider_type": "openai",
            "api_key": "sk-test",
            "base_url": "https://api.openai.com/v1",
            "extra_headers": {"X-Org": "acme"},
            "user_id": "someone-else",
        },
    )

    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["user_id"] == alice.id
    assert data["enabled"] is True
    assert data["extra_headers"] == {"X-Org": "acme"}
    stored = db.session.get(Provider, "alice-openai")
    assert stored.api_key == "sk-test"


def test_create_requires_name_and_type(client, app):
    alice = create_user("alice@example.com")

    response = client.post(
        "/v1/providers", headers=auth_header(alice), json={"name": "Only name"}
    )

    assert response.status_code == 400
    assert response.get_json()["code"] == "INVALID_REQUEST"


def test_create_duplicate_name_conflicts(client, app):
    alice = create_user("alice@example.com")
    create_provider("alice-openai", "OpenAI", user_id=alice.id)

    response = client.post(
        "/v1/providers",
        headers=auth_header(alice),
        json={"name": "OpenAI", "provider_type": "openai"},
    )

    assert response.status_code == 409
    assert response.get_json()["code"] == "CONFLICT"


def test_same_name_is_allowed_for_different_users(client, app):
    alice = create_user("alice@example.com")
    bob = create_user("bob@example.com")
    create_provider("bob-openai", "OpenAI", user_id=bob.id)

    response = client.post(
        "/v1/providers",
        headers=auth_header(alice),
        json={"name": "OpenAI", "provider_type": "openai"},
    )

    assert response.status_code == 201


def test_gemini_and_anthropic_drop_base_url(client, app):
    alice = create_user("alice@example.com")

    response = client.post(
        "/v1/providers",
        headers=auth_header(alice),
        json={
            "name": "Gemini",
            "provider_type": "gemini",
            "base_url": "https://example.invalid",
        },
    )

    assert response.status_code == 201
    assert response.get_json()["data"]["base_url"] is None


def test_update_keeps_omitted_fields(client, app):
    alice = create_user("alice@example.com")
    create_provider(
        "alice-openai",
        "OpenAI",
        user_id=alice.id,
        api_key="sk-old",
        base_url="https://api.openai.com/v1",
    )

    response = client.put(
        "/v1/providers/alice-openai",
        headers=auth_header(alice),
        json={"name": "OpenAI (work)", "enabled": False},
    )

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["name"] == "OpenAI (work)"
    assert data["enabled"] is False
    assert data["base_url"] == "https://api.openai.com/v1"
    assert db.session.get(Provider, "alice-openai").api_key == "sk-old"


def test_update_cannot_touch_global_provider(client, app):
    alice = create_user("alice@example.com")
    create_provider("global-openai", "OpenAI")

    response = client.put(
        "/v1/providers/global-openai",
        headers=auth_header(alice),
        json={"name": "Hijacked"},
    )

    assert response.status_code == 404
    assert db.session.get(Provider, "global-openai").name == "OpenAI"


def test_set_default_clears_other_defaults(client, app):
    alice = create_user("alice@example.com")
    create_provider("a", "A", user_id=alice.id, is_default=True)
    create_provider("b", "B", user_id=alice.id, enabled=False)

    response = client.post("/v1/providers/b/default", headers=auth_header(alice))

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["is_default"] is True
    assert data["enabled"] is True
    db.session.expire_all()
    assert db.session.get(Provider, "a").is_default is False


def test_default_falls_back_to_global(client, app):
    alice = create_user("alice@example.com")
    create_provider("global-openai", "OpenAI", is_default=True)
    create_provider("alice-a", "A", user_id=alice.id)

    response = client.get("/v1/providers/default", headers=auth_header(alice))
    assert response.get_json()["data"]["id"] == "global-openai"

    client.post("/v1/providers/alice-a/default", headers=auth_header(alice))
    response = client.get("/v1/providers/default", headers=auth_header(alice))
    assert response.get_json()["data"]["id"] == "alice-a"


def test_default_not_found_without_providers(client, app):
    alice = create_user("alice@example.com")

    response = client.get("/v1/providers/default", headers=auth_header(alice))

    assert response.status_code == 404
    assert response.get_json()["code"] == "NOT_FOUND"


def test_delete_soft_deletes_own_provider(client, app):
    alice = create_user("alice@example.com")
    create_provider("alice-openai", "OpenAI", user_id=alice.id)

    response = client.delete("/v1/providers/alice-openai", headers=auth_header(alice))
    assert response.status_code == 200

    again = client.delete("/v1/providers/alice-openai", headers=auth_header(alice))
    assert again.status_code == 404

    db.session.expire_all()
    stored = db.session.get(Provider, "alice-openai")
    assert stored is not None
    assert stored.deleted_at is not None


def test_writes_blocked_in_read_only_mode(client, app):
    alice = create_user("alice@example.com")
    app.config["DB_READ_ONLY"] = True

    response = client.post(
        "/v1/providers",
        headers=auth_header(alice),
        json={"name": "OpenAI", "provider_type": "openai"},
    )
    listing = client.get("/v1/providers", headers=auth_header(alice))

    assert response.status_code == 503
    assert response.get_json()["code"] == "DB_READ_ONLY"
    assert listing.status_code == 200


def test_deleted_user_token_is_rejected(client, app):
    alice = create_user("alice@example.com", deleted=True)

    response = client.get("/v1/providers", headers=auth_header(alice))

    assert response.status_code == 401
