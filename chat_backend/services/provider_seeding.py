from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from chat_backend import db
from chat_backend.models import Provider, User, utcnow
from chat_backend.services.provider_store import count_active_providers
from chat_backend.services.transaction import transaction
from config import ProviderSeedConfig, get_config

logger = logging.getLogger(__name__)


def seed_provider_from_env(
    user: User, seed: ProviderSeedConfig | None = None
) -> Provider | None:
    """Give a user with no providers the provider configured in the environment.

    Returns the seeded provider, or None when nothing was seeded. Database
    failures are logged and swallowed so registration never depends on it.
    """
    seed = seed or get_config().provider_seed
    if not seed.is_configured:
        logger.info("Skipping env provider seeding for %s: no provider configured", user.id)
        return None

    try:
        if count_active_providers(user.id) > 0:
            return None

        provider_id = f"{user.id}-{seed.provider_type}"
        provider = db.session.get(Provider, provider_id)
        now = utcnow()
        with transaction():
            if provider is None:
                provider = Provider(id=provider_id, user_id=user.id, created_at=now)
                db.session.add(provider)
            provider.name = seed.display_name
            provider.provider_type = seed.provider_type
            provider.api_key = seed.api_key or provider.api_key
            provider.base_url = seed.base_url or provider.base_url
            provider.extra_headers = dict(seed.headers)
            provider.provider_metadata = {"model_filter": seed.model_filter}
            provider.is_default = True
            provider.enabled = True
            provider.deleted_at = None
            provider.updated_at = now
    except SQLAlchemyError as exc:
        logger.warning("Env provider seeding failed for user %s: %s", user.id, exc)
        return None

    logger.info("Seeded provider %s for user %s", provider.id, user.id)
    return provider
