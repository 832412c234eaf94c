"""Move global providers (user_id IS NULL) into every active user's scope.

One pass:
  1. read the active global providers,
  2. plan a personal copy of each one for every active user,
  3. insert the copies and soft-delete the global rows in one transaction,
  4. verify and write a JSON audit log.

Re-running after a successful pass is a no-op because no active global row
is left. A dry run stops after planning; it reports the same counts and
touches neither the database nor the log directory.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from chat_backend import db
from chat_backend.models import Conversation, Provider, User, utcnow
from chat_backend.services.transaction import transaction

logger = logging.getLogger(__name__)

ACTION_COPIED = "copied"
ACTION_SKIPPED = "skipped"
ACTION_ERROR = "error"

PERSONAL_SUFFIX = " (Personal)"
AUDIT_LOG_PREFIX = "migration-global-providers-"

REASON_SAME_TYPE_AND_NAME = "User already has provider with same type and name"
REASON_COPY_EXISTS = "Provider copy already exists"

_IN_CHUNK_SIZE = 500


class MigrationError(RuntimeError):
    """The migration transaction failed and was rolled back."""


@dataclass
class ActiveUser:
    id: str
    email: str
    display_name: Optional[str] = None
    conversation_count: int = 0


@dataclass
class MigrationEntry:
    user_id: str
    user_email: str
    provider_id: str
    provider_name: str
    action: str
    reason: Optional[str] = None
    new_provider_id: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {
            "userId": self.user_id,
            "userEmail": self.user_email,
            "providerId": self.provider_id,
            "providerName": self.provider_name,
            "action": self.action,
            "reason": self.reason,
        }
        if self.new_provider_id is not None:
            payload["newProviderId"] = self.new_provider_id
        return payload


@dataclass
class VerificationResult:
    remaining_global_providers: int = 0
    users_without_providers: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.remaining_global_providers == 0 and not self.users_without_providers

    def to_dict(self) -> dict:
        return {
            "remainingGlobalProviders": self.remaining_global_providers,
            "usersWithoutProviders": list(self.users_without_providers),
        }


@dataclass
class MigrationResult:
    dry_run: bool
    global_providers_count: int = 0
    active_users_count: int = 0
    entries: list[MigrationEntry] = field(default_factory=list)
    soft_deleted: int = 0
    verification: Optional[VerificationResult] = None
    audit_log_path: Optional[Path] = None
    started_at: datetime = field(default_factory=utcnow)

    def _count(self, action: str) -> int:
        return sum(1 for entry in self.entries if entry.action == action)

    @property
    def copied(self) -> int:
        return self._count(ACTION_COPIED)

    @property
    def skipped(self) -> int:
        return self._count(ACTION_SKIPPED)

    @property
    def errors(self) -> int:
        return self._count(ACTION_ERROR)

    @property
    def success_rate(self) -> float:
        """Share of (user, provider) pairs handled without error, in percent."""
        pairs = len(self.entries)
        if pairs == 0:
            return 100.0
        return round((pairs - self.errors) / pairs * 100, 2)

    def to_dict(self) -> dict:
        return {
            "timestamp": iso_timestamp(self.started_at),
            "dryRun": self.dry_run,
            "globalProvidersCount": self.global_providers_count,
            "activeUsersCount": self.active_users_count,
            "totalCopied": self.copied,
            "totalSkipped": self.skipped,
            "totalErrors": self.errors,
            "softDeleted": self.soft_deleted,
            "successRate": self.success_rate,
            "verification": self.verification.to_dict() if self.verification else None,
            "details": [entry.to_dict() for entry in self.entries],
        }


def iso_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a trailing Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def personal_copy_id(user_id: str, provider_id: str) -> str:
    return f"{user_id}-{provider_id}"


def personal_copy_name(name: str) -> str:
    return f"{name}{PERSONAL_SUFFIX}"


def find_global_providers() -> list[Provider]:
    return (
        Provider.query.filter(
            Provider.user_id.is_(None),
            Provider.deleted_at.is_(None),
        )
        .order_by(Provider.id.asc())
        .all()
    )


def _conversation_count_subquery():
    return (
        db.session.query(func.count(Conversation.id))
        .filter(
            Conversation.user_id == User.id,
            Conversation.deleted_at.is_(None),
        )
        .correlate(User)
        .scalar_subquery()
    )


def find_active_users() -> list[ActiveUser]:
    rows = (
        db.session.query(User, _conversation_count_subquery().label("conversations"))
        .filter(User.deleted_at.is_(None))
        .order_by(User.created_at.asc(), User.id.asc())
        .all()
    )
    return [
        ActiveUser(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            conversation_count=int(conversations or 0),
        )
        for user, conversations in rows
    ]


def _chunks(values: list, size: int = _IN_CHUNK_SIZE) -> Iterable[list]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _load_owned_rows(user_ids: list[str]) -> dict[str, list[Provider]]:
    owned: dict[str, list[Provider]] = {user_id: [] for user_id in user_ids}
    for chunk in _chunks(user_ids):
        for provider in Provider.query.filter(Provider.user_id.in_(chunk)).all():
            owned[provider.user_id].append(provider)
    return owned


def _load_rows_by_id(provider_ids: list[str]) -> dict[str, Provider]:
    rows: dict[str, Provider] = {}
    for chunk in _chunks(provider_ids):
        for provider in Provider.query.filter(Provider.id.in_(chunk)).all():
            rows[provider.id] = provider
    return rows


def plan_migration(
    global_providers: list[Provider], users: list[ActiveUser]
) -> list[MigrationEntry]:
    """Decide copy/skip/error for every (user, global provider) pair.

    Soft-deleted rows still own their id and their (user_id, name) slot, so a
    copy that would reuse either is reported as an error instead of failing
    the whole transaction later.
    Distinct pairs can also map to one copy id (user `a` with global `b-c`,
    user `a-b` with global `c`); only the first of them is copied.
    """
    owned = _load_owned_rows([user.id for user in users])
    rows_by_id = _load_rows_by_id(
        [
            personal_copy_id(user.id, provider.id)
            for user in users
            for provider in global_providers
        ]
    )

    entries: list[MigrationEntry] = []
    planned_ids: set[str] = set()
    for user in users:
        user_rows = owned.get(user.id, [])
        active_keys = {
            (row.provider_type, row.name) for row in user_rows if row.deleted_at is None
        }
        taken_names = {row.name for row in user_rows}

        for provider in global_providers:
            entry = MigrationEntry(
                user_id=user.id,
                user_email=user.email,
                provider_id=provider.id,
                provider_name=provider.name,
                action=ACTION_COPIED,
            )
            copy_id = personal_copy_id(user.id, provider.id)
            copy_name = personal_copy_name(provider.name)
            existing = rows_by_id.get(copy_id)

            if (provider.provider_type, provider.name) in active_keys:
                entry.action = ACTION_SKIPPED
                entry.reason = REASON_SAME_TYPE_AND_NAME
            elif (
                existing is not None
                and existing.deleted_at is None
                and existing.user_id == user.id
            ):
                entry.action = ACTION_SKIPPED
                entry.reason = REASON_COPY_EXISTS
            elif existing is not None or copy_id in planned_ids:
                entry.action = ACTION_ERROR
                entry.reason = f"Provider id {copy_id} is already taken"
            elif copy_name in taken_names:
                entry.action = ACTION_ERROR
                entry.reason = f"User already has a provider named {copy_name}"
            else:
                entry.new_provider_id = copy_id
                planned_ids.add(copy_id)
                taken_names.add(copy_name)

            entries.append(entry)
    return entries


def _personal_copy(provider: Provider, entry: MigrationEntry, now: datetime) -> Provider:
    return Provider(
        id=entry.new_provider_id,
        user_id=entry.user_id,
        name=personal_copy_name(provider.name),
        provider_type=provider.provider_type,
        api_key=provider.api_key,
        base_url=provider.base_url,
        is_default=bool(provider.is_default),
        enabled=bool(provider.enabled),
        extra_headers=dict(provider.extra_headers or {}),
        provider_metadata=dict(provider.provider_metadata or {}),
        created_at=now,
        updated_at=now,
    )


def _log_entry(entry: MigrationEntry, dry_run: bool) -> None:
    if entry.action == ACTION_COPIED:
        verb = "Would copy" if dry_run else "Copied"
        logger.info(
            "%s %s -> %s for %s",
            verb,
            entry.provider_name,
            entry.new_provider_id,
            entry.user_email,
        )
    elif entry.action == ACTION_SKIPPED:
        logger.warning(
            "Skipping %s for %s: %s", entry.provider_name, entry.user_email, entry.reason
        )
    else:
        logger.error(
            "Cannot copy %s for %s: %s", entry.provider_name, entry.user_email, entry.reason
        )


def verify_migration() -> VerificationResult:
    remaining = Provider.query.filter(
        Provider.user_id.is_(None),
        Provider.deleted_at.is_(None),
    ).count()

    has_provider = (
        db.session.query(Provider.id)
        .filter(Provider.user_id == User.id, Provider.deleted_at.is_(None))
        .exists()
    )
    users = (
        User.query.filter(User.deleted_at.is_(None), ~has_provider)
        .order_by(User.created_at.asc(), User.id.asc())
        .all()
    )
    return VerificationResult(
        remaining_global_providers=remaining,
        users_without_providers=[{"id": user.id, "email": user.email} for user in users],
    )


def write_audit_log(result: MigrationResult, log_dir: Path | str) -> Path:
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = iso_timestamp(result.started_at).replace(":", "-").replace(".", "-")
    payload = json.dumps(result.to_dict(), indent=2)
    attempt = 0
    while True:
        suffix = f"-{attempt}" if attempt else ""
        path = log_dir / f"{AUDIT_LOG_PREFIX}{stamp}{suffix}.json"
        try:
            with path.open("x", encoding="utf-8") as fh:
                fh.write(payload)
        except FileExistsError:
            attempt += 1
            continue
        break
    result.audit_log_path = path
    return path


def migrate_global_providers(
    *,
    dry_run: bool = False,
    log_dir: Path | str | None = None,
    now: datetime | None = None,
) -> MigrationResult:
    """Copy every active global provider to every active user.

    Args:
        dry_run: plan only; no database writes and no audit log.
        log_dir: where the audit log goes; None skips writing it.
        now: timestamp stamped on copies, soft-deletes and the log name.

    Raises:
        MigrationError: the write transaction failed and was rolled back.
    """
    now = now or utcnow()
    result = MigrationResult(dry_run=dry_run, started_at=now)

    global_providers = find_global_providers()
    result.global_providers_count = len(global_providers)
    logger.info("Found %d global providers", len(global_providers))
    if not global_providers:
        logger.info("No global providers found. Migration not needed.")
        if not dry_run:
            result.verification = verify_migration()
        return result

    users = find_active_users()
    result.active_users_count = len(users)
    logger.info("Found %d active users", len(users))
    if not users:
        logger.warning(
            "No active users found. Global providers will be soft-deleted without copies."
        )

    result.entries = plan_migration(global_providers, users)
    for entry in result.entries:
        _log_entry(entry, dry_run)

    if dry_run:
        result.soft_deleted = len(global_providers)
        logger.info("Would soft-delete %d global providers", result.soft_deleted)
        return result

    by_id = {provider.id: provider for provider in global_providers}
    global_ids = list(by_id)
    try:
        with transaction():
            for entry in result.entries:
                if entry.action == ACTION_COPIED:
                    db.session.add(
                        _personal_copy(by_id[entry.provider_id], entry, now)
                    )
            db.session.flush()
            soft_deleted = 0
            for chunk in _chunks(global_ids):
                soft_deleted += Provider.query.filter(
                    Provider.id.in_(chunk),
                    Provider.user_id.is_(None),
                    Provider.deleted_at.is_(None),
                ).update(
                    {Provider.deleted_at: now, Provider.updated_at: now},
                    synchronize_session=False,
                )
    except SQLAlchemyError as exc:
        raise MigrationError(f"Global provider migration failed: {exc}") from exc

    result.soft_deleted = soft_deleted
    logger.info("Soft-deleted %d global providers", soft_deleted)

    result.verification = verify_migration()
    if result.verification.remaining_global_providers:
        logger.error(
            "Found %d active global providers remaining",
            result.verification.remaining_global_providers,
        )
    for user in result.verification.users_without_providers:
        logger.error("User %s (%s) has no providers", user["email"], user["id"])

    if log_dir is not None:
        path = write_audit_log(result, log_dir)
        logger.info("Detailed log saved to: %s", path)
    return result
