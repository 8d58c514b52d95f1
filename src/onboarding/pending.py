"""
Pending Registrations.

Once a draft reaches registration its payload is stored server-side under a
random single-use token with a fixed lifetime, so account creation (email
confirmation, OAuth round trip) can pick it up later.

Creating a pending registration first expires every still-active row for
the same email, then inserts the new row. The two writes are not atomic:
two concurrent submissions for one email may each expire the other's row.
Registration is human-paced, so this race is accepted.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError
from supabase import Client

from nality.config import settings

from .registration import PendingRegistrationPayload

logger = logging.getLogger(__name__)


PENDING_TABLE = "alt_onboarding_pending"


class PendingStorageError(RuntimeError):
    """A write to the pending-registration table failed."""


class PendingLinkInvalid(ValueError):
    """Token unknown, already consumed, or its stored payload is unreadable."""


class PendingLinkExpired(ValueError):
    """Token exists but its expiry has passed."""


@dataclass(frozen=True)
class PendingLink:
    token: str
    expires_at: datetime

    def to_dict(self) -> dict:
        return {
            "success": True,
            "token": self.token,
            "expiresAt": iso_timestamp(self.expires_at),
        }


@dataclass(frozen=True)
class PendingRecord:
    token: str
    email: str
    payload: PendingRegistrationPayload
    expires_at: datetime


def _utc_now() -> datetime:
    return datetime.now(UTC)


def iso_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def pending_ttl() -> timedelta:
    return timedelta(hours=settings.pending_registration_ttl_hours)


def create_pending_registration(
    client: Client,
    payload: PendingRegistrationPayload,
    now: datetime | None = None,
    token_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> PendingLink:
    """
    Store payload under a fresh token.

    The email is already normalized by RegistrationDraft.
    Raises PendingStorageError if either write fails.
    """
    now = now or _utc_now()
    now_iso = iso_timestamp(now)
    expires_at = now + pending_ttl()
    token = token_factory()
    email = payload.registration.email

    try:
        (
            client.table(PENDING_TABLE)
            .update({"expires_at": now_iso})
            .eq("email", email)
            .is_("consumed_at", "null")
            .gt("expires_at", now_iso)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to expire pending registrations for {email}: {e}")
        raise PendingStorageError("Failed to expire previous pending registrations") from e

    try:
        client.table(PENDING_TABLE).insert({
            "token": token,
            "email": email,
            "payload": payload.to_wire(),
            "expires_at": iso_timestamp(expires_at),
        }).execute()
    except Exception as e:
        logger.error(f"Failed to insert pending registration for {email}: {e}")
        raise PendingStorageError("Failed to store pending registration") from e

    logger.info(f"Stored pending registration (path={payload.path.value if payload.path else None})")
    return PendingLink(token=token, expires_at=expires_at)


def load_pending_registration(
    client: Client,
    token: str,
    now: datetime | None = None,
) -> PendingRecord:
    """
    Fetch a redeemable pending registration.

    Raises PendingLinkInvalid / PendingLinkExpired for unusable tokens and
    PendingStorageError if the lookup itself fails.
    """
    now = now or _utc_now()

    try:
        result = (
            client.table(PENDING_TABLE)
            .select("token, email, payload, expires_at, consumed_at")
            .eq("token", token)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to load pending registration: {e}")
        raise PendingStorageError("Failed to resolve onboarding link") from e

    rows = result.data or []
    if not rows or rows[0].get("consumed_at"):
        raise PendingLinkInvalid("Onboarding link is invalid or already used")

    row = rows[0]
    expires_at = _parse_timestamp(row.get("expires_at"))
    if expires_at is None or expires_at <= now:
        raise PendingLinkExpired("Onboarding link has expired")

    try:
        payload = PendingRegistrationPayload.model_validate(row.get("payload"))
    except ValidationError as e:
        logger.warning(f"Stored pending payload failed validation: {e.error_count()} errors")
        raise PendingLinkInvalid("Stored onboarding payload is invalid") from e

    return PendingRecord(
        token=token,
        email=(row.get("email") or payload.registration.email).strip().lower(),
        payload=payload,
        expires_at=expires_at,
    )


def consume_pending_registration(
    client: Client,
    token: str,
    user_id: str,
    now: datetime | None = None,
) -> None:
    """Mark a token used. Failure is logged; the account is already finalized."""
    now = now or _utc_now()
    try:
        (
            client.table(PENDING_TABLE)
            .update({"consumed_at": iso_timestamp(now), "consumed_by": user_id})
            .eq("token", token)
            .is_("consumed_at", "null")
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to consume pending token: {e}")
