"""
Onboarding Finalization.

Writes the collected onboarding data onto a signed-in user's row, either
directly from the client's draft or by redeeming a pending-registration
token created before sign-up.

Onboarding answers are private: they are stored only in
users.alt_onboarding_private and never returned to the client.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from .draft import DRAFT_SCHEMA_VERSION
from .pending import consume_pending_registration, iso_timestamp, load_pending_registration
from .registration import FinalizePayload, PendingFinalizeRequest, build_full_name

logger = logging.getLogger(__name__)


USERS_TABLE = "users"


class AddressPreferenceRequired(ValueError):
    """Neither the request nor the pending payload carries an address preference."""


class PendingLinkOwnershipError(PermissionError):
    """The token was created for a different email than the signed-in user's."""


class FinalizeStorageError(RuntimeError):
    """Writing the user row failed."""


@dataclass(frozen=True)
class FinalizeResult:
    user_id: str
    completed_at: str

    def to_dict(self) -> dict:
        return {"success": True, "userId": self.user_id, "completedAt": self.completed_at}


def build_private_payload(payload: FinalizePayload, completed_at: str) -> dict:
    """The private onboarding document stored on the user row."""
    wire = payload.to_wire()
    return {
        "version": DRAFT_SCHEMA_VERSION,
        "entry": wire["entry"],
        "path": wire["path"],
        "steps": wire["responses"],
        "neutralBlockVisited": wire["neutralBlockVisited"],
        "registration": wire["registration"],
        "addressPreference": wire["addressPreference"],
        "completedAt": completed_at,
    }


def resolve_pending_payload(
    client: Client,
    request: PendingFinalizeRequest,
    user_email: str | None,
    now: datetime | None = None,
) -> FinalizePayload:
    """Turn a token redemption into a full finalize payload."""
    record = load_pending_registration(client, request.pending_token, now=now)

    if user_email and user_email.strip().lower() != record.email:
        raise PendingLinkOwnershipError("Onboarding link belongs to a different account")

    address_preference = request.address_preference or record.payload.address_preference
    if not address_preference:
        raise AddressPreferenceRequired("Address preference required to finalize onboarding")

    return FinalizePayload(
        registration=record.payload.registration,
        address_preference=address_preference,
        entry=record.payload.entry,
        path=record.payload.path,
        responses=record.payload.responses,
        neutral_block_visited=record.payload.neutral_block_visited,
    )


def finalize_onboarding(
    client: Client,
    user_id: str,
    user_email: str | None,
    request: FinalizePayload | PendingFinalizeRequest,
    now: datetime | None = None,
) -> FinalizeResult:
    """
    Mark the user's onboarding complete.

    Token redemptions consume the token only after the user row is written.
    """
    now = now or datetime.now(UTC)
    completed_at = iso_timestamp(now)

    pending_token = None
    if isinstance(request, PendingFinalizeRequest):
        pending_token = request.pending_token
        payload = resolve_pending_payload(client, request, user_email, now=now)
    else:
        payload = request

    try:
        client.table(USERS_TABLE).update({
            "full_name": build_full_name(
                payload.registration.first_name_or_nickname,
                payload.registration.last_name,
            ),
            "form_of_address": payload.address_preference,
            "onboarding_complete": True,
            "onboarding_completed_at": completed_at,
            "alt_onboarding_private": build_private_payload(payload, completed_at),
        }).eq("id", user_id).execute()
    except Exception as e:
        logger.error(f"Failed to store onboarding data for user {user_id}: {e}")
        raise FinalizeStorageError("Failed to store onboarding data") from e

    if pending_token:
        consume_pending_registration(client, pending_token, user_id, now=now)

    logger.info(f"Onboarding finalized for user {user_id}")
    return FinalizeResult(user_id=user_id, completed_at=completed_at)
