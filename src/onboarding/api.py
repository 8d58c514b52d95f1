"""
Onboarding API Endpoints.

Alternate onboarding flow: step graph for clients, pending registrations
before sign-up, and finalization after sign-up.

Bodies are parsed and validated by hand so that every malformed request gets
the same `400 {"error": "Invalid payload"}` answer instead of FastAPI's 422.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError

from nality.db.client import get_service_client
from nality.web.auth import AuthenticatedUser, get_current_user

from .finalize import (
    AddressPreferenceRequired,
    FinalizeStorageError,
    PendingLinkOwnershipError,
    finalize_onboarding,
)
from .pending import (
    PendingLinkExpired,
    PendingLinkInvalid,
    PendingStorageError,
    create_pending_registration,
)
from .registration import FinalizePayload, PendingFinalizeRequest, PendingRegistrationPayload
from .steps import describe_graph

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding/alt", tags=["onboarding"])


class InvalidPayload(HTTPException):
    """400 carrying the validation issues alongside the error message."""

    def __init__(self, issues: list[dict[str, Any]] | None = None):
        super().__init__(status_code=400, detail="Invalid payload")
        self.issues = issues or []


# =============================================================================
# Helpers
# =============================================================================


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (ValueError, RecursionError):
        raise InvalidPayload([{"field": "body", "message": "Body is not valid JSON"}])


def _issues(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "field": ".".join(str(loc) for loc in e["loc"]) or "body",
            "message": e["msg"],
        }
        for e in error.errors()
    ]


def _validate(model: type[BaseModel], body: Any) -> Any:
    try:
        return model.model_validate(body)
    except ValidationError as e:
        raise InvalidPayload(_issues(e))


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/config")
async def get_flow_config():
    """Entry question, entry options and all paths with their steps."""
    return describe_graph()


@router.post("/pending")
async def create_pending(request: Request):
    """
    Store a registration-stage draft under a single-use token.

    Returns {success, token, expiresAt}. Invalid bodies are rejected before
    any storage access.
    """
    body = await _read_json(request)
    payload: PendingRegistrationPayload = _validate(PendingRegistrationPayload, body)

    client = get_service_client()
    try:
        link = create_pending_registration(client, payload)
    except PendingStorageError:
        raise HTTPException(status_code=500, detail="Failed to store onboarding link")

    return link.to_dict()


@router.post("/complete")
async def complete_onboarding(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Finalize onboarding for the signed-in user.

    Accepts either the full draft payload or {pendingToken, addressPreference?}.
    """
    body = await _read_json(request)
    if isinstance(body, dict) and "pendingToken" in body:
        finalize_request = _validate(PendingFinalizeRequest, body)
    else:
        finalize_request = _validate(FinalizePayload, body)

    client = get_service_client()
    try:
        result = finalize_onboarding(client, user.id, user.email, finalize_request)
    except (PendingLinkInvalid, PendingLinkExpired, AddressPreferenceRequired) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PendingLinkOwnershipError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except PendingStorageError:
        raise HTTPException(status_code=500, detail="Failed to resolve onboarding link")
    except FinalizeStorageError:
        raise HTTPException(status_code=500, detail="Failed to store onboarding data")

    return result.to_dict()
