"""
Onboarding Draft.

The in-progress snapshot of one user's onboarding session, owned by the
client (browser tab or CLI session) and persisted after every change.

Serialized with the camelCase keys browser clients use, so a draft written by
either side reads back on the other.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from .steps import ENTRY_ROUTING, Path, Stage, step_by_id

logger = logging.getLogger(__name__)


DRAFT_SCHEMA_VERSION = "alt-onboarding-v1"

ADDRESS_PREFERENCES = ("du", "sie")
REGISTRATION_SOURCES = ("path", "neutral")
REGISTRATION_METHODS = ("password", "google")


@dataclass(frozen=True)
class EntryAnswer:
    """The entry answer and the path it routed to."""
    answer_id: str
    path: Path

    def to_dict(self) -> dict:
        return {"answerId": self.answer_id, "path": self.path.value}


@dataclass
class OnboardingDraft:
    """
    Client-persisted onboarding state.

    Invariants (enforced on load by sanitize_draft):
    - stage PATH requires current_step_id to resolve within path
    - entry.path equals path
    - version equals DRAFT_SCHEMA_VERSION
    """
    version: str = DRAFT_SCHEMA_VERSION
    stage: Stage = Stage.IDLE
    path: Path | None = None
    entry: EntryAnswer | None = None
    current_step_id: str | None = None
    responses: dict[str, Any] = field(default_factory=dict)
    pending_link_token: str | None = None
    neutral_block_visited: bool = False

    # Auxiliary wizard state
    route_to_registration_source: str | None = None  # "path" | "neutral"
    registration: dict | None = None  # firstNameOrNickname, lastName, email, method
    address_preference: str | None = None  # "du" | "sie"

    def to_dict(self) -> dict:
        """Serialize to the camelCase storage shape."""
        return {
            "version": self.version,
            "stage": self.stage.value,
            "path": self.path.value if self.path else None,
            "entry": self.entry.to_dict() if self.entry else None,
            "currentStepId": self.current_step_id,
            "responses": dict(self.responses),
            "pendingLinkToken": self.pending_link_token,
            "neutralBlockVisited": self.neutral_block_visited,
            "routeToRegistrationSource": self.route_to_registration_source,
            "registration": dict(self.registration) if self.registration else None,
            "addressPreference": self.address_preference,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def updated(self, **changes: Any) -> "OnboardingDraft":
        """Copy with changes applied; this draft is left untouched."""
        changes.setdefault("responses", dict(self.responses))
        return replace(self, **changes)


def create_empty_draft() -> OnboardingDraft:
    """Fresh draft for a first visit (or after any reset)."""
    return OnboardingDraft()


# =============================================================================
# Sanitation
# =============================================================================


class _CorruptDraft(Exception):
    """Raised internally when a stored draft must be discarded."""


def _parse_path(value: Any) -> Path:
    try:
        return Path(value)
    except ValueError:
        raise _CorruptDraft(f"invalid path {value!r}")


def _parse_entry(value: Any, path: Path) -> EntryAnswer:
    if not isinstance(value, Mapping):
        raise _CorruptDraft("missing entry")

    answer_id = value.get("answerId")
    entry_path = value.get("path")
    if entry_path != path.value:
        raise _CorruptDraft(f"entry path {entry_path!r} does not match {path.value}")
    if not isinstance(answer_id, str) or ENTRY_ROUTING.get(answer_id) != path:
        raise _CorruptDraft(f"entry answer {answer_id!r} does not route to {path.value}")

    return EntryAnswer(answer_id=answer_id, path=path)


def _optional_choice(value: Any, allowed: tuple[str, ...]) -> str | None:
    return value if value in allowed else None


def _parse_registration(value: Any) -> dict | None:
    if not isinstance(value, Mapping):
        return None
    if not all(isinstance(value.get(k, ""), str) for k in ("firstNameOrNickname", "lastName", "email")):
        return None
    return {
        "firstNameOrNickname": value.get("firstNameOrNickname", ""),
        "lastName": value.get("lastName", ""),
        "email": value.get("email", ""),
        "method": _optional_choice(value.get("method"), REGISTRATION_METHODS) or "password",
    }


def _build_draft(raw: Mapping[str, Any]) -> OnboardingDraft:
    try:
        stage = Stage(raw.get("stage", Stage.IDLE.value))
    except ValueError:
        raise _CorruptDraft(f"invalid stage {raw.get('stage')!r}")

    path = _parse_path(raw.get("path"))
    entry = _parse_entry(raw.get("entry"), path)

    current_step_id = raw.get("currentStepId")
    if current_step_id is not None and not isinstance(current_step_id, str):
        raise _CorruptDraft("currentStepId is not a string")

    if stage == Stage.PATH:
        if not current_step_id or step_by_id(path, current_step_id) is None:
            raise _CorruptDraft(f"step {current_step_id!r} not in path {path.value}")
    elif stage in (Stage.NEUTRAL, Stage.REGISTRATION):
        if current_step_id and step_by_id(path, current_step_id) is None:
            raise _CorruptDraft(f"step {current_step_id!r} not in path {path.value}")

    responses = raw.get("responses", {})
    if not isinstance(responses, Mapping) or not all(isinstance(k, str) for k in responses):
        raise _CorruptDraft("responses is not a mapping")

    neutral_visited = raw.get("neutralBlockVisited", False)
    if not isinstance(neutral_visited, bool):
        raise _CorruptDraft("neutralBlockVisited is not a boolean")

    # Auxiliary fields are repaired in place rather than resetting the draft
    token = raw.get("pendingLinkToken")
    if token is not None and not isinstance(token, str):
        token = None

    return OnboardingDraft(
        version=DRAFT_SCHEMA_VERSION,
        stage=stage,
        path=path,
        entry=entry,
        current_step_id=current_step_id,
        responses=dict(responses),
        pending_link_token=token,
        neutral_block_visited=neutral_visited,
        route_to_registration_source=_optional_choice(
            raw.get("routeToRegistrationSource"), REGISTRATION_SOURCES
        ),
        registration=_parse_registration(raw.get("registration")),
        address_preference=_optional_choice(raw.get("addressPreference"), ADDRESS_PREFERENCES),
    )


def sanitize_draft(raw: Any) -> OnboardingDraft:
    """
    Turn a parsed stored value into a draft, or an empty draft if it is corrupt.

    All-or-nothing: a version mismatch or any structural problem yields
    exactly create_empty_draft(). Never raises.
    """
    if not isinstance(raw, Mapping):
        return create_empty_draft()

    if raw.get("version") != DRAFT_SCHEMA_VERSION:
        logger.info(f"Discarding onboarding draft with version {raw.get('version')!r}")
        return create_empty_draft()

    try:
        return _build_draft(raw)
    except _CorruptDraft as e:
        logger.info(f"Discarding corrupt onboarding draft: {e}")
        return create_empty_draft()


def draft_from_json(raw: str | None) -> OnboardingDraft:
    """Parse a serialized draft. Absent or unparsable input yields an empty draft."""
    if not raw:
        return create_empty_draft()
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError, RecursionError):
        logger.info("Discarding unparsable onboarding draft")
        return create_empty_draft()
    return sanitize_draft(parsed)
