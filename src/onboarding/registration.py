"""
Registration Payloads.

Request schemas for the pending-registration and finalize endpoints. Field
names on the wire are camelCase; Python attributes are snake_case.

Email handling is explicit: trimmed, lower-cased, then checked against a
plain local@domain.tld pattern.
"""

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .steps import ENTRY_ROUTING, Path

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]{2,}$")

AddressPreference = Literal["du", "sie"]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def normalize_email(value: str) -> str:
    return value.strip().lower()


class RegistrationDraft(_WireModel):
    """Name, email and sign-up method collected by the registration module."""
    first_name_or_nickname: str = Field(min_length=1)
    last_name: str = ""
    email: str
    method: Literal["password", "google"]

    @field_validator("first_name_or_nickname")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("First name or nickname is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        email = normalize_email(v)
        if not EMAIL_PATTERN.match(email):
            raise ValueError("Invalid email address")
        return email


class EntrySelection(_WireModel):
    """The entry answer and the path it routed to."""
    answer_id: str
    path: Path

    @model_validator(mode="after")
    def path_matches_routing(self) -> "EntrySelection":
        routed = ENTRY_ROUTING.get(self.answer_id)
        if routed is None:
            raise ValueError(f"Unknown entry answer: {self.answer_id}")
        if routed != self.path:
            raise ValueError(f"Entry answer {self.answer_id} routes to path {routed.value}, not {self.path.value}")
        return self


class PendingRegistrationPayload(_WireModel):
    """Everything the draft collected, submitted once it reaches registration."""
    registration: RegistrationDraft
    address_preference: AddressPreference | None = None
    entry: EntrySelection | None
    path: Path | None
    responses: dict[str, Any]
    neutral_block_visited: StrictBool

    @model_validator(mode="after")
    def entry_matches_path(self):
        if self.entry is not None and self.path is not None and self.entry.path != self.path:
            raise ValueError("entry.path must equal path")
        return self


class FinalizePayload(PendingRegistrationPayload):
    """Direct finalization: same data, but the address preference is required."""
    address_preference: AddressPreference


class PendingFinalizeRequest(_WireModel):
    """Finalization by redeeming a pending-registration token."""
    pending_token: str = Field(min_length=1)
    address_preference: AddressPreference | None = None

    @field_validator("pending_token")
    @classmethod
    def token_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Pending token is required")
        return v.strip()


def build_full_name(first_name_or_nickname: str, last_name: str) -> str:
    first = first_name_or_nickname.strip()
    last = last_name.strip()
    if not last:
        return first
    return f"{first} {last}"
