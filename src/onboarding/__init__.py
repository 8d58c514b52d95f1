"""
Nality Alternate Onboarding.

A first-time visitor answers one entry question, is routed into one of three
short question paths (A, B, C), may pass through a neutral storytelling block,
and ends at registration. Progress lives in a client-side draft; on reaching
registration the draft is stored server-side under a single-use token that
account creation later redeems.

Modules:
- steps: static step graph and routing table
- machine: transitions and step validation
- draft / draft_storage: the client draft and its persistence
- registration / pending / finalize: server-side payloads and storage
- api: FastAPI router
"""

from .draft import DRAFT_SCHEMA_VERSION, OnboardingDraft, create_empty_draft, sanitize_draft
from .machine import is_step_response_valid, resolve_next_location
from .steps import Location, Path, Stage, path_for_entry_answer

__all__ = [
    "DRAFT_SCHEMA_VERSION",
    "Location",
    "OnboardingDraft",
    "Path",
    "Stage",
    "create_empty_draft",
    "is_step_response_valid",
    "path_for_entry_answer",
    "resolve_next_location",
    "sanitize_draft",
]
