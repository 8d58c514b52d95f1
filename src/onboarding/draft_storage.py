"""
Draft Storage.

Persists the onboarding draft under a single key in a client-local key-value
store. Loading is self-healing: anything missing, unparsable, from another
schema version or structurally inconsistent comes back as an empty draft.
Writes never raise; the caller's in-memory draft stays authoritative.
"""

import json
import logging
import pathlib
from typing import Protocol

from .draft import OnboardingDraft, create_empty_draft, draft_from_json

logger = logging.getLogger(__name__)


DRAFT_STORAGE_KEY = "nality.altOnboardingDraft.v1"


class KeyValueStorage(Protocol):
    """The subset of the Web Storage API the draft store needs."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage (tests, single-process sessions)."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """
    Storage backed by one JSON object on disk.

    The terminal equivalent of browser local storage: every key maps to a
    string value inside the file.
    """

    def __init__(self, file_path: pathlib.Path | str):
        self.file_path = pathlib.Path(file_path).expanduser()

    def _read(self) -> dict[str, str]:
        if not self.file_path.exists():
            return {}
        data = json.loads(self.file_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{self.file_path} does not contain a JSON object")
        return data

    def _write(self, items: dict[str, str]) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.file_path)

    def get_item(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = value
        self._write(items)

    def remove_item(self, key: str) -> None:
        items = self._read()
        if items.pop(key, None) is not None:
            self._write(items)


class DraftStore:
    """
    Load/save/clear the onboarding draft.

    storage=None models a context without client storage (e.g. server-side
    rendering): load returns an empty draft, save and clear do nothing.
    """

    def __init__(self, storage: KeyValueStorage | None, key: str = DRAFT_STORAGE_KEY):
        self.storage = storage
        self.key = key

    @property
    def available(self) -> bool:
        return self.storage is not None

    def load(self) -> OnboardingDraft:
        if self.storage is None:
            return create_empty_draft()

        try:
            raw = self.storage.get_item(self.key)
        except Exception as e:
            logger.warning(f"Failed to read onboarding draft: {e}")
            return create_empty_draft()

        try:
            return draft_from_json(raw)
        except Exception as e:
            logger.warning(f"Failed to restore onboarding draft: {e}")
            return create_empty_draft()

    def save(self, draft: OnboardingDraft) -> None:
        if self.storage is None:
            return

        try:
            self.storage.set_item(self.key, draft.to_json())
        except Exception as e:
            # Quota exceeded / private mode: the in-memory draft remains the source of truth
            logger.warning(f"Failed to save onboarding draft: {e}")

    def clear(self) -> None:
        if self.storage is None:
            return

        try:
            self.storage.remove_item(self.key)
        except Exception as e:
            logger.warning(f"Failed to clear onboarding draft: {e}")
