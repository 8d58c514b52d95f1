"""
Tests for DraftStore over memory and file storage.
"""

import json
from unittest.mock import MagicMock

from onboarding.draft import create_empty_draft
from onboarding.draft_storage import (
    DRAFT_STORAGE_KEY,
    DraftStore,
    JsonFileStorage,
    MemoryStorage,
)
from onboarding.machine import choose_entry
from onboarding.steps import Path, Stage


class TestDraftStore:
    """Load/save/clear with self-healing loads."""

    def test_key(self):
        assert DRAFT_STORAGE_KEY == "nality.altOnboardingDraft.v1"

    def test_load_missing_returns_empty(self):
        assert DraftStore(MemoryStorage()).load() == create_empty_draft()

    def test_save_then_load(self):
        store = DraftStore(MemoryStorage())
        draft = choose_entry(create_empty_draft(), "entry_4")
        store.save(draft)
        assert store.load() == draft

    def test_registration_stage_round_trip(self):
        store = DraftStore(MemoryStorage())
        draft = choose_entry(create_empty_draft(), "entry_5").updated(
            stage=Stage.REGISTRATION,
            current_step_id=None,
            neutral_block_visited=True,
            pending_link_token="tok-1",
        )
        store.save(draft)

        restored = store.load()
        assert restored.stage == Stage.REGISTRATION
        assert restored.path == Path.C
        assert restored.neutral_block_visited is True
        assert restored.pending_link_token == "tok-1"

    def test_stale_step_returns_empty(self):
        stored = choose_entry(create_empty_draft(), "entry_1").to_dict()
        stored["currentStepId"] = "A9"
        storage = MemoryStorage({DRAFT_STORAGE_KEY: json.dumps(stored)})
        assert DraftStore(storage).load() == create_empty_draft()

    def test_corrupt_value_returns_empty(self):
        storage = MemoryStorage({DRAFT_STORAGE_KEY: "{broken"})
        assert DraftStore(storage).load() == create_empty_draft()

    def test_deeply_nested_value_returns_empty(self):
        storage = MemoryStorage({DRAFT_STORAGE_KEY: "[" * 100000 + "]" * 100000})
        assert DraftStore(storage).load() == create_empty_draft()

    def test_deeply_nested_response_returns_empty(self):
        stored = choose_entry(create_empty_draft(), "entry_1").to_json()
        raw = stored[:-1] + ', "x": ' + "[" * 5000 + "]" * 5000 + "}"
        assert DraftStore(MemoryStorage({DRAFT_STORAGE_KEY: raw})).load() == create_empty_draft()

    def test_old_version_returns_empty(self):
        storage = MemoryStorage({DRAFT_STORAGE_KEY: json.dumps({"version": "v0", "stage": "path"})})
        assert DraftStore(storage).load() == create_empty_draft()

    def test_clear(self):
        storage = MemoryStorage()
        store = DraftStore(storage)
        store.save(choose_entry(create_empty_draft(), "entry_1"))
        store.clear()
        assert storage.get_item(DRAFT_STORAGE_KEY) is None
        assert store.load() == create_empty_draft()

    def test_no_storage_context(self):
        store = DraftStore(None)
        assert not store.available
        store.save(choose_entry(create_empty_draft(), "entry_1"))
        store.clear()
        assert store.load() == create_empty_draft()

    def test_write_failure_is_swallowed(self):
        storage = MagicMock()
        storage.set_item.side_effect = OSError("quota exceeded")
        storage.remove_item.side_effect = OSError("denied")

        store = DraftStore(storage)
        store.save(create_empty_draft())
        store.clear()

    def test_read_failure_returns_empty(self):
        storage = MagicMock()
        storage.get_item.side_effect = OSError("denied")
        assert DraftStore(storage).load() == create_empty_draft()


class TestJsonFileStorage:
    def test_round_trip_on_disk(self, tmp_path):
        file_path = tmp_path / "nested" / "drafts.json"
        store = DraftStore(JsonFileStorage(file_path))
        draft = choose_entry(create_empty_draft(), "entry_5")

        store.save(draft)

        assert file_path.exists()
        assert DRAFT_STORAGE_KEY in json.loads(file_path.read_text(encoding="utf-8"))
        assert DraftStore(JsonFileStorage(file_path)).load() == draft

    def test_other_keys_untouched(self, tmp_path):
        file_path = tmp_path / "drafts.json"
        storage = JsonFileStorage(file_path)
        storage.set_item("other", "value")

        store = DraftStore(storage)
        store.save(create_empty_draft())
        store.clear()

        assert storage.get_item("other") == "value"
        assert storage.get_item(DRAFT_STORAGE_KEY) is None

    def test_unreadable_file_loads_empty(self, tmp_path):
        file_path = tmp_path / "drafts.json"
        file_path.write_text("[1, 2, 3]", encoding="utf-8")
        assert DraftStore(JsonFileStorage(file_path)).load() == create_empty_draft()
