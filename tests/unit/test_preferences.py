"""Tests for feed-token preference stores and the preferences model."""

import json
import os
import threading

import pytest

from celcat_feed.domain.models import UserPreferences
from celcat_feed.services.preferences import InMemoryPreferencesStore, JsonPreferencesStore

pytestmark = pytest.mark.unit

STORED = {
    "groups": ["123::L3 Info", {"id": "456", "label": "M1"}],
    "hiddenEvents": ["e9"],
    "showHolidays": True,
    "colorMap": {"CM": "#ff0000"},
    "customNames": {"e1": "Algo"},
    "hiddenRules": [{"ruleType": "professor", "value": "DUPONT"}],
    "renamingRules": {"TD - Maths": "Maths"},
}


class TestUserPreferences:
    def test_to_customization_when_stored_holidays_then_stored_value_wins(self) -> None:
        prefs = UserPreferences.model_validate(STORED)

        customization = prefs.to_customization(show_holidays=False)

        assert customization.show_holidays is True
        assert customization.hidden_event_ids == frozenset({"e9"})
        assert customization.color_map == {"CM": "#ff0000"}
        assert customization.hidden_rules[0].rule_type == "professor"

    def test_to_customization_when_holidays_unset_then_argument_used(self) -> None:
        prefs = UserPreferences.model_validate({"groups": ["123"]})

        assert prefs.to_customization(show_holidays=True).show_holidays is True
        assert prefs.to_customization(show_holidays=False).show_holidays is False


class TestInMemoryPreferencesStore:
    async def test_load_when_known_token_then_preferences(self) -> None:
        store = InMemoryPreferencesStore({"tok": STORED})

        prefs = await store.load("tok")

        assert prefs is not None
        assert prefs.groups[0] == "123::L3 Info"

    async def test_load_when_unknown_or_invalid_then_none(self) -> None:
        store = InMemoryPreferencesStore({"bad": {"hiddenRules": [{"ruleType": "nope"}]}})

        assert await store.load("missing") is None
        assert await store.load("bad") is None

    async def test_put_then_model_returned_as_is(self) -> None:
        store = InMemoryPreferencesStore()
        prefs = UserPreferences(groups=["123"])
        store.put("tok", prefs)

        assert await store.load("tok") is prefs


class TestJsonPreferencesStore:
    async def test_load_when_file_missing_then_none(self, tmp_path) -> None:
        store = JsonPreferencesStore(tmp_path / "missing.json")

        assert await store.load("tok") is None

    async def test_load_when_file_present_then_token_resolved(self, tmp_path) -> None:
        path = tmp_path / "prefs.json"
        path.write_text(json.dumps({"tok": STORED}), encoding="utf-8")

        prefs = await JsonPreferencesStore(path).load("tok")

        assert prefs is not None
        assert prefs.custom_names == {"e1": "Algo"}

    async def test_load_when_file_changes_then_reloaded(self, tmp_path) -> None:
        path = tmp_path / "prefs.json"
        path.write_text(json.dumps({"tok": {"groups": ["1"]}}), encoding="utf-8")
        store = JsonPreferencesStore(path)
        assert (await store.load("tok")).groups == ["1"]

        path.write_text(json.dumps({"tok": {"groups": ["2"]}}), encoding="utf-8")
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        assert (await store.load("tok")).groups == ["2"]

    async def test_load_when_file_invalid_then_none(self, tmp_path) -> None:
        path = tmp_path / "prefs.json"
        path.write_text("[not json", encoding="utf-8")

        assert await JsonPreferencesStore(path).load("tok") is None

    async def test_load_when_empty_token_then_none(self, tmp_path) -> None:
        assert await JsonPreferencesStore(tmp_path / "prefs.json").load("") is None

    async def test_load_then_file_read_off_event_loop_thread(
        self, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "prefs.json"
        path.write_text(json.dumps({"tok": {"groups": ["1"]}}), encoding="utf-8")
        store = JsonPreferencesStore(path)
        refresh = store._refresh
        threads: list[int] = []

        def _recording_refresh() -> None:
            threads.append(threading.get_ident())
            refresh()

        monkeypatch.setattr(store, "_refresh", _recording_refresh)

        assert (await store.load("tok")).groups == ["1"]
        assert threads and threads[0] != threading.get_ident()
