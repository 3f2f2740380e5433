from __future__ import annotations

import json
from pathlib import Path

import pytest

from PapersKit.FullText.errors import NotCached, require_markdown
from PapersKit.FullText.store import (
    META_FILENAME,
    LocalExtractionStore,
    default_cache_root,
    member_names,
)
from PapersKit.FullText.types import ExtractionMeta


def _meta(key: str = "ABCD2345", **extra) -> ExtractionMeta:
    return ExtractionMeta(item_key=key, title="A Paper", **extra)


def test_write_then_read_round_trips_all_members(store: LocalExtractionStore) -> None:
    store.write("ABCD2345", "# Text\n", '{"pages": []}', _meta())

    assert store.has("ABCD2345")
    assert store.read_markdown("ABCD2345") == "# Text\n"
    assert json.loads(store.read_json("ABCD2345")) == {"pages": []}
    meta = store.read_meta("ABCD2345")
    assert meta is not None and meta.title == "A Paper"


def test_write_defaults_missing_json_to_empty_object(store: LocalExtractionStore) -> None:
    store.write("W1", "text", None, _meta("W1"))

    assert store.read_json("W1") == "{}"


def test_write_forces_meta_item_key_to_cache_key(store: LocalExtractionStore) -> None:
    store.write("W1", "text", None, _meta("SOMETHINGELSE"))

    assert store.read_meta("W1").item_key == "W1"


def test_markdown_defines_membership(store: LocalExtractionStore) -> None:
    store.write_members("KEYONLYJS", {"KEYONLYJS.json": b"{}", META_FILENAME: b"{}"})
    store.write("W2", "body", None, _meta("W2"))

    assert store.list_keys() == {"W2"}
    assert not store.has("KEYONLYJS")


def test_list_keys_ignores_dot_directories_and_stray_files(
    store: LocalExtractionStore,
) -> None:
    store.write("W3", "body", None, _meta("W3"))
    (store.cache_root / ".tmp").mkdir()
    (store.cache_root / ".tmp" / ".tmp.md").write_text("x")
    (store.cache_root / "loose.md").write_text("x")

    assert store.list_keys() == {"W3"}


def test_list_keys_on_missing_root_is_empty(tmp_path: Path) -> None:
    assert LocalExtractionStore(tmp_path / "absent").list_keys() == set()


def test_readers_return_none_for_absent_entries(store: LocalExtractionStore) -> None:
    assert store.read_markdown("NOPE") is None
    assert store.read_json("NOPE") is None
    assert store.read_meta("NOPE") is None
    assert store.read_member("NOPE", "NOPE.md") is None


def test_read_meta_ignores_malformed_file(store: LocalExtractionStore) -> None:
    store.write_members("W4", {META_FILENAME: b'{"title": 3', "W4.md": b"text"})

    assert store.read_meta("W4") is None
    assert store.read_markdown("W4") == "text"


def test_read_meta_tolerates_unknown_fields(store: LocalExtractionStore) -> None:
    payload = {"item_key": "W5", "title": "T", "future_field": [1, 2]}
    store.write_members("W5", {META_FILENAME: json.dumps(payload).encode(), "W5.md": b"x"})

    assert store.read_meta("W5").title == "T"


def test_meta_json_omits_absent_fields(store: LocalExtractionStore) -> None:
    store.write("W6", "text", None, ExtractionMeta(item_key="W6", title="Only title"))

    on_disk = json.loads(store.read_member("W6", META_FILENAME))
    assert on_disk == {"item_key": "W6", "title": "Only title"}


def test_write_members_rejects_foreign_names(store: LocalExtractionStore) -> None:
    with pytest.raises(ValueError):
        store.write_members("W7", {"../escape.md": b"x"})
    assert not (store.cache_root / "W7").exists()


@pytest.mark.parametrize("key", ["", ".hidden", "a/b", "..", "a\\b"])
def test_invalid_keys_are_rejected(store: LocalExtractionStore, key: str) -> None:
    with pytest.raises(ValueError):
        store.entry_dir(key)


def test_member_names_commit_markdown_last() -> None:
    assert member_names("K")[-1] == "K.md"
    assert set(member_names("K")) == {"K.md", "K.json", META_FILENAME}


def test_rewrite_replaces_previous_entry(store: LocalExtractionStore) -> None:
    store.write("W8", "first", None, _meta("W8"))
    store.write("W8", "second", None, _meta("W8"))

    assert store.read_markdown("W8") == "second"
    leftovers = [p.name for p in store.entry_dir("W8").iterdir()]
    assert sorted(leftovers) == sorted(member_names("W8"))


def test_require_markdown_raises_not_cached(store: LocalExtractionStore) -> None:
    with pytest.raises(NotCached) as excinfo:
        require_markdown(store, "MISSING")
    assert excinfo.value.key == "MISSING"


def test_default_cache_root_precedence(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PAPERS_EXTRACT_CACHE_DIR", str(tmp_path / "env"))

    assert default_cache_root(tmp_path / "configured") == tmp_path / "configured"
    assert default_cache_root() == tmp_path / "env"

    monkeypatch.delenv("PAPERS_EXTRACT_CACHE_DIR")
    assert default_cache_root().name == "extract"
