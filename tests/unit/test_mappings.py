from __future__ import annotations

import logging
from pathlib import Path

import pytest

from mqtt_seeder.mappings import (
    Mapping,
    MappingLoadError,
    ObjectEntry,
    TopicEntry,
    load_mappings,
    parse_entry,
    parse_source,
    unique_mappings,
)


def test_string_entry_maps_to_itself():
    assert parse_entry("sensors/1") == TopicEntry("sensors/1")
    assert parse_entry("sensors/1").to_mapping() == Mapping(tag="sensors/1", topic="sensors/1")


def test_object_entry_with_tag():
    entry = parse_entry({"tag": "temp", "topic": "sensors/1"})
    assert entry == ObjectEntry(topic="sensors/1", tag="temp")
    assert entry.to_mapping() == Mapping(tag="temp", topic="sensors/1")


@pytest.mark.parametrize("item", [
    {"topic": "sensors/1"},
    {"topic": "sensors/1", "tag": ""},
    {"topic": "sensors/1", "tag": None},
    {"topic": "sensors/1", "tag": 42},
])
def test_object_entry_without_usable_tag_uses_topic(item):
    assert parse_entry(item).to_mapping() == Mapping(tag="sensors/1", topic="sensors/1")


@pytest.mark.parametrize("item", [
    {"tag": "orphan"},
    {"topic": 5},
    {"topic": ""},
    "",
    None,
    7,
    ["sensors/1"],
])
def test_invalid_entries_are_rejected(item):
    assert parse_entry(item) is None


def test_parse_source_skips_invalid_elements_with_warning(caplog):
    text = '["a", {"tag": "x"}, {"topic": 3}, {"topic": "b", "tag": "B"}]'
    with caplog.at_level(logging.WARNING):
        out = parse_source("mixed.json", text)

    assert out == [Mapping("a", "a"), Mapping("B", "b")]
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert all("mixed.json" in r.getMessage() for r in warnings)


def test_parse_source_rejects_non_array(caplog):
    with caplog.at_level(logging.ERROR):
        assert parse_source("obj.json", '{"topic": "a"}') is None
    assert "obj.json" in caplog.text


def test_load_preserves_order_and_duplicates(write_sources):
    config_dir = write_sources({
        "a.json": ["t", {"tag": "first", "topic": "u"}],
        "b.json": [{"tag": "second", "topic": "t"}, "v"],
    })

    assert load_mappings(config_dir) == [
        Mapping("t", "t"),
        Mapping("first", "u"),
        Mapping("second", "t"),
        Mapping("v", "v"),
    ]


def test_load_ignores_non_json_files(write_sources):
    config_dir = write_sources({
        "topics.json": ["a"],
        "notes.txt": '["ignored"]',
        "backup.json.bak": '["ignored"]',
    })
    (config_dir / "nested.json").mkdir()

    assert load_mappings(config_dir) == [Mapping("a", "a")]


def test_malformed_source_is_skipped_and_loading_continues(write_sources, caplog):
    config_dir = write_sources({
        "a.json": ["a"],
        "b.json": "[not json",
        "c.json": ["c"],
    })

    with caplog.at_level(logging.ERROR):
        mappings = load_mappings(config_dir)

    assert mappings == [Mapping("a", "a"), Mapping("c", "c")]
    errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "b.json" in errors[0]


def test_undecodable_source_is_skipped(write_sources, caplog):
    config_dir = write_sources({"a.json": ["a"]})
    (config_dir / "bad.json").write_bytes(b"\xff\xfe\xfd")

    with caplog.at_level(logging.ERROR):
        assert load_mappings(config_dir) == [Mapping("a", "a")]
    assert "bad.json" in caplog.text


def test_empty_directory_yields_no_mappings(write_sources):
    assert load_mappings(write_sources({})) == []


def test_missing_directory_is_fatal(tmp_path):
    with pytest.raises(MappingLoadError):
        load_mappings(tmp_path / "does-not-exist")


def test_unstatable_entry_is_fatal(write_sources, monkeypatch):
    config_dir = write_sources({"a.json": ["a"]})

    def _denied(self):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "is_file", _denied)
    with pytest.raises(MappingLoadError):
        load_mappings(config_dir)


@pytest.mark.parametrize("text", ['[NaN, "a"]', '["a", Infinity]', "[-Infinity]"])
def test_parse_source_rejects_non_standard_constants(text, caplog):
    with caplog.at_level(logging.ERROR):
        assert parse_source("nan.json", text) is None
    assert "nan.json" in caplog.text


def test_source_with_nan_is_skipped(write_sources, caplog):
    config_dir = write_sources({"a.json": ["a"], "b.json": '["b", NaN]'})

    with caplog.at_level(logging.ERROR):
        assert load_mappings(config_dir) == [Mapping("a", "a")]
    assert "b.json" in caplog.text


def test_load_is_idempotent(write_sources):
    config_dir = write_sources({
        "a.json": ["x", {"tag": "y", "topic": "z"}],
        "b.json": ["x"],
    })
    assert load_mappings(config_dir) == load_mappings(config_dir)


def test_unique_mappings_first_tag_wins():
    mappings = [Mapping("a", "t"), Mapping("b", "t"), Mapping("c", "u")]
    assert unique_mappings(mappings) == [Mapping("a", "t"), Mapping("c", "u")]


def test_unique_mappings_does_not_mutate_input():
    mappings = [Mapping("a", "t"), Mapping("a", "t")]
    unique_mappings(mappings)
    assert len(mappings) == 2
