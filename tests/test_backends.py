"""Tests for the persistence backends and profile serialization."""

import pytest
import yaml

from lookbook.common import Stage
from lookbook.pipeline import Profile
from lookbook.storage import (
    COLLECTION_KEY,
    DATE_KEY,
    BatchSettings,
    CollectionStore,
    InMemoryBackend,
    YamlFileBackend,
)

from .conftest import StubIdentityGenerator, StubOrchestrator, make_identity


def test_in_memory_backend_isolates_callers():
    backend = InMemoryBackend()
    value = {"items": [1, 2]}
    backend.set("key", value)

    value["items"].append(3)
    fetched = backend.get("key")
    fetched["items"].append(4)

    assert backend.get("key") == {"items": [1, 2]}


def test_yaml_backend_round_trips_and_deletes(tmp_path):
    path = tmp_path / "nested" / "store.yaml"
    backend = YamlFileBackend(path)

    backend.set_many({"a": [1, 2], "b": "text"})
    assert YamlFileBackend(path).get("a") == [1, 2]

    backend.delete("a")
    assert backend.get("a") is None
    assert backend.get("b") == "text"
    assert list(tmp_path.joinpath("nested").iterdir()) == [path]


def test_yaml_backend_rejects_non_mapping_file(tmp_path):
    path = tmp_path / "store.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        YamlFileBackend(path).get("anything")


def test_store_persists_through_yaml_file(tmp_path, clock):
    path = tmp_path / "collection.yaml"
    store = CollectionStore(
        YamlFileBackend(path),
        identity_generator=StubIdentityGenerator(count=2),
        orchestrator=StubOrchestrator(),
        clock=clock,
        settings=BatchSettings(target_count=2, inter_identity_delay=0),
    )
    store.run_daily_batch()

    document = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert document[DATE_KEY] == "2026-10-19"
    assert [entry["name"] for entry in document[COLLECTION_KEY]] == ["Model 0", "Model 1"]

    reloaded = CollectionStore(YamlFileBackend(path), clock=clock).load()
    assert reloaded[0].images_by_stage[Stage.FINAL] == "Model 0-final"


class TestProfile:
    def test_dict_round_trip_uses_integer_stage_keys(self):
        profile = Profile.from_stage_images(
            make_identity(1), {Stage.BASE: "a", Stage.INTERMEDIATE: "b"}
        )
        data = profile.to_dict()

        assert data["images_by_stage"] == {0: "a", 1: "b"}
        assert Profile.from_dict(data) == profile

    def test_string_stage_keys_are_accepted(self):
        data = Profile.from_stage_images(make_identity(1), {Stage.BASE: "a"}).to_dict()
        data["images_by_stage"] = {"0": "a", "2": "c"}
        assert Profile.from_dict(data).images_by_stage == {Stage.BASE: "a", Stage.FINAL: "c"}

    def test_unknown_stage_key_is_invalid(self):
        data = Profile.from_stage_images(make_identity(1), {Stage.BASE: "a"}).to_dict()
        data["images_by_stage"] = {7: "x"}
        with pytest.raises(ValueError):
            Profile.from_dict(data)

    def test_id_cannot_change(self):
        profile = Profile.from_stage_images(make_identity(1), {Stage.BASE: "a"})
        with pytest.raises(TypeError):
            profile.merged({"id": "other"})

    def test_base_image_is_required(self):
        with pytest.raises(ValueError):
            Profile.from_stage_images(make_identity(1), {Stage.FINAL: "z"})

    def test_ids_are_unique(self):
        identity = make_identity(1)
        first = Profile.from_stage_images(identity, {Stage.BASE: "a"})
        second = Profile.from_stage_images(identity, {Stage.BASE: "a"})
        assert first.id != second.id
