"""Tests for the in-memory and JSON file camera registries."""

import asyncio

import orjson
import pytest

from relay_keeper.common.errors import ErrorCode, RegistryError
from relay_keeper.domain.models.camera import CameraRecord
from relay_keeper.infrastructure.registry import InMemoryCameraRegistry, JsonFileCameraRegistry


def camera(name, **kwargs):
    return CameraRecord(stream_name=name, source_uri=f"rtsp://{name}/stream", **kwargs)


class TestInMemoryRegistry:

    async def test_find_returns_copies(self):
        registry = InMemoryCameraRegistry([camera("cam_1")])

        record = await registry.find_one({"stream_name": "cam_1"})
        record.active = False

        stored = await registry.find_one({"stream_name": "cam_1"})
        assert stored.active is True

    async def test_find_with_filter(self):
        registry = InMemoryCameraRegistry(
            [camera("cam_1"), camera("cam_2", active=False), camera("cam_3")]
        )

        active = await registry.find({"active": True})

        assert [c.stream_name for c in active] == ["cam_1", "cam_3"]
        assert len(await registry.find()) == 3
        assert await registry.find_one({"stream_name": "missing"}) is None

    async def test_update_one_touches_first_match(self):
        registry = InMemoryCameraRegistry([camera("cam_1"), camera("cam_2")])

        count = await registry.update_one({"active": True}, {"streaming": True})

        assert count == 1
        streaming = await registry.find({"streaming": True})
        assert [c.stream_name for c in streaming] == ["cam_1"]

    async def test_update_many(self):
        registry = InMemoryCameraRegistry(
            [camera("cam_1", streaming=True, process_id=11), camera("cam_2", streaming=True)]
        )

        count = await registry.update_many({"streaming": True}, {"streaming": False, "process_id": None})

        assert count == 2
        assert await registry.find({"streaming": True}) == []

    async def test_unknown_field_rejected(self):
        registry = InMemoryCameraRegistry([camera("cam_1")])

        with pytest.raises(RegistryError) as exc_info:
            await registry.update_one({"stream_name": "cam_1"}, {"bogus": 1})

        assert exc_info.value.code is ErrorCode.REGISTRY_WRITE_FAILED

    async def test_save_upserts(self):
        registry = InMemoryCameraRegistry()
        saved = await registry.save(camera("cam_1"))

        saved.name = "Lobby"
        await registry.save(saved)

        assert len(registry) == 1
        assert (await registry.find_one({"camera_id": saved.camera_id})).name == "Lobby"

    async def test_delete_one(self):
        registry = InMemoryCameraRegistry([camera("cam_1")])

        assert await registry.delete_one({"stream_name": "cam_1"}) == 1
        assert await registry.delete_one({"stream_name": "cam_1"}) == 0
        assert len(registry) == 0


class TestJsonFileRegistry:

    async def test_writes_survive_reload(self, tmp_path):
        path = tmp_path / "data" / "cameras.json"
        registry = JsonFileCameraRegistry(path)
        await registry.save(camera("cam_1"))
        await registry.update_one({"stream_name": "cam_1"}, {"streaming": True, "process_id": 99})

        reloaded = JsonFileCameraRegistry(path)
        record = await reloaded.find_one({"stream_name": "cam_1"})

        assert record.streaming is True
        assert record.process_id == 99
        assert "cameras" in orjson.loads(path.read_bytes())
        assert list(path.parent.glob("*.tmp")) == []

    async def test_concurrent_writes_keep_latest_state(self, tmp_path):
        path = tmp_path / "cameras.json"
        registry = JsonFileCameraRegistry(path)
        for i in range(20):
            await registry.save(camera(f"cam_{i}", streaming=True, process_id=100 + i))

        await asyncio.gather(
            *(
                registry.update_one({"stream_name": f"cam_{i}"}, {"streaming": False, "process_id": None})
                for i in range(1, 20)
            ),
            registry.delete_one({"stream_name": "cam_0"}),
        )

        reloaded = JsonFileCameraRegistry(path)
        assert len(reloaded) == 19
        assert await reloaded.find({"streaming": True}) == []
        assert all(c.process_id is None for c in await reloaded.find())
        assert list(tmp_path.glob("*.tmp")) == []

    def test_missing_file_starts_empty(self, tmp_path):
        assert len(JsonFileCameraRegistry(tmp_path / "none.json")) == 0

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "cameras.json"
        path.write_text("{not json")

        with pytest.raises(RegistryError) as exc_info:
            JsonFileCameraRegistry(path)

        assert exc_info.value.code is ErrorCode.REGISTRY_READ_FAILED

    def test_unknown_keys_ignored_on_load(self, tmp_path):
        path = tmp_path / "cameras.json"
        path.write_bytes(
            orjson.dumps(
                {"cameras": [{"stream_name": "cam_1", "source_uri": "rtsp://a", "legacy": 1}]}
            )
        )

        registry = JsonFileCameraRegistry(path)

        assert len(registry) == 1
