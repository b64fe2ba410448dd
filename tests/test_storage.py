import asyncio
import json

import pytest

from session_agent.storage import InMemoryStore, JsonFileStore, KeyValueStore


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStore()
    return JsonFileStore(tmp_path / "store")


class TestKeyValueStore:
    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, store):
        assert await store.get("nothing") is None

    @pytest.mark.asyncio
    async def test_read_your_writes(self, store):
        await store.set("k", {"a": 1})

        assert await store.get("k") == {"a": 1}

    @pytest.mark.asyncio
    async def test_append_builds_list(self, store):
        await store.append("log", 1)
        await store.append("log", 2)

        assert await store.get("log") == [1, 2]

    @pytest.mark.asyncio
    async def test_update_returns_new_value(self, store):
        await store.set("n", 1)

        assert await store.update("n", lambda v: v + 1) == 2
        assert await store.get("n") == 2

    @pytest.mark.asyncio
    async def test_failed_update_writes_nothing(self, store):
        await store.set("k", {"a": 1})

        def boom(current):
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            await store.update("k", boom)
        assert await store.get("k") == {"a": 1}

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self, store):
        await asyncio.gather(*(store.append("log", i) for i in range(20)))

        assert sorted(await store.get("log")) == list(range(20))

    @pytest.mark.asyncio
    async def test_base_class_is_abstract(self):
        with pytest.raises(NotImplementedError):
            await KeyValueStore().get("k")


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_values_are_copied(self):
        store = InMemoryStore()
        value = {"items": [1]}
        await store.set("k", value)

        value["items"].append(2)
        fetched = await store.get("k")
        fetched["items"].append(3)

        assert await store.get("k") == {"items": [1]}


class TestJsonFileStore:
    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path):
        await JsonFileStore(tmp_path).set("session:a:state", {"x": 1})

        assert await JsonFileStore(tmp_path).get("session:a:state") == {"x": 1}

    @pytest.mark.asyncio
    async def test_key_is_encoded_into_file_name(self, tmp_path):
        store = JsonFileStore(tmp_path)
        await store.set("session:a/b:state", [1])

        files = [p.name for p in tmp_path.iterdir()]
        assert files == ["session%3Aa%2Fb%3Astate.json"]
        assert json.loads((tmp_path / files[0]).read_text()) == [1]

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileStore(tmp_path)
        for i in range(3):
            await store.append("log", i)

        assert not [p for p in tmp_path.iterdir() if p.name.startswith(".tmp-")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "first, second",
        [("team:1", "team_1"), ("a/b", "a_b"), ("x y", "x%20y")],
    )
    async def test_similar_keys_use_distinct_files(self, tmp_path, first, second):
        store = JsonFileStore(tmp_path)
        await store.set(first, "one")
        await store.set(second, "two")

        assert await store.get(first) == "one"
        assert await store.get(second) == "two"
        assert len(list(tmp_path.iterdir())) == 2

    @pytest.mark.asyncio
    async def test_concurrent_updates_on_disk(self, tmp_path):
        store = JsonFileStore(tmp_path)

        await asyncio.gather(*(store.update("n", lambda v: (v or 0) + 1) for _ in range(20)))

        assert await JsonFileStore(tmp_path).get("n") == 20
