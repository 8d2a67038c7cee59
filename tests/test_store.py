import pytest

from botmaid.store import MemoryStore, RedisStore, master_key


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.anyio
async def test_values_expire_after_ttl() -> None:
    clock = _Clock()
    store = MemoryStore(clock=clock)

    await store.set("counter", "1", ttl=10)
    await store.set("forever", "x")
    clock.now = 9.9
    assert await store.get("counter") == "1"
    clock.now = 10
    assert await store.get("counter") is None
    assert await store.get("forever") == "x"


@pytest.mark.anyio
async def test_set_members_compare_as_strings() -> None:
    store = MemoryStore()
    key = master_key("main")

    await store.add_to_set(key, 1, "2")
    assert await store.is_member(key, "1")
    assert await store.is_member(key, 2)

    await store.remove_from_set(key, 1)
    assert not await store.is_member(key, 1)
    await store.remove_from_set("missing", 1)


@pytest.mark.anyio
async def test_hashes() -> None:
    store = MemoryStore()

    await store.hash_set("telegramUsers", "ann", 9)
    assert await store.hash_get("telegramUsers", "ann") == "9"
    assert await store.hash_get("telegramUsers", "bob") is None
    assert await store.hash_get("other", "ann") is None


def test_master_key() -> None:
    assert master_key("main") == "master_main"


def test_redis_store_parses_address() -> None:
    store = RedisStore.connect("10.0.0.5:6380", password="pw", database=2)
    kwargs = store._client.connection_pool.connection_kwargs

    assert kwargs["host"] == "10.0.0.5"
    assert kwargs["port"] == 6380
    assert kwargs["password"] == "pw"
    assert kwargs["db"] == 2
