import time

from spendsort.domain.imports.sessions import ImportSessionStore, ImportState


async def _open(store: ImportSessionStore):
    return await store.create(
        filename="bank.csv",
        columns=["Date", "Description", "Amount"],
        rows=[{"Date": "2026-01-01", "Description": "Rent", "Amount": "-900"}],
        suggested_mapping={"Date": "date"},
    )


async def test_create_and_get() -> None:
    store = ImportSessionStore(ttl_seconds=60)
    batch = await _open(store)

    assert batch.state is ImportState.UPLOADED
    assert await store.get(batch.id) is batch
    assert len(store) == 1


async def test_batch_ids_are_unique() -> None:
    store = ImportSessionStore(ttl_seconds=60)
    first = await _open(store)
    second = await _open(store)
    assert first.id != second.id


async def test_idle_batches_expire() -> None:
    store = ImportSessionStore(ttl_seconds=60)
    batch = await _open(store)
    batch.updated_at = time.time() - 61

    assert await store.get(batch.id) is None
    assert len(store) == 0


async def test_access_keeps_batch_alive() -> None:
    store = ImportSessionStore(ttl_seconds=60)
    batch = await _open(store)
    batch.updated_at = time.time() - 50

    assert await store.get(batch.id) is batch
    assert time.time() - batch.updated_at < 5


async def test_discard() -> None:
    store = ImportSessionStore(ttl_seconds=60)
    batch = await _open(store)

    assert await store.discard(batch.id) is True
    assert await store.discard(batch.id) is False
    assert await store.get(batch.id) is None
