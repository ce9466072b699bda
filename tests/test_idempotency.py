import asyncio
from datetime import timedelta

from kungfu import Ok, Error

from storefront import idempotency as I
from storefront.db import attempt_store


def counter(result=None):
    """Operation that counts its runs and returns `result` (Ok("v") by default)."""
    calls = {"n": 0}

    async def operation():
        calls["n"] += 1
        return result if result is not None else Ok("v")

    return operation, calls


def spec(operation, store, *, key="k", owner="alice", policy=None) -> I.IdempotencySpec:
    return I.IdempotencySpec(
        key=key,
        owner=owner,
        operation=operation,
        store=store,
        policy=policy or I.Policy().with_poll_interval(seconds=0.01),
    )


async def test_second_call_replays():
    store = I.MemoryStore()
    op, calls = counter()

    first = await I.run_idempotent(spec(op, store))
    second = await I.run_idempotent(spec(op, store))

    match first, second:
        case Ok(a), Ok(b):
            assert (a.value, a.replayed) == ("v", False)
            assert (b.value, b.replayed) == ("v", True)
        case _:
            raise AssertionError((first, second))
    assert calls["n"] == 1


async def test_other_owner_is_refused():
    store = I.MemoryStore()
    op, calls = counter()

    await I.run_idempotent(spec(op, store, owner="alice"))
    match await I.run_idempotent(spec(op, store, owner="mallory")):
        case Error(e):
            assert e.kind is I.IdempotencyErrorKind.OWNER_MISMATCH
        case Ok(_):
            raise AssertionError("foreign owner replayed")
    assert calls["n"] == 1


async def test_failure_is_not_cached():
    store = I.MemoryStore()
    failing, _ = counter(Error("declined"))

    match await I.run_idempotent(spec(failing, store)):
        case Error(e):
            assert e.kind is I.IdempotencyErrorKind.EXECUTION
            assert e.original_error == "declined"
        case Ok(_):
            raise AssertionError("failure reported as success")

    op, calls = counter()
    assert isinstance(await I.run_idempotent(spec(op, store)), Ok)
    assert calls["n"] == 1


async def test_exception_releases_key():
    store = I.MemoryStore()

    async def boom():
        raise RuntimeError("crash")

    match await I.run_idempotent(spec(boom, store)):
        case Error(e):
            assert e.kind is I.IdempotencyErrorKind.EXECUTION
            assert isinstance(e.original_error, RuntimeError)
        case Ok(_):
            raise AssertionError("exception swallowed")
    assert await store.get("k") == Ok(None)


async def test_concurrent_callers_wait_for_first_run():
    store = I.MemoryStore()
    release = asyncio.Event()
    calls = {"n": 0}

    async def slow():
        calls["n"] += 1
        await release.wait()
        return Ok("done")

    first = asyncio.create_task(I.run_idempotent(spec(slow, store)))
    await asyncio.sleep(0.02)
    second = asyncio.create_task(I.run_idempotent(spec(slow, store)))
    await asyncio.sleep(0.02)
    release.set()

    results = await asyncio.gather(first, second)
    assert calls["n"] == 1
    assert sorted(r.value.replayed for r in results) == [False, True]


async def test_fail_policy_reports_conflict():
    store = I.MemoryStore()
    await store.set_pending("k", "alice", None)
    op, calls = counter()

    policy = I.Policy().with_on_pending(I.FAIL)
    match await I.run_idempotent(spec(op, store, policy=policy)):
        case Error(e):
            assert e.kind is I.IdempotencyErrorKind.CONFLICT
        case Ok(_):
            raise AssertionError("ran while pending")
    assert calls["n"] == 0


async def test_wait_times_out():
    store = I.MemoryStore()
    await store.set_pending("k", "alice", None)
    op, _ = counter()

    policy = I.Policy().with_wait_timeout(seconds=0.05).with_poll_interval(seconds=0.01)
    match await I.run_idempotent(spec(op, store, policy=policy)):
        case Error(e):
            assert e.kind is I.IdempotencyErrorKind.TIMEOUT
        case Ok(_):
            raise AssertionError("ran while pending")


async def test_waiter_takes_over_released_key():
    store = I.MemoryStore()
    await store.set_pending("k", "alice", None)
    op, calls = counter()

    async def release_soon():
        await asyncio.sleep(0.03)
        await store.delete("k")

    releaser = asyncio.create_task(release_soon())
    result = await I.run_idempotent(spec(op, store))
    await releaser

    match result:
        case Ok(r):
            assert not r.replayed
        case Error(e):
            raise AssertionError(e)
    assert calls["n"] == 1


async def test_expired_record_runs_again():
    store = I.MemoryStore()
    op, calls = counter()
    policy = I.Policy().with_ttl(delta=timedelta(milliseconds=10))

    await I.run_idempotent(spec(op, store, policy=policy))
    await asyncio.sleep(0.03)
    await I.run_idempotent(spec(op, store, policy=policy))

    assert calls["n"] == 2


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy store
# ═══════════════════════════════════════════════════════════════════════════════


async def test_sql_store_claim_is_exclusive(db):
    store = attempt_store(db)

    assert await store.set_pending("checkout:pk", "alice", timedelta(minutes=5)) == Ok(True)
    assert await store.set_pending("checkout:pk", "bob", timedelta(minutes=5)) == Ok(False)

    match await store.get("checkout:pk"):
        case Ok(record) if record is not None:
            assert record.owner == "alice"
            assert record.is_pending
        case other:
            raise AssertionError(other)


async def test_sql_store_completes_and_replays(db):
    store = attempt_store(db)
    op, calls = counter(Ok("ord_abc"))

    await I.run_idempotent(spec(op, store, key="checkout:pk"))
    match await I.run_idempotent(spec(op, store, key="checkout:pk")):
        case Ok(r):
            assert (r.value, r.replayed) == ("ord_abc", True)
        case Error(e):
            raise AssertionError(e)
    assert calls["n"] == 1


async def test_sql_store_reclaims_expired_pending(db):
    store = attempt_store(db)

    await store.set_pending("checkout:pk", "alice", timedelta(milliseconds=1))
    await asyncio.sleep(0.01)

    assert await store.get("checkout:pk") == Ok(None)
    assert await store.set_pending("checkout:pk", "alice", timedelta(minutes=5)) == Ok(True)


async def test_sql_store_delete(db):
    store = attempt_store(db)
    await store.set_pending("checkout:pk", "alice", None)

    assert await store.delete("checkout:pk") == Ok(True)
    assert await store.delete("checkout:pk") == Ok(False)
