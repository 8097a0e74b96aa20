import asyncio
import itertools
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from auth.code_store import AuthorizationCodeStore
from auth.kv_store import FileKeyValueStore, MemoryKeyValueStore

REDIRECT_URI = "https://app.example/cb"


def test_issue_returns_unique_codes(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)

    codes = {store.issue("client-1", "user-1", REDIRECT_URI) for _ in range(20)}

    assert len(codes) == 20
    assert all(code.startswith("code_") for code in codes)
    assert len(store) == 20


def test_issue_sets_absolute_expiry(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)
    code = store.issue("client-1", "user-1", REDIRECT_URI, ttl_seconds=600)

    record = store.redeem(code, "client-1", REDIRECT_URI)

    assert record.expires_at == clock.now + 600
    assert record.user_id == "user-1"


def test_redeem_is_single_use(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)
    code = store.issue("client-1", "user-1", REDIRECT_URI)

    first = store.redeem(code, "client-1", REDIRECT_URI)
    second = store.redeem(code, "client-1", REDIRECT_URI)

    assert first is not None
    assert first.code == code
    assert second is None


def test_redeem_unknown_code(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)

    assert store.redeem("code_missing", "client-1", REDIRECT_URI) is None


@pytest.mark.parametrize(
    ("client_id", "redirect_uri"),
    [("client-2", REDIRECT_URI), ("client-1", "https://app.example/other")],
)
def test_redeem_mismatch_keeps_code(clock, client_id, redirect_uri) -> None:
    store = AuthorizationCodeStore(clock=clock)
    code = store.issue("client-1", "user-1", REDIRECT_URI)

    assert store.redeem(code, client_id, redirect_uri) is None
    assert store.redeem(code, "client-1", REDIRECT_URI) is not None


def test_redeem_expired_code(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)
    code = store.issue("client-1", "user-1", REDIRECT_URI, ttl_seconds=600)

    clock.advance(601)

    assert store.redeem(code, "client-1", REDIRECT_URI) is None


def test_redeem_zero_ttl_never_redeemable(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)
    code = store.issue("client-1", "user-1", REDIRECT_URI, ttl_seconds=0)

    assert store.redeem(code, "client-1", REDIRECT_URI) is None


def test_redeem_handles_non_ascii_arguments(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)
    code = store.issue("client-1", "user-1", REDIRECT_URI)

    assert store.redeem(code, "client-1", "https://app.example/ünïcode") is None


@pytest.mark.parametrize("backend", ["memory", "file"])
def test_concurrent_redeem_has_single_winner(tmp_path, backend) -> None:
    kv = MemoryKeyValueStore() if backend == "memory" else FileKeyValueStore(tmp_path / "c.json")
    store = AuthorizationCodeStore(kv)
    code = store.issue("client-1", "user-1", REDIRECT_URI)
    barrier = threading.Barrier(8)

    def attempt(_):
        barrier.wait()
        return store.redeem(code, "client-1", REDIRECT_URI)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(8)))

    assert sum(result is not None for result in results) == 1


def test_sweep_removes_only_expired(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)
    short = store.issue("client-1", "user-1", REDIRECT_URI, ttl_seconds=10)
    long = store.issue("client-1", "user-1", REDIRECT_URI, ttl_seconds=600)

    clock.advance(60)

    assert store.sweep_expired() == 1
    assert len(store) == 1
    assert store.redeem(short, "client-1", REDIRECT_URI) is None
    assert store.redeem(long, "client-1", REDIRECT_URI) is not None


def test_sweep_with_nothing_expired(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)
    store.issue("client-1", "user-1", REDIRECT_URI)

    assert store.sweep_expired() == 0
    assert len(store) == 1


@pytest.mark.asyncio
async def test_sweep_forever_sweeps_each_interval(clock) -> None:
    store = AuthorizationCodeStore(clock=clock)
    store.issue("client-1", "user-1", REDIRECT_URI, ttl_seconds=10)
    calls: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        calls.append(seconds)
        if len(calls) == 1:
            clock.advance(60)
            return
        raise asyncio.CancelledError

    with pytest.raises(asyncio.CancelledError):
        await store.sweep_forever(300, sleep=fake_sleep)

    assert calls == [300, 300]
    assert len(store) == 0


class _FlakyStore(MemoryKeyValueStore):
    def __init__(self) -> None:
        super().__init__()
        self.failures = 1

    def delete_where(self, predicate) -> int:
        if self.failures:
            self.failures -= 1
            raise RuntimeError("disk full")
        return super().delete_where(predicate)


@pytest.mark.asyncio
async def test_sweep_forever_survives_failed_sweep(clock, caplog) -> None:
    kv = _FlakyStore()
    store = AuthorizationCodeStore(kv, clock=clock)
    calls: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        calls.append(seconds)
        if len(calls) > 2:
            raise asyncio.CancelledError

    with pytest.raises(asyncio.CancelledError):
        await store.sweep_forever(5, sleep=fake_sleep)

    assert kv.failures == 0
    assert len(calls) == 3
    assert "Authorization code sweep failed" in caplog.text


class _BoundaryClock:
    """Alternates between just-live and exactly-expired for codes issued at ``start``."""

    def __init__(self, start: float, ttl: int) -> None:
        self._values = itertools.cycle([start, start + ttl])
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return next(self._values)


@pytest.mark.parametrize("backend", ["memory", "file"])
def test_sweep_racing_redeem_never_hands_out_a_code_twice(tmp_path, backend) -> None:
    kv = MemoryKeyValueStore() if backend == "memory" else FileKeyValueStore(tmp_path / "c.json")
    start = 1_700_000_000.0
    issuer = AuthorizationCodeStore(kv, clock=lambda: start)
    codes = [issuer.issue("client-1", "user-1", REDIRECT_URI, ttl_seconds=10) for _ in range(12)]
    racer = AuthorizationCodeStore(kv, clock=_BoundaryClock(start, 10))
    barrier = threading.Barrier(6)

    def redeem_all(_):
        barrier.wait()
        won = []
        for code in codes:
            record = racer.redeem(code, "client-1", REDIRECT_URI)
            if record is not None:
                won.append(record.code)
        return ("redeemed", won)

    def sweep_repeatedly(_):
        barrier.wait()
        return ("swept", sum(racer.sweep_expired() for _ in range(12)))

    jobs = [redeem_all] * 4 + [sweep_repeatedly] * 2
    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda job: job(None), jobs))

    redeemed = [code for kind, won in results if kind == "redeemed" for code in won]
    swept = sum(count for kind, count in results if kind == "swept")

    assert len(redeemed) == len(set(redeemed))
    assert set(redeemed) <= set(codes)
    assert len(redeemed) + swept + len(racer) == len(codes)
    assert all(record["code"] not in redeemed for record in kv.values())
