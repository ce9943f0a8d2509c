from __future__ import annotations

import asyncio

from giftflow.services.debounce import ReorderDebouncer


class _Recorder:
    def __init__(self, fail_first: bool = False) -> None:
        self.applied: list[tuple[str, list[str]]] = []
        self.fail_first = fail_first
        self.active = 0
        self.max_active = 0

    async def __call__(self, project_id: str, node_ids: list[str]) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.01)
            if self.fail_first and not self.applied:
                self.applied.append((project_id, []))
                raise RuntimeError("store unavailable")
            self.applied.append((project_id, node_ids))
        finally:
            self.active -= 1


def test_bursts_collapse_to_the_last_order() -> None:
    async def scenario():
        recorder = _Recorder()
        debouncer = ReorderDebouncer(recorder, settle_seconds=0.05)
        debouncer.submit("p1", ["a", "b", "c"])
        debouncer.submit("p1", ["b", "a", "c"])
        debouncer.submit("p1", ["c", "b", "a"])
        assert debouncer.pending("p1") == ["c", "b", "a"]
        await asyncio.sleep(0.2)
        await debouncer.aclose()
        return recorder

    recorder = asyncio.run(scenario())
    assert recorder.applied == [("p1", ["c", "b", "a"])]


def test_projects_settle_independently_and_never_overlap() -> None:
    async def scenario():
        recorder = _Recorder()
        debouncer = ReorderDebouncer(recorder, settle_seconds=0.02)
        debouncer.submit("p1", ["a", "b"])
        debouncer.submit("p2", ["x", "y"])
        await asyncio.sleep(0.2)
        await debouncer.aclose()
        return recorder

    recorder = asyncio.run(scenario())
    assert sorted(recorder.applied) == [("p1", ["a", "b"]), ("p2", ["x", "y"])]
    assert recorder.max_active == 1


def test_flush_applies_without_waiting() -> None:
    async def scenario():
        recorder = _Recorder()
        debouncer = ReorderDebouncer(recorder, settle_seconds=30)
        debouncer.submit("p1", ["b", "a"])
        await debouncer.flush("p1")
        applied_at_flush = list(recorder.applied)
        await asyncio.sleep(0.05)
        left = debouncer.pending("p1")
        await debouncer.aclose()
        return applied_at_flush, left, recorder

    applied_at_flush, left, recorder = asyncio.run(scenario())
    assert applied_at_flush == [("p1", ["b", "a"])]
    assert left is None
    assert recorder.applied == [("p1", ["b", "a"])]


def test_close_applies_what_is_still_pending() -> None:
    async def scenario():
        recorder = _Recorder()
        debouncer = ReorderDebouncer(recorder, settle_seconds=30)
        debouncer.submit("p1", ["z"])
        await debouncer.aclose()
        return recorder

    assert asyncio.run(scenario()).applied == [("p1", ["z"])]


def test_failed_apply_does_not_block_later_orders() -> None:
    async def scenario():
        recorder = _Recorder(fail_first=True)
        debouncer = ReorderDebouncer(recorder, settle_seconds=0.01)
        debouncer.submit("p1", ["a"])
        await asyncio.sleep(0.1)
        debouncer.submit("p1", ["b"])
        await asyncio.sleep(0.1)
        await debouncer.aclose()
        return recorder

    recorder = asyncio.run(scenario())
    assert recorder.applied == [("p1", []), ("p1", ["b"])]


def test_settle_period_defaults_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("REORDER_SETTLE_SECONDS", "1.5")
    assert ReorderDebouncer(_Recorder()).settle_seconds == 1.5
    monkeypatch.setenv("REORDER_SETTLE_SECONDS", "soon")
    assert ReorderDebouncer(_Recorder()).settle_seconds == 0.5
