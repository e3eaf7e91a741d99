import asyncio

import pytest

from marketplace.services.saga import Saga, SagaAborted


def test_steps_run_in_order_and_collect_outputs() -> None:
    """Every step completes and its return value is kept under its name."""
    seen = []

    async def third():
        seen.append("c")
        return 3

    saga = Saga("ordered")
    saga.step("first", lambda: seen.append("a") or 1)
    saga.step("second", lambda: seen.append("b") or 2)
    saga.step("third", third)

    result = asyncio.run(saga.run())

    assert seen == ["a", "b", "c"]
    assert result.completed == ["first", "second", "third"]
    assert result.outputs == {"first": 1, "second": 2, "third": 3}
    assert result.fully_applied
    assert result.furthest_step == "third"


def test_best_effort_failure_is_recorded_and_later_steps_still_run() -> None:
    applied = []

    def boom():
        raise RuntimeError("notification table locked")

    saga = Saga("partial")
    saga.step("one", lambda: applied.append(1))
    saga.step("two", boom)
    saga.step("three", lambda: applied.append(3))

    result = asyncio.run(saga.run())

    assert applied == [1, 3]
    assert result.completed == ["one", "three"]
    assert result.failed == {"two": "notification table locked"}
    assert not result.fully_applied
    assert result.to_dict()["failed_steps"] == {"two": "notification table locked"}


def test_critical_failure_aborts_and_keeps_earlier_steps() -> None:
    """Steps before the failed one stay applied; steps after it never run."""
    applied = []

    def boom():
        raise RuntimeError("ledger unavailable")

    saga = Saga("critical")
    saga.step("one", lambda: applied.append(1))
    saga.step("two", lambda: applied.append(2))
    saga.step("three", boom, critical=True)
    saga.step("four", lambda: applied.append(4))

    with pytest.raises(SagaAborted) as excinfo:
        asyncio.run(saga.run())

    assert applied == [1, 2]
    assert excinfo.value.step == "three"
    assert excinfo.value.completed == ["one", "two"]
    assert excinfo.value.furthest_step == "two"
    assert isinstance(excinfo.value.error, RuntimeError)


def test_step_error_hook_runs_for_each_failure() -> None:
    cleanups = []

    def boom():
        raise ValueError("bad row")

    saga = Saga("cleanup", on_step_error=lambda: cleanups.append("rollback"))
    saga.step("a", boom)
    saga.step("b", lambda: None)
    saga.step("c", boom)

    asyncio.run(saga.run())

    assert cleanups == ["rollback", "rollback"]
    assert saga.step_names == ["a", "b", "c"]


def test_first_step_failure_has_no_furthest_step() -> None:
    def boom():
        raise RuntimeError("down")

    saga = Saga("empty").step("only", boom, critical=True)

    with pytest.raises(SagaAborted) as excinfo:
        asyncio.run(saga.run())

    assert excinfo.value.furthest_step is None
