"""Unit tests for BatchRunner."""

import threading

from amm_oracle.src.BatchRunner import CANCELLED, run_sequential_batch
from amm_oracle.src.errors import NotFoundError


def _ok(value: int):
    return lambda: {"value": value}


def _fail(message: str):
    def _run():
        raise NotFoundError(message)
    return _run


class TestRunSequentialBatch:
    """Test sequential execution and result alignment."""

    def test_all_succeed(self) -> None:
        """Results should be aligned with the input order."""
        result = run_sequential_batch([_ok(1), _ok(2), _ok(3)])
        assert [r["value"] for r in result.results] == [1, 2, 3]
        assert [r["index"] for r in result.results] == [0, 1, 2]
        assert result.succeeded == 3
        assert result.completed == 3
        assert not result.cancelled

    def test_failure_recorded_in_place(self) -> None:
        """A failing entry should not stop the batch."""
        result = run_sequential_batch([_ok(1), _fail("missing"), _ok(3)])
        assert result.results[1] == {
            "index": 1,
            "success": False,
            "error": "missing",
            "code": "NotFound",
        }
        assert result.results[2]["success"] is True
        assert result.succeeded == 2
        assert result.completed == 3

    def test_runs_in_order(self) -> None:
        """Entries should run one after the other in input order."""
        calls = []

        def _record(i: int):
            def _run():
                calls.append(i)
                return {}
            return _run

        run_sequential_batch([_record(i) for i in range(5)])
        assert calls == [0, 1, 2, 3, 4]

    def test_contexts_echoed(self) -> None:
        """Per-entry context should appear on success and failure."""
        result = run_sequential_batch(
            [_ok(1), _fail("x")], contexts=[{"pair": "a"}, {"pair": "b"}]
        )
        assert result.results[0]["pair"] == "a"
        assert result.results[1]["pair"] == "b"

    def test_empty_batch(self) -> None:
        """An empty batch should succeed with no results."""
        result = run_sequential_batch([])
        assert result.to_dict() == {
            "results": [],
            "total": 0,
            "succeeded": 0,
            "completed": 0,
            "cancelled": False,
        }


class TestBatchCancellation:
    """Test cooperative cancellation."""

    def test_cancel_midway(self) -> None:
        """Entries after cancellation should be reported as cancelled."""
        cancel = threading.Event()

        def _cancel_after():
            cancel.set()
            return {"value": 2}

        result = run_sequential_batch([_ok(1), _cancel_after, _ok(3), _ok(4)], cancel)

        assert result.cancelled
        assert result.completed == 2
        assert result.total == 4
        assert [r["success"] for r in result.results] == [True, True, False, False]
        assert result.results[2]["code"] == CANCELLED

    def test_cancelled_before_start(self) -> None:
        """A pre-set event should run nothing."""
        cancel = threading.Event()
        cancel.set()
        calls = []
        result = run_sequential_batch([lambda: calls.append(1) or {}], cancel)
        assert calls == []
        assert result.completed == 0
        assert result.cancelled
