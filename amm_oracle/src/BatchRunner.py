"""BatchRunner: Sequential batch execution with per-entry results.

Batches run their entries one after the other in input order. A failing
entry is recorded in its own slot and the batch moves on; nothing already
done is rolled back. When the cancel event is set, the entries not yet
started are reported as cancelled, so the caller can tell exactly which
writes went through.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from .errors import OracleError

logger = logging.getLogger(__name__)

CANCELLED = "Cancelled"


@dataclass
class BatchResult:
    """Outcome of a batch.

    :ivar results: One dict per input entry, aligned by position.
    :ivar total: Number of entries submitted.
    :ivar completed: Number of entries executed (successfully or not).
    :ivar cancelled: Whether the batch stopped early on cancellation.
    """

    results: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    completed: int = 0
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r["success"])

    def to_dict(self) -> dict:
        return {
            "results": self.results,
            "total": self.total,
            "succeeded": self.succeeded,
            "completed": self.completed,
            "cancelled": self.cancelled,
        }


def run_sequential_batch(
    operations: Sequence[Callable[[], dict[str, Any]]],
    cancel_event: threading.Event | None = None,
    label: str = "batch",
    contexts: Sequence[dict[str, Any]] | None = None,
) -> BatchResult:
    """Run operations in order, capturing each outcome.

    :param operations: Zero-argument callables returning the entry's data.
    :param cancel_event: Optional event; once set, remaining entries are skipped.
    :param label: Name used in log messages.
    :param contexts: Optional per-entry fields copied into each result
        (e.g. the pair an entry refers to), present even on failure.
    :returns: BatchResult aligned with ``operations``.
    """
    result = BatchResult(total=len(operations))

    for index, operation in enumerate(operations):
        context = contexts[index] if contexts is not None else {}
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            result.results.append(
                {
                    "index": index,
                    **context,
                    "success": False,
                    "error": CANCELLED,
                    "code": CANCELLED,
                }
            )
            continue

        try:
            data = operation()
        except OracleError as e:
            logger.warning(f"[{label}] entry {index} failed: {e}")
            result.results.append(
                {"index": index, **context, "success": False, "error": str(e), "code": e.code}
            )
        else:
            result.results.append({"index": index, **context, "success": True, **data})
        result.completed += 1

    if result.cancelled:
        logger.warning(
            f"[{label}] cancelled after {result.completed}/{result.total} entries"
        )
    else:
        logger.info(f"[{label}] {result.succeeded}/{result.total} entries succeeded")
    return result
