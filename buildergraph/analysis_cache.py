"""Content-addressed cache for expensive repository analyses.

Records are keyed by ``analysis_hash`` and never change once written. Within
one process, concurrent requests for the same hash share a single
computation; across processes the unique constraint on the hash decides the
winner and the loser adopts the stored record.

The shared computation runs in a task owned by the cache, so a caller that
is cancelled (for example by its own deadline) stops waiting without taking
the other callers down with it.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from buildergraph.storage.repository import RecordStore

logger = logging.getLogger(__name__)

ComputeFn = Callable[[], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]


class AnalysisCache:
    """Single-flight, insert-if-absent analysis store.

    ``compute_fn`` must return a mapping with ``narrative_text``, ``score``
    and ``score_breakdown``. If it raises, nothing is stored and every
    caller waiting on that hash receives the exception.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self._inflight: dict[str, asyncio.Task] = {}

    def get(self, analysis_hash: str) -> Optional[dict]:
        return self.store.get_analysis(analysis_hash)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def get_or_compute(self, analysis_hash: str, compute_fn: ComputeFn) -> dict:
        task = self._inflight.get(analysis_hash)
        if task is None:
            task = asyncio.create_task(
                self._resolve(analysis_hash, compute_fn),
                name=f"analysis:{analysis_hash[:12]}",
            )
            self._inflight[analysis_hash] = task
            task.add_done_callback(functools.partial(self._forget, analysis_hash))
        else:
            logger.debug("Joining in-flight analysis %s", analysis_hash[:12])
        return await asyncio.shield(task)

    async def aclose(self) -> None:
        """Cancel analyses nobody is waiting for any more (shutdown)."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d in-flight analysis task(s)", len(tasks))

    def _forget(self, analysis_hash: str, task: asyncio.Task) -> None:
        if self._inflight.get(analysis_hash) is task:
            del self._inflight[analysis_hash]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Analysis %s failed: %s", analysis_hash[:12], task.exception())

    async def _resolve(self, analysis_hash: str, compute_fn: ComputeFn) -> dict:
        existing = await asyncio.to_thread(self.store.get_analysis, analysis_hash)
        if existing is not None:
            logger.info("Reusing stored analysis %s", analysis_hash[:12])
            return existing

        if inspect.iscoroutinefunction(compute_fn):
            result = await compute_fn()
        else:
            result = await asyncio.to_thread(compute_fn)
            if inspect.isawaitable(result):
                result = await result

        record, inserted = await asyncio.to_thread(
            self.store.insert_analysis_if_absent,
            analysis_hash,
            narrative_text=result["narrative_text"],
            score=result["score"],
            score_breakdown=dict(result["score_breakdown"]),
        )
        if inserted:
            logger.info("Stored new analysis %s (score=%s)", analysis_hash[:12], record["score"])
        else:
            logger.info("Analysis %s already stored by another writer; adopting it", analysis_hash[:12])
        return record
