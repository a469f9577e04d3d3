"""
In-memory query cache keyed by query identity.

Each key holds the last fetched value, its fetch status and a staleness flag.
Reads follow a stale-while-revalidate policy: while a refetch runs the previous
data stays visible, and a failed fetch keeps the last good data next to the
error. At most one fetch per key is in flight; a fetch result is only ever
applied to the key it was started for.

All mutations happen on the event loop thread, so no locking is needed.
"""
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .config import QUERY_MAX_RETRY_DELAY, QUERY_RETRY, QUERY_RETRY_DELAY
from .errors import NetworkError, SensorDashError
from .models import QueryEntry, QueryKey, QueryStatus

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Listener = Callable[[QueryKey], None]


@dataclass
class _Slot:
    status: QueryStatus = QueryStatus.IDLE
    data: Any = None
    error: Optional[str] = None
    fetched_at: Optional[float] = None
    stale: bool = True
    task: Optional[asyncio.Task] = None
    # bumped by local writes; an in-flight fetch started before a write is superseded
    write_epoch: int = 0
    # bumped by invalidate; a fetch started before an invalidation leaves the entry stale
    invalidations: int = 0
    # write_epoch the in-flight task was started under
    task_epoch: int = 0


class QueryCache:
    def __init__(
        self,
        retry: int = QUERY_RETRY,
        retry_delay: float = QUERY_RETRY_DELAY,
        max_retry_delay: float = QUERY_MAX_RETRY_DELAY,
    ) -> None:
        self.retry = retry
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self._slots: Dict[QueryKey, _Slot] = {}
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()

    # read

    def get(self, key: QueryKey) -> Optional[QueryEntry]:
        slot = self._slots.get(key)
        if slot is None:
            return None
        return self._entry(key, slot)

    def keys(self) -> List[QueryKey]:
        return list(self._slots.keys())

    def is_fetching(self, key: QueryKey) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.task is not None

    def get_or_fetch(self, key: QueryKey, fetcher: Fetcher) -> QueryEntry:
        """
        Return the entry for key, starting a fetch when it is stale or absent.

        Does not block: the fetch runs as a task on the running event loop and
        the returned entry is in the loading state with any previous data kept.
        Calls made while a fetch for key is outstanding attach to that fetch.
        """
        slot = self._slots.get(key)
        if slot is None:
            slot = _Slot()
            self._slots[key] = slot

        # a fetch overtaken by a local write will be dropped, so it cannot be joined
        joinable = slot.task is not None and slot.task_epoch == slot.write_epoch
        if joinable or not slot.stale:
            return self._entry(key, slot)

        slot.status = QueryStatus.LOADING
        task = asyncio.get_running_loop().create_task(
            self._run(key, slot, fetcher, slot.write_epoch, slot.invalidations)
        )
        slot.task = task
        slot.task_epoch = slot.write_epoch
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"fetch started for {key}")
        self._notify(key)
        return self._entry(key, slot)

    async def wait(self, key: QueryKey) -> Optional[QueryEntry]:
        """Wait for the in-flight fetch of key, if any, and return the settled entry."""
        slot = self._slots.get(key)
        if slot is not None and slot.task is not None:
            await slot.task
        return self.get(key)

    async def fetch(self, key: QueryKey, fetcher: Fetcher) -> QueryEntry:
        self.get_or_fetch(key, fetcher)
        entry = await self.wait(key)
        if entry is None:
            # removed while the fetch was in flight
            return QueryEntry(key=key)
        return entry

    # write

    def invalidate(self, key: QueryKey) -> None:
        slot = self._slots.get(key)
        if slot is None:
            return
        slot.stale = True
        slot.invalidations += 1
        logger.debug(f"invalidated {key}")
        self._notify(key)

    def invalidate_prefix(self, *parts: Any) -> None:
        """Invalidate every key starting with parts, e.g. ("readings",)."""
        for key in [k for k in self._slots if k[: len(parts)] == parts]:
            self.invalidate(key)

    def set_data(self, key: QueryKey, data: Any) -> QueryEntry:
        """
        Store authoritative data for key without fetching.

        The entry becomes fresh. A fetch already in flight for key started
        before this write and its result is discarded when it lands.
        """
        slot = self._slots.get(key)
        if slot is None:
            slot = _Slot()
            self._slots[key] = slot
        slot.data = list(data) if isinstance(data, list) else data
        slot.status = QueryStatus.SUCCESS
        slot.error = None
        slot.fetched_at = time.time()
        slot.stale = False
        slot.write_epoch += 1
        self._notify(key)
        return self._entry(key, slot)

    def remove(self, key: QueryKey) -> None:
        if self._slots.pop(key, None) is not None:
            self._notify(key)

    def clear(self) -> None:
        for key in list(self._slots.keys()):
            self.remove(key)

    # notify

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: QueryKey) -> None:
        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception:
                logger.exception(f"cache listener failed for {key}")

    # internals

    def _entry(self, key: QueryKey, slot: _Slot) -> QueryEntry:
        return QueryEntry(
            key=key,
            status=slot.status,
            # callers get their own list; the cache only changes through set_data
            data=list(slot.data) if isinstance(slot.data, list) else slot.data,
            error=slot.error,
            fetched_at=slot.fetched_at,
            is_stale=slot.stale,
        )

    async def _run(
        self, key: QueryKey, slot: _Slot, fetcher: Fetcher, write_epoch: int, invalidations: int
    ) -> None:
        try:
            data = await self._fetch_with_retry(key, fetcher)
        except SensorDashError as e:
            logger.warning(f"fetch for {key} failed: {e}")
            self._settle(key, slot, write_epoch, invalidations, error=e)
        except Exception as e:
            logger.exception(f"unexpected error fetching {key}")
            self._settle(key, slot, write_epoch, invalidations, error=e)
        else:
            self._settle(key, slot, write_epoch, invalidations, data=data)
        finally:
            # cancelled fetches never reach _settle
            if slot.task is asyncio.current_task():
                slot.task = None
                if slot.status is QueryStatus.LOADING:
                    slot.status = QueryStatus.IDLE

    async def _fetch_with_retry(self, key: QueryKey, fetcher: Fetcher) -> Any:
        attempt = 0
        while True:
            try:
                return await fetcher()
            except NetworkError as e:
                if attempt >= self.retry:
                    raise
                delay = min(self.retry_delay * (2 ** attempt), self.max_retry_delay)
                attempt += 1
                logger.info(f"retrying {key} in {delay:.1f}s (attempt {attempt}/{self.retry}): {e}")
                await asyncio.sleep(delay)

    def _settle(
        self,
        key: QueryKey,
        slot: _Slot,
        write_epoch: int,
        invalidations: int,
        data: Any = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if slot.task is asyncio.current_task():
            slot.task = None
        if self._slots.get(key) is not slot:
            logger.debug(f"dropping result for removed entry {key}")
            return
        if slot.write_epoch != write_epoch:
            logger.debug(f"dropping result for {key} superseded by a local write")
            self._notify(key)
            return

        if error is not None:
            slot.status = QueryStatus.ERROR
            slot.error = str(error) or type(error).__name__
        else:
            slot.status = QueryStatus.SUCCESS
            slot.data = data
            slot.error = None
            slot.fetched_at = time.time()
            slot.stale = slot.invalidations != invalidations
        self._notify(key)
