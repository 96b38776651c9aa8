"""
Idempotency keys and single-flight collapsing of duplicate operations.

Records live in process memory only. Two engine instances behind a load
balancer will each accept the same key; see DESIGN.md (open question on
horizontal scaling).
"""
import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar, Union

from medsafe.constants import CacheTTL
from medsafe.services.cache import TTLCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


def make_idempotency_key(operation: str, params: Mapping[str, Any]) -> str:
    """
    Deterministic key for an operation and its parameters.

    Field order and call time do not affect the key.
    """
    payload = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32]
    return f"{operation}:{digest}"


@dataclass(frozen=True)
class IdempotencyRecord:
    key: str
    result: Any
    recorded_at: float


class IdempotencyStore:
    """
    Remembers completed operations for a TTL and collapses concurrent
    duplicates onto one in-flight task.
    """

    def __init__(
        self,
        ttl: float = CacheTTL.IDEMPOTENCY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._records: TTLCache[IdempotencyRecord] = TTLCache(ttl, name="idempotency", clock=clock)
        self._in_flight: Dict[str, asyncio.Future] = {}

    def is_processed(self, key: str) -> bool:
        return self._records.get(key) is not None

    def get_result(self, key: str) -> Optional[Any]:
        record = self._records.get(key)
        return record.result if record else None

    def mark_processed(self, key: str, result: Any) -> None:
        self._records.set(key, IdempotencyRecord(key=key, result=result, recorded_at=self._clock()))

    def sweep(self) -> int:
        return self._records.sweep()

    def start_sweeper(self, interval: float) -> asyncio.Task:
        return self._records.start_sweeper(interval)

    async def stop_sweeper(self) -> None:
        await self._records.stop_sweeper()

    async def run(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        remember: Union[bool, Callable[[T], bool]] = True,
    ) -> T:
        """
        Run operation at most once per key.

        A recorded result is returned directly. Callers arriving while the
        operation is in flight await the same task. The task is shielded, so
        a cancelled caller does not cancel it for the others. Failures are
        never recorded. remember controls whether a successful result is
        kept for the TTL (a predicate receives the result).
        """
        record = self._records.get(key)
        if record is not None:
            logger.debug(f"Idempotency hit for {key}")
            return record.result

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(operation())
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._settle(key, t, remember))
        else:
            logger.debug(f"Joining in-flight operation {key}")

        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Future, remember) -> None:
        self._in_flight.pop(key, None)
        if task.cancelled() or task.exception() is not None:
            return
        result = task.result()
        keep = remember(result) if callable(remember) else remember
        if keep:
            self.mark_processed(key, result)
