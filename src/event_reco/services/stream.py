"""
Partitioned consumption of the user-action stream.

Actions are routed to a partition by user id, and each partition is drained
by exactly one worker thread, so all actions of a user are applied in order
by one worker while different users proceed in parallel.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional

from event_reco.core.errors import TransientStoreError, ValidationError
from event_reco.core.types import EventSimilarityUpdate, UserAction
from event_reco.services.ingest import action_from_record
from event_reco.services.updater import SimilarityUpdater


logger = logging.getLogger(__name__)

UpdateSink = Callable[[List[EventSimilarityUpdate]], None]


def log_sink(updates: List[EventSimilarityUpdate]) -> None:
    for u in updates:
        logger.debug("similarity (%s, %s) = %.6f at %s", u.event_a, u.event_b, u.score, u.timestamp.isoformat())


@dataclass
class _Delivery:
    action: UserAction
    attempt: int = 1


_STOP = object()


def decode_records(records: Iterable[Mapping[str, Any]]) -> Iterator[UserAction]:
    """Turn raw transport records into actions, skipping the malformed ones."""
    for record in records:
        try:
            yield action_from_record(record)
        except ValidationError as e:
            logger.warning("Skipping malformed record: %s", e)


def process_action(updater: SimilarityUpdater, action: UserAction, sink: UpdateSink) -> List[EventSimilarityUpdate]:
    """One step of a pull loop: apply an action and hand the emitted updates to the sink."""
    if updater.pending_pairs():
        sink(updater.retry_pending())
    updates = updater.apply(action)
    if updates:
        sink(updates)
    return updates


def pull_loop(updater: SimilarityUpdater, source: Iterable[UserAction], sink: UpdateSink = log_sink) -> int:
    """
    Drain a finite source on the calling thread. Bad actions are skipped and
    logged so one failure never halts the loop. Returns the processed count.
    """
    processed = 0
    for action in source:
        try:
            process_action(updater, action, sink)
            processed += 1
        except ValidationError as e:
            logger.warning("Skipping invalid action %s: %s", action, e)
        except TransientStoreError as e:
            logger.error("Store unavailable while applying %s: %s", action, e)
    return processed


class PartitionedActionConsumer:
    def __init__(
        self,
        updater: SimilarityUpdater,
        *,
        num_partitions: int = 4,
        queue_size: int = 10000,
        max_redeliveries: int = 3,
        sink: UpdateSink = log_sink,
    ):
        if num_partitions < 1:
            raise ValueError("num_partitions must be >= 1")
        self.updater = updater
        self.num_partitions = num_partitions
        self.max_redeliveries = max_redeliveries
        self.sink = sink
        self._queues: List[queue.Queue] = [queue.Queue(maxsize=queue_size) for _ in range(num_partitions)]
        self._workers: List[threading.Thread] = []
        self._lock = threading.Lock()
        self.processed = 0
        self.skipped = 0
        self.dropped = 0

    def partition_for(self, user_id: int) -> int:
        return int(user_id) % self.num_partitions

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._workers)

    def start(self) -> None:
        with self._lock:
            if self._workers:
                return
            for i in range(self.num_partitions):
                t = threading.Thread(target=self._run, args=(i,), name=f"action-partition-{i}", daemon=True)
                t.start()
                self._workers.append(t)
        logger.info("Started %d action partitions", self.num_partitions)

    def submit(self, action: UserAction, *, timeout: Optional[float] = None) -> int:
        """Enqueue an action on its user's partition; blocks while the queue is full."""
        partition = self.partition_for(action.user_id)
        self._queues[partition].put(_Delivery(action), timeout=timeout)
        return partition

    def submit_many(self, actions: Iterable[UserAction]) -> int:
        count = 0
        for action in actions:
            self.submit(action)
            count += 1
        return count

    def drain(self) -> None:
        """Block until every submitted action (including redeliveries) is done."""
        for q in self._queues:
            q.join()

    def stop(self, *, drain: bool = True) -> None:
        with self._lock:
            workers, self._workers = self._workers, []
        if not workers:
            return
        if drain:
            self.drain()
        for q in self._queues:
            q.put(_STOP)
        for t in workers:
            t.join()
        logger.info(
            "Stopped action partitions (processed=%d skipped=%d dropped=%d)",
            self.processed, self.skipped, self.dropped,
        )

    def _run(self, partition: int) -> None:
        q = self._queues[partition]
        while True:
            item = q.get()
            try:
                if item is _STOP:
                    return
                self._handle(partition, item)
            finally:
                q.task_done()

    def _handle(self, partition: int, delivery: _Delivery) -> None:
        action = delivery.action
        try:
            process_action(self.updater, action, self.sink)
            self._count("processed")
        except ValidationError as e:
            logger.warning("Partition %d: skipping invalid action %s: %s", partition, action, e)
            self._count("skipped")
        except TransientStoreError as e:
            if delivery.attempt > self.max_redeliveries:
                logger.error(
                    "Partition %d: dropping %s after %d attempts: %s", partition, action, delivery.attempt, e
                )
                self._count("dropped")
                return
            logger.warning("Partition %d: redelivering %s (attempt %d): %s", partition, action, delivery.attempt, e)
            # put_nowait: the worker must never block on its own queue
            try:
                self._queues[partition].put_nowait(_Delivery(action, delivery.attempt + 1))
            except queue.Full:
                logger.error("Partition %d: queue full, dropping redelivery of %s", partition, action)
                self._count("dropped")
        except Exception:
            logger.exception("Partition %d: unexpected error for %s", partition, action)
            self._count("skipped")

    def _count(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)
