"""
In-memory aggregate stores.

Every store is a sharded map: keys are spread over N shards and each shard
has its own lock, so two updates contend only when their keys land in the
same shard. There is no store-wide lock.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Hashable, Iterable, Iterator, List, Optional, Protocol, Set, Tuple, TypeVar

from event_reco.core.types import PairKey, pair_key


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")
R = TypeVar("R")


class StripedLocks:
    """Fixed pool of locks; a key always maps to the same lock."""

    def __init__(self, stripes: int = 64):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks = [threading.RLock() for _ in range(stripes)]

    def lock_for(self, key: Hashable) -> threading.RLock:
        return self._locks[hash(key) % len(self._locks)]


class ShardedMap(Generic[K, V]):
    def __init__(self, shards: int = 64):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards: List[Dict[K, V]] = [{} for _ in range(shards)]
        self._locks = [threading.Lock() for _ in range(shards)]

    def _index(self, key: K) -> int:
        return hash(key) % len(self._shards)

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        i = self._index(key)
        with self._locks[i]:
            return self._shards[i].get(key, default)

    def read(self, key: K, fn: Callable[[V], R], default: R) -> R:
        """Apply `fn` to the stored value under the shard lock, without replacing it."""
        i = self._index(key)
        with self._locks[i]:
            value = self._shards[i].get(key)
            if value is None:
                return default
            return fn(value)

    def compute(self, key: K, fn: Callable[[Optional[V]], V]) -> V:
        """Atomically replace the value for `key` with `fn(current)`."""
        i = self._index(key)
        with self._locks[i]:
            value = fn(self._shards[i].get(key))
            self._shards[i][key] = value
            return value

    def __len__(self) -> int:
        total = 0
        for i, shard in enumerate(self._shards):
            with self._locks[i]:
                total += len(shard)
        return total

    def items(self) -> Iterator[Tuple[K, V]]:
        """Per-shard snapshot; shards are copied one at a time."""
        for i, shard in enumerate(self._shards):
            with self._locks[i]:
                snapshot = list(shard.items())
            yield from snapshot


def link_partner(partners: ShardedMap[int, Set[int]], event_id: int, other: int) -> None:
    def _add(current: Optional[Set[int]]) -> Set[int]:
        current = current if current is not None else set()
        current.add(other)
        return current

    partners.compute(event_id, _add)


# ---------------------------------------------------------------------------
# UserEventWeightStore
# ---------------------------------------------------------------------------


@dataclass
class _UserEvents:
    # event_id -> weight; insertion order is oldest -> newest interaction
    weights: "OrderedDict[int, float]" = field(default_factory=OrderedDict)


class UserEventWeightStore:
    """Per (user, event) max weight plus per-user recency-ordered history."""

    def __init__(self, shards: int = 64):
        self._users: ShardedMap[int, _UserEvents] = ShardedMap(shards)

    def get_weight(self, user_id: int, event_id: int) -> float:
        return self._users.read(user_id, lambda entry: entry.weights.get(event_id, 0.0), 0.0)

    def set_weight(self, user_id: int, event_id: int, weight: float) -> None:
        def _set(entry: Optional[_UserEvents]) -> _UserEvents:
            entry = entry or _UserEvents()
            if weight < entry.weights.get(event_id, 0.0):
                raise ValueError("user-event weight must not decrease")
            entry.weights[event_id] = weight
            return entry

        self._users.compute(user_id, _set)

    def touch(self, user_id: int, event_id: int) -> None:
        """Move `event_id` to the most-recent position of the user's history."""

        def _touch(entry: Optional[_UserEvents]) -> _UserEvents:
            entry = entry or _UserEvents()
            if event_id in entry.weights:
                entry.weights.move_to_end(event_id)
            return entry

        self._users.compute(user_id, _touch)

    def history(self, user_id: int) -> List[int]:
        """Distinct event ids, newest first."""
        return self._users.read(user_id, lambda entry: list(reversed(entry.weights.keys())), [])

    def weights(self, user_id: int) -> Dict[int, float]:
        return self._users.read(user_id, lambda entry: dict(entry.weights), {})


# ---------------------------------------------------------------------------
# EventWeightSumStore
# ---------------------------------------------------------------------------


class EventWeightSumStore:
    def __init__(self, shards: int = 64):
        self._sums: ShardedMap[int, float] = ShardedMap(shards)

    def add(self, event_id: int, delta: float) -> float:
        return self._sums.compute(event_id, lambda cur: (cur or 0.0) + delta)

    def get(self, event_id: int) -> float:
        return self._sums.get(event_id, 0.0) or 0.0

    def get_many(self, event_ids: Iterable[int]) -> Dict[int, float]:
        return {e: self.get(e) for e in event_ids}


# ---------------------------------------------------------------------------
# PairMinWeightStore
# ---------------------------------------------------------------------------


class PairMinWeightStore:
    """
    Running Σ_u min(w(u,A), w(u,B)) per unordered pair.

    Also keeps, per event, the set of events it has a pair entry with, so an
    event's existing pairs can be enumerated without scanning the whole map.
    """

    def __init__(self, shards: int = 64):
        self._sums: ShardedMap[PairKey, float] = ShardedMap(shards)
        self._partners: ShardedMap[int, Set[int]] = ShardedMap(shards)

    def add(self, event_a: int, event_b: int, delta: float) -> float:
        if event_a == event_b:
            raise ValueError("pair requires two distinct events")
        key = pair_key(event_a, event_b)
        new_sum = self._sums.compute(key, lambda cur: (cur or 0.0) + delta)
        self._link(event_a, event_b)
        self._link(event_b, event_a)
        return new_sum

    def _link(self, event_id: int, other: int) -> None:
        link_partner(self._partners, event_id, other)

    def get(self, event_a: int, event_b: int) -> float:
        return self._sums.get(pair_key(event_a, event_b), 0.0) or 0.0

    def partners(self, event_id: int) -> Set[int]:
        return self._partners.read(event_id, set, set())

    def items(self) -> Iterator[Tuple[PairKey, float]]:
        return self._sums.items()


# ---------------------------------------------------------------------------
# EventSimilarityStore
# ---------------------------------------------------------------------------


class EventSimilarityStore(Protocol):
    def upsert(self, event_a: int, event_b: int, score: float) -> None:
        ...

    def get(self, event_a: int, event_b: int) -> Optional[float]:
        ...

    def refresh(self, event_a: int, event_b: int, compute: Callable[[], Optional[float]]) -> Optional[float]:
        """Compute and store a score while holding the pair's lock."""

    def top_similar(self, event_id: int, k: int, excluding: Iterable[int] = ()) -> List[Tuple[int, float]]:
        ...

    def scores_for(self, event_id: int, others: Iterable[int]) -> Dict[int, float]:
        ...


def rank_scores(scored: Iterable[Tuple[int, float]], k: int) -> List[Tuple[int, float]]:
    """Highest score first, ties broken by ascending event id."""
    return sorted(scored, key=lambda x: (-x[1], x[0]))[: max(k, 0)]


class InMemoryEventSimilarityStore:
    def __init__(self, shards: int = 64):
        self._scores: ShardedMap[PairKey, float] = ShardedMap(shards)
        self._partners: ShardedMap[int, Set[int]] = ShardedMap(shards)
        self._pair_locks = StripedLocks(shards)

    def upsert(self, event_a: int, event_b: int, score: float) -> None:
        if event_a == event_b:
            raise ValueError("similarity requires two distinct events")
        key = pair_key(event_a, event_b)
        self._scores.compute(key, lambda _cur: float(score))
        link_partner(self._partners, event_a, event_b)
        link_partner(self._partners, event_b, event_a)

    def get(self, event_a: int, event_b: int) -> Optional[float]:
        return self._scores.get(pair_key(event_a, event_b))

    def refresh(self, event_a: int, event_b: int, compute: Callable[[], Optional[float]]) -> Optional[float]:
        with self._pair_locks.lock_for(pair_key(event_a, event_b)):
            score = compute()
            if score is not None:
                self.upsert(event_a, event_b, score)
            return score

    def _partners_of(self, event_id: int) -> Set[int]:
        return self._partners.read(event_id, set, set())

    def top_similar(self, event_id: int, k: int, excluding: Iterable[int] = ()) -> List[Tuple[int, float]]:
        excluded = set(excluding)
        scored = []
        for other in self._partners_of(event_id):
            if other in excluded:
                continue
            score = self.get(event_id, other)
            if score is not None:
                scored.append((other, score))
        return rank_scores(scored, k)

    def scores_for(self, event_id: int, others: Iterable[int]) -> Dict[int, float]:
        out: Dict[int, float] = {}
        for other in others:
            if other == event_id:
                continue
            score = self.get(event_id, other)
            if score is not None:
                out[other] = score
        return out

    def __len__(self) -> int:
        return len(self._scores)
