"""Nodes that aggregate query counts by gossiping probabilistic counters."""

from __future__ import annotations

import abc
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from gossipcount.actors import ModuleRef
from gossipcount.counter import (
    IncompatibleCountersError,
    ProbabilisticCounter,
    RandomnessSource,
    U32_BITS,
)

logger = logging.getLogger(__name__)

Predicate = Callable[[UUID], bool]
QueryResultPollCallback = Callable[[Any], Awaitable[None]]


class PeerSamplingService(abc.ABC):
    """Supplies random nodes of the system to gossip with."""

    @abc.abstractmethod
    async def get_random_peer(self) -> ModuleRef[Node]:
        """Return a reference to a random node."""


@dataclass(frozen=True)
class QueryInstallMsg:
    """Installs a query on a node; the query is identified by that node's UUID."""

    bits_per_instance: int
    num_instances: int
    predicate: Predicate


@dataclass(frozen=True)
class QueryResultPollMsg:
    """Asks a node for its current estimate of the query started by ``initiator``."""

    initiator: UUID
    callback: QueryResultPollCallback


@dataclass(frozen=True)
class SyncTriggerMsg:
    """Makes a node start one gossip exchange."""


@dataclass(frozen=True)
class QueryData:
    """Configuration and install time of a query."""

    bits_per_instance: int
    num_instances: int
    predicate: Predicate
    timestamp: int


@dataclass
class SyncGossipMsg:
    """The queries a node knows about, sent to a peer."""

    queries: dict[UUID, tuple[ProbabilisticCounter, QueryData]] = field(default_factory=dict)


def _valid_config(bits_per_instance: int, num_instances: int) -> bool:
    return 0 < bits_per_instance <= U32_BITS and bits_per_instance % 8 == 0 and num_instances > 0


class Node:
    """A process taking part in gossip-based aggregation."""

    def __init__(self, uuid: UUID, rs: RandomnessSource, pss: PeerSamplingService) -> None:
        self.uuid = uuid
        self._rs = rs
        self._pss = pss
        self._queries: dict[UUID, tuple[ProbabilisticCounter, QueryData]] = {}

    async def handle(self, msg: Any) -> None:
        """Handle any of the node's message types."""
        match msg:
            case QueryInstallMsg():
                self._install(msg)
            case QueryResultPollMsg():
                await self._poll(msg)
            case SyncTriggerMsg():
                await self._trigger()
            case SyncGossipMsg():
                self._absorb(msg)
            case _:
                raise TypeError(f"unsupported message: {msg!r}")

    def _fresh_counter(self, data: QueryData) -> ProbabilisticCounter:
        counter = ProbabilisticCounter(data.bits_per_instance, data.num_instances)
        if data.predicate(self.uuid):
            counter.count_one_more(self._rs)
        return counter

    def _install(self, msg: QueryInstallMsg) -> None:
        if not _valid_config(msg.bits_per_instance, msg.num_instances):
            logger.warning("ignoring query with invalid configuration: %r", msg)
            return
        data = QueryData(
            bits_per_instance=msg.bits_per_instance,
            num_instances=msg.num_instances,
            predicate=msg.predicate,
            timestamp=time.time_ns(),
        )
        self._queries[self.uuid] = (self._fresh_counter(data), data)

    async def _poll(self, msg: QueryResultPollMsg) -> None:
        entry = self._queries.get(msg.initiator)
        await msg.callback(entry[0].evaluate() if entry is not None else None)

    async def _trigger(self) -> None:
        peer = await self._pss.get_random_peer()
        snapshot = {qid: (counter.copy(), data) for qid, (counter, data) in self._queries.items()}
        await peer.send(SyncGossipMsg(snapshot))

    def _absorb(self, msg: SyncGossipMsg) -> None:
        for query_id, (other_counter, other_data) in msg.queries.items():
            mine = self._queries.get(query_id)
            if mine is None or other_data.timestamp > mine[1].timestamp:
                counter = self._fresh_counter(other_data)
                with contextlib.suppress(IncompatibleCountersError):
                    counter.merge_with(other_counter)
                self._queries[query_id] = (counter, other_data)
            elif other_data.timestamp == mine[1].timestamp:
                with contextlib.suppress(IncompatibleCountersError):
                    mine[0].merge_with(other_counter)