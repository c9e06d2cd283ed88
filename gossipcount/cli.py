"""Command-line demonstration of gossip-based aggregation with counting sketches."""

from __future__ import annotations

import asyncio
import os
import re
import sys
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from uuid import UUID, uuid4

from gossipcount.actors import ModuleRef, System
from gossipcount.counter import RandomnessSource, StdRandomnessSource
from gossipcount.node import (
    Node,
    PeerSamplingService,
    QueryInstallMsg,
    QueryResultPollMsg,
    SyncTriggerMsg,
)

DEFAULT_NUM_NODES = 100
DEFAULT_NUM_INSTANCES = 16
DEFAULT_DIVISOR = 2
MAX_NUM_NODES = 1000
MAX_NUM_INSTANCES = 100
ROUNDS = 100
BITS_PER_INSTANCE = 32
ROUND_PAUSE = 0.010

_USIZE_MAX = (1 << 64) - 1
_U128_MAX = (1 << 128) - 1
_UNSIGNED = re.compile(r"\+?[0-9]+")


class UsageError(Exception):
    """Raised when the command-line arguments are invalid."""


class RandomPeerSampler(PeerSamplingService):
    """Picks peers uniformly at random from a shared list of node references."""

    def __init__(self, nodes: list[ModuleRef[Node]], rs: RandomnessSource) -> None:
        self._nodes = nodes
        self._rs = rs

    async def get_random_peer(self) -> ModuleRef[Node]:
        rand = self._rs.next_u32()
        if not self._nodes:
            raise LookupError("there are no peers to sample from")
        return self._nodes[rand % len(self._nodes)]


@dataclass(frozen=True)
class Progress:
    """The outcome of one gossip round."""

    elapsed_ms: int
    actual: int
    estimated: int | None

    def __str__(self) -> str:
        estimate = "?" if self.estimated is None else str(self.estimated)
        return (
            f"{self.elapsed_ms} | # nodes satisfying query: "
            f"actual={self.actual} vs estimated={estimate}"
        )


def _parse_unsigned(text: str, limit: int, what: str) -> int:
    if not _UNSIGNED.fullmatch(text) or int(text) > limit:
        raise UsageError(f"Unable to parse the {what}!")
    return int(text)


def parse_command_line_args(argv: Sequence[str]) -> tuple[int, int, int]:
    """Return ``(num_nodes, num_instances, divisor)`` from the arguments after the program name.

    With no arguments the defaults are returned.
    """
    if not argv:
        return DEFAULT_NUM_NODES, DEFAULT_NUM_INSTANCES, DEFAULT_DIVISOR
    if len(argv) != 3:
        raise UsageError("Three command-line arguments are accepted!")
    nodes_text, instances_text, divisor_text = argv

    num_nodes = _parse_unsigned(nodes_text, _USIZE_MAX, "number of processes")
    if not 1 <= num_nodes <= MAX_NUM_NODES:
        raise UsageError(f"The number of processes should be in [1..{MAX_NUM_NODES}]!")

    num_instances = _parse_unsigned(instances_text, _USIZE_MAX, "number of instances")
    if not 1 <= num_instances <= MAX_NUM_INSTANCES:
        raise UsageError(f"The number of instances should be in [1..{MAX_NUM_INSTANCES}]!")

    divisor = _parse_unsigned(divisor_text, _U128_MAX, "divisor")
    if not 1 <= divisor <= num_nodes:
        raise UsageError(f"The divisor should be in [1..{num_nodes}]!")

    return num_nodes, num_instances, divisor


def usage(prog_name: str) -> str:
    """Return the usage text for the given program name."""
    return "\n".join(
        [
            "The program:",
            "    demonstrates eventually-consistent gossip-based aggregation"
            " with probabilistic counting sketches.",
            "Usage:",
            f"    {prog_name} <num_processes> <num_instances> <divisor>",
            "Where:",
            "    <num_processes> is the number of processes performing the query computation.",
            "    <num_instances> is the number of probabilistic counting sketch instances"
            " utilized in the computation.",
            "    <divisor> is X such that roughly 1/X of the processes satisfy"
            " the query predicate.",
        ]
    )


def _seed_of(uid: UUID) -> int:
    value = uid.int
    return (value >> 64) ^ (value & _USIZE_MAX)


async def run(
    num_nodes: int, num_instances: int, divisor: int, rounds: int = ROUNDS
) -> AsyncIterator[Progress]:
    """Simulate gossiping nodes and yield the initiator's estimate after each round."""
    if num_nodes < 1:
        raise ValueError("at least one node is needed")
    if divisor < 1:
        raise ValueError("the divisor must be positive")

    system = System()
    try:
        node_refs: list[ModuleRef[Node]] = []
        node_uids: list[UUID] = []
        actual = 0
        for _ in range(num_nodes):
            uid = uuid4()
            node_uids.append(uid)
            if uid.int % divisor == 0:
                actual += 1
            seed = _seed_of(uid)
            sampler = RandomPeerSampler(node_refs, StdRandomnessSource(seed))
            node = Node(uid, StdRandomnessSource(seed ^ 1), sampler)
            node_refs.append(await system.register_module(node))

        initiator = node_uids[0]
        await node_refs[0].send(
            QueryInstallMsg(
                bits_per_instance=BITS_PER_INSTANCE,
                num_instances=num_instances,
                predicate=lambda u: u.int % divisor == 0,
            )
        )

        replies: asyncio.Queue[int | None] = asyncio.Queue()

        async def reply(value: int | None) -> None:
            replies.put_nowait(value)

        start = time.monotonic()
        for _ in range(rounds):
            await node_refs[-1].send(QueryResultPollMsg(initiator=initiator, callback=reply))
            for node_ref in node_refs:
                await node_ref.send(SyncTriggerMsg())
            await asyncio.sleep(ROUND_PAUSE)
            estimated = await replies.get()
            elapsed_ms = int((time.monotonic() - start) * 1000)
            yield Progress(elapsed_ms=elapsed_ms, actual=actual, estimated=estimated)
    finally:
        await system.shutdown()


async def _report(num_nodes: int, num_instances: int, divisor: int) -> None:
    async for progress in run(num_nodes, num_instances, divisor, ROUNDS):
        print(progress)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the demonstration; return the process exit status."""
    prog_name = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "gossipcount"
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        num_nodes, num_instances, divisor = parse_command_line_args(args)
    except UsageError as exc:
        print(f"ERROR: {exc}")
        print(usage(prog_name))
        return 1
    if not args:
        print("INFO: Assuming default parameter values.")
    asyncio.run(_report(num_nodes, num_instances, divisor))
    return 0


if __name__ == "__main__":
    sys.exit(main())