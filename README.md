# gossipcount

This package does gossip-based aggregation with probabilistic counting
sketches. The sketches act as conflict-free replicated counters. A set of
nodes gossips query state between its members. Over time the nodes converge on
an estimate of how many of them satisfy a predicate.

## Installation

    pip install .

To install the test dependencies as well:

    pip install ".[test]"

## Command line

    gossipcount [<num_processes> <num_instances> <divisor>]

The command takes either no arguments or exactly three:

- `num_processes` is the number of nodes. It must be in `[1..1000]`.
- `num_instances` is the number of sketch instances per counter. It must be in
  `[1..100]`.
- `divisor` is a value X such that roughly 1/X of the nodes satisfy the query.
  It must be in `[1..num_processes]`.

With no arguments the command prints `INFO: Assuming default parameter
values.` and uses 100 nodes, 16 instances and a divisor of 2.

With invalid arguments the command prints an `ERROR:` line followed by the
usage text, and exits with status 1.

### What the command does

1. It gives every node a random UUID. A node satisfies the query when its UUID,
   read as an integer, is divisible by the divisor.
2. It installs a query on the first node. The query uses 32 bits per instance.
3. It then runs 100 rounds. In each round it:
   - polls the last node for its estimate of the first node's query,
   - triggers one gossip exchange on every node,
   - waits 10 ms.
4. After each round it prints the elapsed time in milliseconds, the real count
   and the current estimate. The estimate is `?` while the polled node does not
   know the query yet:

       42 | # nodes satisfying query: actual=51 vs estimated=48

## Library

### Counters: `gossipcount.counter`

`ProbabilisticCounter(bits_per_instance, num_instances)` creates a counter that
counts no elements.

- `bits_per_instance` must be 8, 16, 24 or 32.
- `num_instances` must be positive.
- Any other value raises `ValueError`.

```python
from gossipcount.counter import ProbabilisticCounter, StdRandomnessSource

rs = StdRandomnessSource(42)
a = ProbabilisticCounter(32, 8)
b = a.empty_copy()
a.count_one_more(rs)
b.count_one_more(rs)
a.merge_with(b)
print(a.evaluate())
```

The counter has these members:

- `bits_per_instance` and `num_instances` are read-only properties.
- `empty_copy()` returns a zero counter with the same configuration.
- `copy()` returns an independent copy.
- `set_to_zero()` makes the counter count no elements.
- `set_to_infinity()` makes the counter count infinitely many elements.
- `count_one_more(rs)` counts one more element. It draws one value per instance
  from a `RandomnessSource`. If the counter is already at infinity it raises
  `CounterSaturatedError` and leaves the counter unchanged.
- `merge_with(other)` ORs the other counter into this one. If the
  configurations differ it raises `IncompatibleCountersError` and leaves the
  counter unchanged.
- `evaluate()` returns the estimate:
  - 0 for an empty counter,
  - `2**64 - 1` for a saturated counter,
  - otherwise `1.29281 * 2**avg`, rounded, where `avg` is the mean position of
    the first zero bit across the instances.
- `get_bit(instance_idx, bit_idx)` reads a single bit and
  `set_bit(instance_idx, bit_idx, value)` writes one. Bit 0 is the bit most
  likely to be set. An index out of range raises `IndexError`.

Both `CounterSaturatedError` and `IncompatibleCountersError` derive from
`CounterError`.

The module also provides these helpers:

- `RandomnessSource` is an abstract class with a `next_u32()` method.
- `StdRandomnessSource(seed)` implements it on top of a seeded `random.Random`.
- `uniform_u32_to_geometric(rand_no, num_bits)` maps a uniform 32-bit value to
  the number of its trailing zeros, capped at `num_bits - 1`.
- `geometric_to_sample_u32(bit_idx)` returns `1 << bit_idx`, which is a sample
  that selects that bit.

### Actors: `gossipcount.actors`

This module is a small asyncio actor system.

- `System()` runs registered modules. Each module handles its messages one at a
  time, in the order they were sent.
- `await system.register_module(module)` starts a module and returns a
  `ModuleRef`.
- `await ref.send(msg)` queues a message for that module.
- `await system.shutdown()` stops every module. After shutdown, `send` raises
  `RuntimeError`.
- `System` can also be used as an `async with` context manager. It shuts down
  on exit.

If a module raises an exception while handling a message, the exception is
logged and the module goes on with its next message.

### Nodes: `gossipcount.node`

`Node(uuid, rs, pss)` is a module that handles these messages:

- `QueryInstallMsg(bits_per_instance, num_instances, predicate)` installs a
  query. The query is keyed by the node's own UUID and timestamped with the
  install time. A query with an invalid configuration is logged and ignored.
- `QueryResultPollMsg(initiator, callback)` awaits `callback` with the node's
  current estimate for the query of `initiator`. The estimate is `None` if the
  node does not know that query.
- `SyncTriggerMsg()` asks the `PeerSamplingService` for a random peer, then
  sends that peer a `SyncGossipMsg` holding copies of all the node's queries.
- `SyncGossipMsg(queries)` merges in queries received from a peer:
  - For a query the node does not know yet, it builds a fresh counter that
    includes itself if it satisfies the predicate, merges in the received
    counter and stores the result.
  - A newer query replaces an older one in the same way.
  - A query with the same timestamp is merged into the stored counter.
  - Older queries are ignored.

Any other message raises `TypeError`.

`QueryData` holds a query's configuration, predicate and timestamp.

### Simulation: `gossipcount.cli`

- `run(num_nodes, num_instances, divisor, rounds=100)` is an async generator. It
  runs the simulation described under "What the command does" and yields one
  `Progress` after each round. A `Progress` has the fields `elapsed_ms`,
  `actual` and `estimated`, and is printed the way the command prints it.
- `RandomPeerSampler(nodes, rs)` picks peers from a list of node references.
- `parse_command_line_args(argv)` validates the command-line arguments and
  raises `UsageError` when they are invalid.
- `usage(prog_name)` returns the usage text.
- `main(argv=None)` is the command's entry point.

```python
import asyncio
from gossipcount.cli import run

async def demo():
    async for progress in run(50, 16, 2, rounds=20):
        print(progress)

asyncio.run(demo())
```

## Limitations

- All nodes run as asyncio tasks inside a single process. The package has no
  network transport between machines.
- The package does not store query state. Everything is lost when the
  `System` shuts down.