"""Gossip-based aggregation with probabilistic counting sketches, run on a small asyncio actor system."""

__version__ = "0.1.1"
__all__ = ["actors", "cli", "counter", "node"]