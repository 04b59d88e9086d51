"""
Backing services package.

In-process library that shields the application from overload and cuts
latency:
- Caching: Redis when reachable, bounded local cache otherwise, fail-open
- Concurrency: per-workload admission gates (db read/write, external API, CPU)
- Batching: sequential chunked processing of large collections

Structure:
- app.caching: Cache interface, local and remote backends, CacheService facade.
- app.concurrency: ConcurrencyGate, GateRegistry and process_batch.
- app.context: BackingServices, the application context that owns them.
"""

from .context import BackingServices

__all__ = ["BackingServices"]
