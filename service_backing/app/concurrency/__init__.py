"""
Concurrency package.

Admission gates that bound in-flight work per workload class, and a
sequential batch runner for large collections.
"""

from .batch import process_batch
from .gate import DEFAULT_CAPACITIES, ConcurrencyGate, GateName, GateRegistry

__all__ = [
    "ConcurrencyGate",
    "GateName",
    "GateRegistry",
    "DEFAULT_CAPACITIES",
    "process_batch",
]
