"""Adapters — process and filesystem bindings used by the engine.

Public re-exports for convenient access.
"""

from formula_runner.adapters.base import Adapter, ExecutionContext
from formula_runner.adapters.mock import MockAdapter
from formula_runner.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "default_registry",
]
