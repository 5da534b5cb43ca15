"""
Adapter registry — central dispatch for all adapter operations.

The engine never talks to adapters directly. It hands every Action to
the registry, which resolves the adapter, validates, honors dry-run
and mock mode, times the call, and always returns a Receipt.
"""

from __future__ import annotations

import logging
import time

from formula_runner.adapters.base import Adapter, ExecutionContext
from formula_runner.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry and dispatcher for adapters.

    In mock mode every action is routed to the mock adapter (or
    answered with a canned success when none is set), so a whole
    recipe can be walked through without side effects.
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter: Adapter | None = None

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        self._mock_mode = enabled
        self._mock_adapter = mock_adapter

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def execute_action(self, action: Action, dry_run: bool = False) -> Receipt:
        """Execute one action through its adapter. Never raises.

        Resolution order: mock adapter (mock mode) → registered adapter
        → failure receipt. The action is validated before it runs; in
        dry-run mode a valid action yields a 'skipped' receipt.
        """
        start = time.monotonic()
        context = ExecutionContext(action=action, dry_run=dry_run)

        if self._mock_mode and self._mock_adapter is None:
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output="",
                metadata={"mock": True, "dry_run": dry_run},
            )

        adapter = self._mock_adapter if self._mock_mode else self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )
        if not adapter.is_available():
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Adapter '{adapter.name}' is not available on this system",
            )

        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            is_valid, error_msg = False, f"validation raised: {e}"
        if not is_valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )

        if dry_run:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] {action.display}",
                metadata={"dry_run": True},
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        return receipt


def default_registry(mock_mode: bool = False) -> AdapterRegistry:
    """Registry with the real process and filesystem adapters."""
    from formula_runner.adapters.shell.command import ProcessAdapter
    from formula_runner.adapters.shell.filesystem import FilesystemAdapter

    registry = AdapterRegistry(mock_mode=mock_mode)
    registry.register(ProcessAdapter())
    registry.register(FilesystemAdapter())
    return registry
