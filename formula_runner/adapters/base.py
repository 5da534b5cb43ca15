"""
Adapter base — the contract between the engine and the outside world.

The engine never spawns a process or touches the keg directly: it
hands an Action to an adapter and gets a Receipt back. Swapping the
adapter (e.g. for MockAdapter) is how the orchestrator is tested
without running ``configure`` or ``make``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from formula_runner.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute one action."""

    action: Action
    dry_run: bool = False

    @property
    def working_dir(self) -> str:
        return self.action.cwd


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform side effects and return receipts. They never
    raise: failures, including a non-zero exit status, are captured
    in the Receipt with status='failed'.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier ('process', 'filesystem', ...)."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying capability exists. Fast, never raises."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Check the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt. Must not raise."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
