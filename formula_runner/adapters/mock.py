"""
Mock adapter — a fake invoker for tests and mock mode.

Records every action it receives and answers with success unless told
otherwise. Responses are keyed by action id, by the full command line,
or by the executable name, checked in that order.
"""

from __future__ import annotations

from collections.abc import Callable

from formula_runner.adapters.base import Adapter, ExecutionContext
from formula_runner.core.models.action import Action, Receipt

Handler = Callable[[Action], Receipt]


class MockAdapter(Adapter):
    """Universal mock adapter.

    Example::

        mock = MockAdapter()
        mock.set_failure("make install", exit_code=2)
        mock.set_output("kpsestat", "644\\n")
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt | Handler] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[str]:
        """Command lines received, in order."""
        return [ctx.action.display for ctx in self._call_log]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, key: str, response: Receipt | Handler) -> None:
        """Answer actions matching ``key`` with a fixed receipt or a handler."""
        self._responses[key] = response

    def set_failure(self, key: str, error: str = "Mock failure", exit_code: int = 1) -> None:
        """Make actions matching ``key`` fail with ``exit_code``."""
        self._responses[key] = Receipt.failure(
            adapter=self._name,
            action_id=key,
            error=error,
            exit_code=exit_code,
        )

    def set_output(self, key: str, output: str, exit_code: int = 0) -> None:
        """Make actions matching ``key`` print ``output`` and exit ``exit_code``."""
        if exit_code == 0:
            receipt = Receipt.success(adapter=self._name, action_id=key, output=output)
        else:
            receipt = Receipt.failure(
                adapter=self._name,
                action_id=key,
                error=f"exit {exit_code}",
                output=output,
                exit_code=exit_code,
            )
        self._responses[key] = receipt

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action = context.action

        for key in self._keys(action):
            if key in self._responses:
                response = self._responses[key]
                if callable(response):
                    return response(action)
                return response.model_copy(update={"action_id": action.id})

        return Receipt.success(
            adapter=self._name,
            action_id=action.id,
            output=self._default_output,
            metadata={"mock": True},
        )

    @staticmethod
    def _keys(action: Action) -> list[str]:
        keys = [action.id, action.display]
        if action.argv:
            keys.append(action.argv[0])
            keys.append(action.argv[0].rsplit("/", 1)[-1])
        return keys
