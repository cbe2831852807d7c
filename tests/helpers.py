"""Test doubles shared across test modules"""
from typing import Any, Dict, List

from mvp_planner_server.providers import ProviderAdapter


class ScriptedAdapter(ProviderAdapter):
    """
    Provider adapter that replays scripted outcomes per secret.

    An outcome is either a value to return or an exception instance to raise.
    A list of outcomes is consumed in order; its last entry repeats.
    """

    def __init__(self, outcomes: Dict[str, Any], name: str = "content-gen"):
        super().__init__(timeout=1.0)
        self.name = name
        self.outcomes = {
            secret: list(o) if isinstance(o, list) else [o]
            for secret, o in outcomes.items()
        }
        self.calls: List[str] = []
        self.requests: List[Any] = []

    async def call(self, secret: str, request: Any) -> Any:
        self.calls.append(secret)
        self.requests.append(request)
        queue = self.outcomes[secret]
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def _call(self, client, secret, request):
        raise NotImplementedError
