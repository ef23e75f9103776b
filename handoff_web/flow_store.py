"""
In-memory store for web-initiated flows (state -> code_verifier, redirect target, delivery target).
Used between /auth/start and /auth/callback. Single use; TTL to avoid unbounded growth.
"""
import threading
import time
from dataclasses import dataclass

from handoff_web.config import FLOW_TTL
from handoff_web.delivery import DeliveryTarget
from handoff_web.pkce import PKCEState


@dataclass(frozen=True)
class PendingFlow:
    pkce: PKCEState
    code_verifier: str
    delivery: DeliveryTarget
    created_at: float

    def expired(self, ttl: int = FLOW_TTL) -> bool:
        return (time.monotonic() - self.created_at) > ttl


class FlowStore:
    def __init__(self, ttl: int = FLOW_TTL):
        self.ttl = ttl
        self._pending: dict[str, PendingFlow] = {}
        self._lock = threading.Lock()

    def store(self, pkce: PKCEState, code_verifier: str, delivery: DeliveryTarget) -> PendingFlow:
        flow = PendingFlow(pkce=pkce, code_verifier=code_verifier, delivery=delivery, created_at=time.monotonic())
        with self._lock:
            self._clean_expired()
            self._pending[pkce.state] = flow
        return flow

    def take(self, state: str) -> PendingFlow | None:
        """Remove and return the flow for state; None if unknown, already taken, or expired."""
        with self._lock:
            flow = self._pending.pop(state, None)
        if flow is None or flow.expired(self.ttl):
            return None
        return flow

    def _clean_expired(self) -> None:
        expired = [s for s, f in self._pending.items() if f.expired(self.ttl)]
        for s in expired:
            del self._pending[s]

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()


flows = FlowStore()
