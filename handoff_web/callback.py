"""
Provider callback resolution as an explicit state machine:
AWAITING_CODE -> EXCHANGING -> DELIVERING | FAILED, or straight to ENTRY_REDIRECT when the
correlation context is gone. No browser needed to drive it; the route only renders the outcome.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from handoff_web.delivery import DeliveryTarget
from handoff_web.errors import ExchangeError, UnexpectedError
from handoff_web.exchange import ExchangeClient
from handoff_web.flow_store import FlowStore
from handoff_web.models import ExchangeResult

logger = logging.getLogger(__name__)


class Step(str, Enum):
    AWAITING_CODE = "awaiting_code"
    EXCHANGING = "exchanging"
    DELIVERING = "delivering"
    FAILED = "failed"
    ENTRY_REDIRECT = "entry_redirect"


class Event(str, Enum):
    GUARD_FAILED = "guard_failed"
    CODE_RECEIVED = "code_received"
    CODE_MISSING = "code_missing"
    EXCHANGE_SUCCEEDED = "exchange_succeeded"
    EXCHANGE_FAILED = "exchange_failed"


TRANSITIONS: dict[tuple[Step, Event], Step] = {
    (Step.AWAITING_CODE, Event.GUARD_FAILED): Step.ENTRY_REDIRECT,
    (Step.AWAITING_CODE, Event.CODE_RECEIVED): Step.EXCHANGING,
    (Step.AWAITING_CODE, Event.CODE_MISSING): Step.FAILED,
    (Step.EXCHANGING, Event.EXCHANGE_SUCCEEDED): Step.DELIVERING,
    (Step.EXCHANGING, Event.EXCHANGE_FAILED): Step.FAILED,
}

TERMINAL_STEPS = frozenset({Step.DELIVERING, Step.FAILED, Step.ENTRY_REDIRECT})


def advance(step: Step, event: Event) -> Step:
    try:
        return TRANSITIONS[(step, event)]
    except KeyError:
        raise RuntimeError(f"Illegal callback transition: {step.value} on {event.value}") from None


@dataclass
class CallbackMachine:
    step: Step = Step.AWAITING_CODE
    history: list[Step] = field(default_factory=lambda: [Step.AWAITING_CODE])

    def fire(self, event: Event) -> Step:
        self.step = advance(self.step, event)
        self.history.append(self.step)
        return self.step


@dataclass(frozen=True)
class CallbackParams:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "CallbackParams":
        return cls(
            code=params.get("code") or None,
            state=params.get("state") or None,
            error=params.get("error") or None,
            error_description=params.get("error_description") or None,
        )


@dataclass(frozen=True)
class Resolution:
    step: Step
    history: tuple[Step, ...]
    target: DeliveryTarget | None = None
    result: ExchangeResult | None = None
    state: str | None = None


class CallbackResolver:
    def __init__(self, exchange: ExchangeClient, flows: FlowStore):
        self.exchange = exchange
        self.flows = flows

    def resolve(self, params: CallbackParams) -> Resolution:
        machine = CallbackMachine()

        # Pending flow is consumed here: the same state never resolves twice
        flow = self.flows.take(params.state) if params.state else None
        if flow is None:
            logger.info("callback without a pending flow (state %s); back to entry", "unknown" if params.state else "missing")
            machine.fire(Event.GUARD_FAILED)
            return Resolution(step=machine.step, history=tuple(machine.history))

        if params.error or not params.code:
            logger.info("callback without code: provider error=%s", params.error or "none")
            machine.fire(Event.CODE_MISSING)
            return Resolution(
                step=machine.step,
                history=tuple(machine.history),
                target=flow.delivery,
                state=flow.pkce.state,
            )

        machine.fire(Event.CODE_RECEIVED)
        try:
            result = self.exchange.exchange_code(params.code, flow.code_verifier)
        except (ExchangeError, UnexpectedError) as e:
            logger.info("callback exchange failed: %s", type(e).__name__)
            machine.fire(Event.EXCHANGE_FAILED)
            return Resolution(
                step=machine.step,
                history=tuple(machine.history),
                target=flow.delivery,
                state=flow.pkce.state,
            )

        machine.fire(Event.EXCHANGE_SUCCEEDED)
        return Resolution(
            step=machine.step,
            history=tuple(machine.history),
            target=flow.delivery,
            result=result,
            state=flow.pkce.state,
        )
