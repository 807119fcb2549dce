"""
Payment data models.

Represents payment attempts, the test/live mode decision and the
initiation flow state machine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentMode(str, Enum):
    """Which processor environment a payment runs against."""
    TEST = "test"
    LIVE = "live"


# Payment log event names
LOG_TEST_COMPLETE = "test_complete"
LOG_TEST_FALLBACK_COMPLETE = "test_fallback_complete"
LOG_CHARGE_INIT = "charge_init"
LOG_PROVIDER_UNREACHABLE = "provider_unreachable"
LOG_WEBHOOK = "webhook"


def select_mode(verified: bool, live_configured: bool) -> PaymentMode:
    """
    Decide whether a payment runs against test or live credentials.

    Args:
        verified: Whether the merchant's verification was approved
        live_configured: Whether live processor credentials exist

    Returns:
        LIVE only when both hold, TEST otherwise
    """
    if verified and live_configured:
        return PaymentMode.LIVE
    return PaymentMode.TEST


def build_tx_ref(payment_id: Any, timestamp_ms: int) -> str:
    """Transaction reference sent to the processor."""
    return f"PSSD_{payment_id}_{timestamp_ms}"


@dataclass
class Payment:
    """
    One attempted charge.

    Mode is fixed at creation. Status leaves PENDING at most once.
    """

    id: int
    merchant_id: str
    amount: float
    currency: str
    mode: PaymentMode
    status: PaymentStatus = PaymentStatus.PENDING
    link_code: Optional[str] = None
    customer_email: Optional[str] = None
    flutterwave_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.mode, str):
            self.mode = PaymentMode(self.mode)
        if isinstance(self.status, str):
            self.status = PaymentStatus(self.status)
        self.amount = float(self.amount)
        self.merchant_id = str(self.merchant_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        """Create Payment from a database row."""
        return cls(
            id=data['id'],
            merchant_id=data['merchant_id'],
            amount=data['amount'],
            currency=data['currency'],
            mode=data['mode'],
            status=data.get('status') or PaymentStatus.PENDING,
            link_code=data.get('link_code'),
            customer_email=data.get('customer_email'),
            flutterwave_reference=data.get('flutterwave_reference'),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at')
        )


# -----------------------------------------------------------------------------
# Initiation flow state machine
# -----------------------------------------------------------------------------

class InvalidTransition(Exception):
    pass


class FlowState(str, Enum):
    CREATED = "created"
    PROVIDER_CALLED = "provider_called"
    SIMULATED = "simulated"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def payment_status(self) -> PaymentStatus:
        """Status persisted on the payment row for this state."""
        if self is FlowState.COMPLETED:
            return PaymentStatus.COMPLETED
        if self is FlowState.FAILED:
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING


# (state, transition) -> {mode: target}
_TRANSITIONS = {
    (FlowState.CREATED, "skip_provider"): {
        PaymentMode.TEST: FlowState.SIMULATED,
    },
    (FlowState.CREATED, "call_provider"): {
        PaymentMode.TEST: FlowState.PROVIDER_CALLED,
        PaymentMode.LIVE: FlowState.PROVIDER_CALLED,
    },
    (FlowState.CREATED, "provider_unreachable"): {
        PaymentMode.TEST: FlowState.SIMULATED,
        PaymentMode.LIVE: FlowState.FAILED,
    },
    (FlowState.PROVIDER_CALLED, "provider_rejected"): {
        PaymentMode.TEST: FlowState.SIMULATED,
        PaymentMode.LIVE: FlowState.FAILED,
    },
    (FlowState.PROVIDER_CALLED, "confirm"): {
        PaymentMode.TEST: FlowState.COMPLETED,
        PaymentMode.LIVE: FlowState.COMPLETED,
    },
    (FlowState.PROVIDER_CALLED, "decline"): {
        PaymentMode.TEST: FlowState.FAILED,
        PaymentMode.LIVE: FlowState.FAILED,
    },
    (FlowState.SIMULATED, "settle"): {
        PaymentMode.TEST: FlowState.COMPLETED,
    },
}


@dataclass
class PaymentFlow:
    """
    State machine for a single payment initiation.

    Sandbox fallbacks are explicit transitions: provider_unreachable and
    provider_rejected lead to SIMULATED in test mode and to FAILED in live
    mode. SIMULATED can only be settled to COMPLETED.
    """

    mode: PaymentMode
    state: FlowState = FlowState.CREATED
    history: List[str] = field(default_factory=list)

    def can_fire(self, transition: str) -> bool:
        targets = _TRANSITIONS.get((self.state, transition), {})
        return self.mode in targets

    def fire(self, transition: str) -> FlowState:
        """
        Apply a named transition.

        Raises:
            InvalidTransition: If the transition is not allowed from the
                current state in this mode
        """
        targets = _TRANSITIONS.get((self.state, transition), {})
        target = targets.get(self.mode)
        if target is None:
            raise InvalidTransition(
                f"Illegal payment transition {transition!r} from "
                f"{self.state.value} in {self.mode.value} mode"
            )
        self.history.append(transition)
        self.state = target
        return target

    @property
    def is_simulated(self) -> bool:
        return "settle" in self.history

    @property
    def is_terminal(self) -> bool:
        return self.state in (FlowState.COMPLETED, FlowState.FAILED)
