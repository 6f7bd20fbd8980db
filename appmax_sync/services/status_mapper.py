"""
Canonical status mapping for Appmax order events.

Translates an Appmax webhook event name into the canonical transition
``(sync_state, financial_state)`` independent of either platform's vocabulary,
and into Shopify's native financial/fulfillment statuses.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Canonical target state of a synchronized order."""

    PENDING = "pending"
    PAID = "paid"
    UNDER_REVIEW = "under_review"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class FinancialState(str, Enum):
    """Canonical financial state of a synchronized order."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class EventAction(str, Enum):
    """What the ingestion boundary does with a classified event."""

    ENQUEUE = "enqueue"
    IGNORE = "ignore"
    UNHANDLED = "unhandled"


@dataclass(frozen=True)
class Transition:
    sync_state: SyncState
    financial_state: FinancialState


@dataclass(frozen=True)
class EventClassification:
    event: str
    action: EventAction
    transition: Optional[Transition] = None

    @property
    def should_enqueue(self) -> bool:
        return self.action is EventAction.ENQUEUE


PAID = Transition(SyncState.PAID, FinancialState.PAID)
CANCELLED = Transition(SyncState.CANCELLED, FinancialState.CANCELLED)
REFUNDED = Transition(SyncState.REFUNDED, FinancialState.REFUNDED)
UNDER_REVIEW = Transition(SyncState.UNDER_REVIEW, FinancialState.PENDING)
PENDING = Transition(SyncState.PENDING, FinancialState.PENDING)

EVENT_TRANSITIONS: Dict[str, Transition] = {
    # Payment confirmed
    "OrderApproved": PAID,
    "OrderPaid": PAID,
    "OrderPaidByPix": PAID,
    "PixPaid": PAID,
    "OrderIntegrated": PAID,
    "ChargebackWon": PAID,
    "OrderChargebackWon": PAID,
    # Payment failed or expired
    "PaymentNotAuthorized": CANCELLED,
    "OrderPaymentNotAuthorized": CANCELLED,
    "PixExpired": CANCELLED,
    "OrderPixExpired": CANCELLED,
    "OrderBilletOverdue": CANCELLED,
    "BilletOverdue": CANCELLED,
    # Money returned
    "OrderRefund": REFUNDED,
    "OrderRefunded": REFUNDED,
    "OrderChargedback": REFUNDED,
    # Chargeback under dispute
    "ChargebackInDispute": UNDER_REVIEW,
    "OrderChargebackInDispute": UNDER_REVIEW,
    # Awaiting payment
    "OrderAuthorized": PENDING,
    "PixGenerated": PENDING,
    "OrderPixGenerated": PENDING,
    "OrderBilletCreated": PENDING,
    "BilletCreated": PENDING,
}

# Customer lifecycle events are acknowledged and dropped before the queue
IGNORED_EVENTS: FrozenSet[str] = frozenset(
    {
        "CustomerCreated",
        "CustomerInterested",
        "CustomerContacted",
        "CustomerUpdated",
    }
)

# Canonical state -> Shopify REST financial_status
SHOPIFY_FINANCIAL_STATUS: Dict[str, str] = {
    FinancialState.PENDING.value: "pending",
    FinancialState.PAID.value: "paid",
    FinancialState.REFUNDED.value: "refunded",
    FinancialState.CANCELLED.value: "voided",
}

# Canonical state -> Shopify fulfillment_status (None leaves it unfulfilled)
SHOPIFY_FULFILLMENT_STATUS: Dict[str, Optional[str]] = {
    SyncState.CANCELLED.value: "cancelled",
}

# Higher rank is more terminal; equal ranks may replace each other
STATE_RANK: Dict[str, int] = {
    SyncState.PENDING.value: 0,
    SyncState.PAID.value: 1,
    SyncState.UNDER_REVIEW.value: 1,
    SyncState.CANCELLED.value: 2,
    SyncState.REFUNDED.value: 3,
}


def classify_event(event: str) -> EventClassification:
    """
    Classify an Appmax event name.

    Args:
        event: Event name as delivered by the webhook

    Returns:
        EventClassification: ENQUEUE with its transition, IGNORE for the
        customer lifecycle ignore-list, UNHANDLED for anything else
    """
    if event in IGNORED_EVENTS:
        return EventClassification(event=event, action=EventAction.IGNORE)

    transition = EVENT_TRANSITIONS.get(event)
    if transition is None:
        logger.info(f"Unhandled Appmax event: {event}")
        return EventClassification(event=event, action=EventAction.UNHANDLED)

    return EventClassification(event=event, action=EventAction.ENQUEUE, transition=transition)


def to_shopify_financial_status(financial_state: str) -> str:
    return SHOPIFY_FINANCIAL_STATUS.get(_value(financial_state), "pending")


def to_shopify_fulfillment_status(sync_state: str) -> Optional[str]:
    return SHOPIFY_FULFILLMENT_STATUS.get(_value(sync_state))


def from_shopify_order(order: Dict) -> Optional[str]:
    """
    Infer the canonical sync state of an existing Shopify order.

    Used when the order was found remotely and no local mapping records the
    last applied state.
    """
    if order.get("cancelled_at"):
        return SyncState.CANCELLED.value

    financial_status = (order.get("financial_status") or "").lower()
    if financial_status in ("refunded", "partially_refunded"):
        return SyncState.REFUNDED.value
    if financial_status == "voided":
        return SyncState.CANCELLED.value
    if financial_status in ("paid", "partially_paid"):
        return SyncState.PAID.value
    if financial_status in ("pending", "authorized"):
        return SyncState.PENDING.value
    return None


def creates_order(sync_state: str) -> bool:
    """Whether a transition to ``sync_state`` creates the Shopify order when it does not exist yet."""
    return _value(sync_state) not in (SyncState.CANCELLED.value, SyncState.REFUNDED.value)


def is_regression(current_state: Optional[str], target_state: str) -> bool:
    """
    Whether moving from ``current_state`` to ``target_state`` would go back to
    a less terminal state.

    Unknown current states never block a transition.
    """
    if current_state is None:
        return False
    current_rank = STATE_RANK.get(_value(current_state))
    target_rank = STATE_RANK.get(_value(target_state))
    if current_rank is None or target_rank is None:
        return False
    return target_rank < current_rank


def _value(state) -> str:
    return state.value if isinstance(state, Enum) else str(state)
