from pydantic import BaseModel, Field
from typing import Optional, Dict, Set
from datetime import datetime, timezone
from enum import Enum
from azure.data.tables import TableEntity
import uuid


class ReconciliationState(str, Enum):
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    ENTITLEMENT_PROVISIONED = "ENTITLEMENT_PROVISIONED"
    CAPTURED = "CAPTURED"
    ROLLED_BACK = "ROLLED_BACK"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: Dict[ReconciliationState, Set[ReconciliationState]] = {
    ReconciliationState.PENDING_CONFIRMATION: {
        ReconciliationState.ENTITLEMENT_PROVISIONED,
        ReconciliationState.ABORTED,
    },
    ReconciliationState.ENTITLEMENT_PROVISIONED: {
        ReconciliationState.CAPTURED,
        ReconciliationState.ROLLED_BACK,
    },
    ReconciliationState.CAPTURED: set(),
    ReconciliationState.ROLLED_BACK: set(),
    ReconciliationState.ABORTED: set(),
}


def validate_transition(current: ReconciliationState, new: ReconciliationState) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current.value} -> {new.value}")


class Outcome(str, Enum):
    CAPTURED = "captured"
    DUPLICATE = "duplicate"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"
    DONATION_RECORDED = "donation_recorded"
    RECORDED = "recorded"
    IGNORED = "ignored"


class ReconciliationOutcome(BaseModel):
    outcome: Outcome
    event_type: str
    authorization_id: Optional[str] = None
    item_id: Optional[str] = None
    state: Optional[ReconciliationState] = None
    detail: Optional[str] = None


class ReconciliationRecordTableEntity(BaseModel):
    PartitionKey: str  # itemId
    RowKey: str  # authorizationId
    state: str
    itemType: Optional[str] = None
    buyerId: Optional[str] = None
    trigger: Optional[str] = None
    detail: Optional[str] = None
    updatedAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def reconciliation_state(self) -> ReconciliationState:
        return ReconciliationState(self.state)

    @classmethod
    def from_entity(cls, entity: TableEntity):
        return cls.model_validate(dict(entity))


class OperatorAlertReason(str, Enum):
    CAPTURE_FAILED = "capture_failed"
    RECONCILIATION_FAILED = "reconciliation_failed"
    ITEM_NOT_FOUND = "item_not_found"
    ITEM_UNAVAILABLE = "item_unavailable"
    INVALID_METADATA = "invalid_metadata"
    NOT_CAPTURABLE = "authorization_not_capturable"
    DISPUTE = "dispute_created"


class OperatorAlertTableEntity(BaseModel):
    PartitionKey: str  # authorizationId
    RowKey: str = Field(default_factory=lambda: str(uuid.uuid4()))
    reason: str
    itemId: Optional[str] = None
    itemType: Optional[str] = None
    state: Optional[str] = None
    detail: Optional[str] = None
    createdAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_entity(cls, entity: TableEntity):
        return cls.model_validate(dict(entity))


class DonationTableEntity(BaseModel):
    PartitionKey: str  # artistId
    RowKey: str  # checkout session id
    donationType: str = "one-time"
    amount: int = 0
    currency: str = "usd"
    paymentIntentId: Optional[str] = None
    completedAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class FailedPaymentTableEntity(BaseModel):
    PartitionKey: str = "failedpayment"
    RowKey: str  # authorizationId
    itemId: Optional[str] = None
    itemType: Optional[str] = None
    buyerId: Optional[str] = None
    artistId: Optional[str] = None
    amount: int = 0
    currency: str = "usd"
    error: str = "Payment failed"
    errorCode: Optional[str] = None
    createdAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class DisputeTableEntity(BaseModel):
    PartitionKey: str = "dispute"
    RowKey: str  # dispute id
    chargeId: Optional[str] = None
    paymentIntentId: Optional[str] = None
    amount: int = 0
    currency: str = "usd"
    reason: Optional[str] = None
    status: Optional[str] = None
    createdAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class TransferTableEntity(BaseModel):
    PartitionKey: str = "transfer"
    RowKey: str  # transfer id
    destination: Optional[str] = None
    amount: int = 0
    currency: str = "usd"
    status: str = "pending"
    createdAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
