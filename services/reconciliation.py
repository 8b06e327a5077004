from typing import Any, Callable, Dict, Optional
from managers.stripe_manager import StripeManager
from models.entitlement import EntitlementRef, ProvisionContext
from models.payment import (
    CheckoutSession,
    ItemType,
    PaymentAuthorization,
    PurchaseMetadata,
    ShippingAddress,
    WebhookEvent,
)
from models.reconciliation import (
    ReconciliationState,
    ReconciliationOutcome,
    ReconciliationRecordTableEntity,
    Outcome,
    OperatorAlertReason,
    OperatorAlertTableEntity,
    DonationTableEntity,
    FailedPaymentTableEntity,
    DisputeTableEntity,
    TransferTableEntity,
    validate_transition,
)
from repository import reconciliation as reconciliation_repo
from repository import user as user_repo
from services.notification import NotificationDispatcher
from services.provisioners import Provisioner, get_provisioner
from utils.errors import (
    AuthorizationNotCapturable,
    CaptureError,
    InvalidMetadata,
    ItemNotFound,
    ItemUnavailable,
    ReconciliationError,
)
import logging

logger = logging.getLogger(__name__)

UNKNOWN_ITEM = "unknown"


class Reconciliation:
    """State of one (itemId, authorizationId) reconciliation attempt"""

    def __init__(self, authorization_id: str, trigger: str):
        self.authorization_id = authorization_id
        self.trigger = trigger
        self.item_id = UNKNOWN_ITEM
        self.item_type: Optional[str] = None
        self.buyer_id: Optional[str] = None
        self.state = ReconciliationState.PENDING_CONFIRMATION

    def transition(self, new: ReconciliationState, detail: Optional[str] = None) -> None:
        validate_transition(self.state, new)
        logger.info(f"{self.item_id}/{self.authorization_id}: {self.state.value} -> {new.value}")
        self.state = new
        reconciliation_repo.save_record(ReconciliationRecordTableEntity(
            PartitionKey=self.item_id,
            RowKey=self.authorization_id,
            state=new.value,
            itemType=self.item_type,
            buyerId=self.buyer_id,
            trigger=self.trigger,
            detail=detail,
        ))

    def alert(self, reason: OperatorAlertReason, detail: str) -> None:
        logger.error(f"Operator alert [{reason.value}] for {self.authorization_id}: {detail}")
        reconciliation_repo.raise_alert(OperatorAlertTableEntity(
            PartitionKey=self.authorization_id,
            reason=reason.value,
            itemId=self.item_id,
            itemType=self.item_type,
            state=self.state.value,
            detail=detail,
        ))

    def outcome(self, outcome: Outcome, detail: Optional[str] = None) -> ReconciliationOutcome:
        return ReconciliationOutcome(
            outcome=outcome,
            event_type=self.trigger,
            authorization_id=self.authorization_id,
            item_id=self.item_id,
            state=self.state,
            detail=detail,
        )


def _shipping_from_payment_intent(payment_intent: Dict[str, Any]) -> Optional[ShippingAddress]:
    shipping = payment_intent.get("shipping") or {}
    address = shipping.get("address")
    if not address:
        return None
    return ShippingAddress(name=shipping.get("name"), **address)


class ReconciliationService:
    """Turns a confirmed card authorization into exactly one entitlement plus one capture.

    Only signed webhook deliveries reach reconcile_authorization(); the client
    poll observes entitlements and never provisions or captures.
    """

    def __init__(self, gateway: StripeManager, notifier: NotificationDispatcher,
                 provisioner_lookup: Callable[[ItemType], Provisioner] = get_provisioner):
        self.gateway = gateway
        self.notifier = notifier
        self.provisioner_lookup = provisioner_lookup
        self.handlers: Dict[str, Callable[[WebhookEvent], ReconciliationOutcome]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "payment_intent.succeeded": self._on_payment_intent,
            "payment_intent.amount_capturable_updated": self._on_payment_intent,
            "payment_intent.payment_failed": self._on_payment_failed,
            "charge.dispute.created": self._on_dispute_created,
            "transfer.created": self._on_transfer_created,
        }

    def handle_event(self, event: WebhookEvent) -> ReconciliationOutcome:
        handler = self.handlers.get(event.type)
        if handler is None:
            logger.info(f"Unhandled event type: {event.type}")
            return ReconciliationOutcome(outcome=Outcome.IGNORED, event_type=event.type)
        logger.info(f"Handling {event.type} ({event.id})")
        return handler(event)

    def reconcile_authorization(
        self,
        authorization_id: str,
        trigger: str,
        shipping_address: Optional[ShippingAddress] = None,
        buyer_email: Optional[str] = None,
    ) -> ReconciliationOutcome:
        run = Reconciliation(authorization_id, trigger)

        # never trust the status or metadata embedded in the event payload
        authorization = self.gateway.retrieve_status(authorization_id)
        raw_metadata = authorization.metadata or {}
        run.item_id = raw_metadata.get("itemId") or UNKNOWN_ITEM
        run.item_type = raw_metadata.get("itemType")
        run.buyer_id = raw_metadata.get("buyerId") or raw_metadata.get("userId")

        # a rolled back authorization stays rolled back whatever its gateway status became since
        previous = reconciliation_repo.get_record(run.item_id, authorization_id)
        if previous is not None and previous.reconciliation_state == ReconciliationState.ROLLED_BACK:
            logger.info(f"{run.item_id}/{authorization_id} was already rolled back, awaiting manual intervention")
            run.state = previous.reconciliation_state
            return run.outcome(Outcome.DUPLICATE, "already rolled back")

        if not authorization.is_capturable:
            return self._abort(run, AuthorizationNotCapturable(
                f"Authorization {authorization_id} has status {authorization.status}",
                authorization_id=authorization_id,
                status=authorization.status,
            ))

        try:
            metadata = PurchaseMetadata.from_metadata(raw_metadata, authorization_id)
            provisioner = self.provisioner_lookup(metadata.itemType)
        except InvalidMetadata as e:
            return self._abort(run, e)

        context = ProvisionContext(
            authorization=authorization,
            metadata=metadata,
            shipping_address=shipping_address if metadata.itemType.is_physical else None,
            buyer_email=buyer_email,
            trigger=trigger,
        )
        try:
            result = provisioner.provision(context)
        except (ItemNotFound, ItemUnavailable) as e:
            return self._abort(run, e)

        if result.already_exists:
            logger.info(f"Duplicate delivery of {trigger} for {run.item_id}/{authorization_id}, already provisioned")
            if previous is not None:
                run.state = previous.reconciliation_state
            return run.outcome(Outcome.DUPLICATE, "entitlement already exists")

        # from here on this call owns the entitlement; any failure before capture must undo it
        try:
            run.transition(ReconciliationState.ENTITLEMENT_PROVISIONED)
            captured_amount = self._capture(authorization)
        except CaptureError as e:
            return self._roll_back(run, provisioner, result.ref, OperatorAlertReason.CAPTURE_FAILED, e.message)
        except Exception as e:
            logger.exception(f"Reconciliation of {run.item_id}/{authorization_id} failed before capture")
            return self._roll_back(run, provisioner, result.ref, OperatorAlertReason.RECONCILIATION_FAILED, str(e))

        self.notifier.notify(context, captured_amount, authorization.currency)
        run.transition(ReconciliationState.CAPTURED)
        return run.outcome(Outcome.CAPTURED)

    def _capture(self, authorization: PaymentAuthorization) -> int:
        if authorization.is_captured:
            logger.info(f"Authorization {authorization.id} was already captured upstream, skipping capture")
            return authorization.amount
        try:
            return self.gateway.capture(authorization.id)
        except CaptureError as e:
            if not e.already_captured:
                raise
            logger.warning(f"Authorization {authorization.id} reported as already captured, keeping entitlement")
            return authorization.amount

    def capture_status(self, item_type: ItemType, item_id: str, authorization_id: str) -> Optional[PaymentAuthorization]:
        """Gateway status of an authorization, or None while its entitlement does not exist yet"""
        provisioner = self.provisioner_lookup(item_type)
        if provisioner.find(item_id, authorization_id) is None:
            return None
        return self.gateway.retrieve_status(authorization_id)

    def _abort(self, run: Reconciliation, error: ReconciliationError) -> ReconciliationOutcome:
        logger.warning(f"Aborting reconciliation of {run.authorization_id}: {error.message}")
        run.transition(ReconciliationState.ABORTED, detail=error.message)

        if isinstance(error, AuthorizationNotCapturable):
            if not error.benign:
                run.alert(OperatorAlertReason.NOT_CAPTURABLE, error.message)
        elif isinstance(error, InvalidMetadata):
            run.alert(OperatorAlertReason.INVALID_METADATA, error.message)
        elif isinstance(error, ItemNotFound):
            run.alert(OperatorAlertReason.ITEM_NOT_FOUND, error.message)
        elif isinstance(error, ItemUnavailable):
            run.alert(OperatorAlertReason.ITEM_UNAVAILABLE, error.message)
        return run.outcome(Outcome.ABORTED, error.message)

    def _roll_back(self, run: Reconciliation, provisioner: Provisioner, ref: EntitlementRef,
                   reason: OperatorAlertReason, detail: str) -> ReconciliationOutcome:
        logger.error(f"Rolling back entitlement for {run.authorization_id}: {detail}")
        # the ROLLED_BACK record must exist before the entitlement row goes away,
        # otherwise a redelivery would find neither and provision again
        try:
            run.transition(ReconciliationState.ROLLED_BACK, detail=detail)
        except Exception as e:
            run.alert(reason, f"{detail}; entitlement kept, rollback could not be recorded: {e}")
            raise

        try:
            provisioner.rollback(ref)
        except Exception as e:
            logger.exception(f"Rollback of {ref.table}/{ref.item_id}/{ref.authorization_id} failed")
            detail = f"{detail}; rollback incomplete: {e}"

        run.alert(reason, detail)
        return run.outcome(Outcome.ROLLED_BACK, detail)

    def _on_checkout_completed(self, event: WebhookEvent) -> ReconciliationOutcome:
        session = CheckoutSession.model_validate(event.data.object)
        if session.metadata.get("donationType") == "one-time" and session.metadata.get("artistId"):
            return self._record_donation(event, session)
        if not session.payment_intent:
            logger.warning(f"Checkout session {session.id} has no payment intent")
            return ReconciliationOutcome(outcome=Outcome.IGNORED, event_type=event.type, detail="no payment intent")
        return self.reconcile_authorization(
            session.payment_intent,
            event.type,
            shipping_address=session.shipping_address(),
            buyer_email=session.buyer_email,
        )

    def _on_payment_intent(self, event: WebhookEvent) -> ReconciliationOutcome:
        payment_intent = event.data.object
        return self.reconcile_authorization(
            payment_intent["id"],
            event.type,
            shipping_address=_shipping_from_payment_intent(payment_intent),
            buyer_email=payment_intent.get("receipt_email"),
        )

    def _record_donation(self, event: WebhookEvent, session: CheckoutSession) -> ReconciliationOutcome:
        artist_id = session.metadata["artistId"]
        # idempotent merge, kept ahead of the insert that turns redeliveries into duplicates
        user_repo.mark_one_time_donation(artist_id)
        created = reconciliation_repo.record_donation(DonationTableEntity(
            PartitionKey=artist_id,
            RowKey=session.id,
            amount=session.amount_total or 0,
            currency=session.currency or "usd",
            paymentIntentId=session.payment_intent,
        ))
        if not created:
            logger.info(f"Donation {session.id} for artist {artist_id} already recorded")
            return ReconciliationOutcome(outcome=Outcome.DUPLICATE, event_type=event.type,
                                         authorization_id=session.payment_intent, item_id=artist_id)
        logger.info(f"One-time donation completed: {session.id} for artist {artist_id}")
        return ReconciliationOutcome(outcome=Outcome.DONATION_RECORDED, event_type=event.type,
                                     authorization_id=session.payment_intent, item_id=artist_id)

    def _on_payment_failed(self, event: WebhookEvent) -> ReconciliationOutcome:
        payment_intent = event.data.object
        metadata = payment_intent.get("metadata") or {}
        last_error = payment_intent.get("last_payment_error") or {}
        reconciliation_repo.record_failed_payment(FailedPaymentTableEntity(
            RowKey=payment_intent["id"],
            itemId=metadata.get("itemId"),
            itemType=metadata.get("itemType"),
            buyerId=metadata.get("userId") or metadata.get("buyerId"),
            artistId=metadata.get("artistId"),
            amount=payment_intent.get("amount") or 0,
            currency=payment_intent.get("currency") or "usd",
            error=last_error.get("message") or "Payment failed",
            errorCode=last_error.get("code"),
        ))
        logger.info(f"Payment failed: {payment_intent['id']}")
        return ReconciliationOutcome(outcome=Outcome.RECORDED, event_type=event.type,
                                     authorization_id=payment_intent["id"], item_id=metadata.get("itemId"))

    def _on_dispute_created(self, event: WebhookEvent) -> ReconciliationOutcome:
        dispute = event.data.object
        payment_intent_id = dispute.get("payment_intent")
        reconciliation_repo.record_dispute(DisputeTableEntity(
            RowKey=dispute["id"],
            chargeId=dispute.get("charge"),
            paymentIntentId=payment_intent_id,
            amount=dispute.get("amount") or 0,
            currency=dispute.get("currency") or "usd",
            reason=dispute.get("reason"),
            status=dispute.get("status"),
        ))
        reconciliation_repo.raise_alert(OperatorAlertTableEntity(
            PartitionKey=payment_intent_id or dispute["id"],
            reason=OperatorAlertReason.DISPUTE.value,
            detail=f"Dispute {dispute['id']} opened: {dispute.get('reason')}",
        ))
        logger.warning(f"Dispute created: {dispute['id']}")
        return ReconciliationOutcome(outcome=Outcome.RECORDED, event_type=event.type,
                                     authorization_id=payment_intent_id)

    def _on_transfer_created(self, event: WebhookEvent) -> ReconciliationOutcome:
        transfer = event.data.object
        reconciliation_repo.record_transfer(TransferTableEntity(
            RowKey=transfer["id"],
            destination=transfer.get("destination"),
            amount=transfer.get("amount") or 0,
            currency=transfer.get("currency") or "usd",
        ))
        logger.info(f"Transfer created: {transfer['id']} to {transfer.get('destination')}")
        return ReconciliationOutcome(outcome=Outcome.RECORDED, event_type=event.type)
