from typing import Any, Dict, List, Optional, Tuple
import logging
import stripe
from models.payment import PaymentAuthorization, PurchaseMetadata, WebhookEvent
from models.settings import StripeSettings
from utils.errors import CaptureError, SignatureVerificationError

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError)


def _to_plain(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeManager:
    """Manual-capture payment gateway backed by Stripe PaymentIntents"""

    def __init__(self, settings: StripeSettings):
        self.settings = settings

    def create_authorization(
        self,
        amount: int,
        currency: str,
        metadata: PurchaseMetadata,
        destination: Optional[str] = None,
    ) -> PaymentAuthorization:
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "capture_method": "manual",
            "metadata": metadata.to_stripe_metadata(),
        }
        if destination:
            params["transfer_data"] = {"destination": destination}

        intent = stripe.PaymentIntent.create(api_key=self.settings.secret_key, **params)
        logger.info(f"Created manual-capture authorization {intent.id} for {metadata.itemType.value} {metadata.itemId}")
        return self._to_authorization(intent)

    def create_checkout_session(
        self,
        amount: int,
        currency: str,
        metadata: PurchaseMetadata,
        success_url: str,
        cancel_url: str,
        allowed_countries: Optional[List[str]] = None,
    ) -> Tuple[str, str]:
        stripe_metadata = metadata.to_stripe_metadata()
        params: Dict[str, Any] = {
            "mode": "payment",
            "line_items": [{
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": {"name": metadata.itemTitle or metadata.itemId},
                    "unit_amount": amount,
                },
                "quantity": 1,
            }],
            "payment_intent_data": {"capture_method": "manual", "metadata": stripe_metadata},
            "metadata": stripe_metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if metadata.itemType.is_physical:
            params["shipping_address_collection"] = {"allowed_countries": allowed_countries or ["US"]}

        session = stripe.checkout.Session.create(api_key=self.settings.secret_key, **params)
        return session.id, session.url

    def retrieve_status(self, authorization_id: str) -> PaymentAuthorization:
        intent = stripe.PaymentIntent.retrieve(authorization_id, api_key=self.settings.secret_key)
        return self._to_authorization(intent)

    def capture(self, authorization_id: str) -> int:
        """Capture a held authorization and return the captured amount"""
        try:
            intent = stripe.PaymentIntent.capture(authorization_id, api_key=self.settings.secret_key)
        except stripe.StripeError as e:
            already_captured = self._is_already_captured(e)
            raise CaptureError(
                f"Capture of {authorization_id} failed: {e.user_message or str(e)}",
                authorization_id=authorization_id,
                retryable=isinstance(e, RETRYABLE_ERRORS) and not already_captured,
                already_captured=already_captured,
            )

        logger.info(f"Captured authorization {authorization_id} status={intent.status}")
        return getattr(intent, "amount_received", None) or intent.amount

    def verify_webhook_signature(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookEvent:
        """Try each configured signing secret in order until one verifies"""
        if not signature_header:
            raise SignatureVerificationError("Missing stripe-signature header")
        if not self.settings.webhook_secrets:
            raise SignatureVerificationError("No webhook signing secret configured")

        errors: List[str] = []
        for index, secret in enumerate(self.settings.webhook_secrets):
            try:
                stripe.Webhook.construct_event(
                    raw_body, signature_header, secret, tolerance=self.settings.signature_tolerance
                )
            except stripe.SignatureVerificationError as e:
                errors.append(str(e))
                continue

            if index > 0:
                logger.info(f"Webhook verified with fallback signing secret #{index + 1}")
            return WebhookEvent.model_validate_json(raw_body)

        raise SignatureVerificationError(
            f"Webhook signature did not match any of {len(errors)} signing secrets: {errors[-1]}"
        )

    @staticmethod
    def _is_already_captured(error: stripe.StripeError) -> bool:
        return getattr(error, "code", None) == "payment_intent_unexpected_state" and "captured" in str(error).lower()

    @staticmethod
    def _to_authorization(intent) -> PaymentAuthorization:
        return PaymentAuthorization(
            id=intent.id,
            status=intent.status,
            amount=intent.amount or 0,
            currency=intent.currency or "usd",
            metadata=_to_plain(getattr(intent, "metadata", None)),
            client_secret=getattr(intent, "client_secret", None),
        )
