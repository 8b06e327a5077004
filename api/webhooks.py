from fastapi import APIRouter, HTTPException, Request, Depends
from starlette.concurrency import run_in_threadpool
from api.dependencies import get_reconciliation_service
from services.reconciliation import ReconciliationService
from utils.errors import SignatureVerificationError
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks", tags=["webhooks"])
async def webhook(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    # signature verification needs the byte-exact body
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = service.gateway.verify_webhook_signature(payload, sig_header)
    except SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        # Invalid payload
        logger.error(f"Webhook payload could not be parsed: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    try:
        outcome = await run_in_threadpool(service.handle_event, event)
    except Exception as e:
        # redelivery is safe, provisioning is idempotent per authorization
        logger.exception(f"Error handling webhook event {event.id} ({event.type})")
        raise HTTPException(status_code=500, detail=f"Error processing webhook: {e}")

    return {"received": True, **outcome.model_dump(mode="json", exclude_none=True)}
