from fastapi import APIRouter, HTTPException, Body, Depends
from starlette.concurrency import run_in_threadpool
from api.dependencies import get_settings, get_reconciliation_service
from managers.auth_manager import JWTPayload, requires_scope, is_token_id_matching
from models.purchase import VerifyPurchaseRequest, VerifyPurchaseResponse, CaptureStatusRequest, CaptureStatusResponse
from models.settings import AppSettings
from services.polling import poll_for_entitlement, entitlement_lookup
from services.reconciliation import ReconciliationService
from utils.errors import InvalidMetadata
import stripe

router = APIRouter()


@router.post("/purchases/verify", response_model=VerifyPurchaseResponse, tags=["purchases"])
async def verify_purchase(
    verify_request: VerifyPurchaseRequest = Body(..., description="Purchase to verify"),
    settings: AppSettings = Depends(get_settings),
    token_data: JWTPayload = Depends(requires_scope("purchases.read")),
):
    """Poll for the entitlement the webhook creates; read-only"""
    if not is_token_id_matching(token_data, verify_request.userId):
        raise HTTPException(
            status_code=403,
            detail=f"userId {verify_request.userId} does not match the token",
        )
    try:
        lookup = entitlement_lookup(verify_request.itemId, verify_request.authorizationId,
                                    verify_request.userId, verify_request.itemType)
    except InvalidMetadata as e:
        raise HTTPException(status_code=400, detail=str(e))

    verified = await poll_for_entitlement(lookup, settings.poll.max_attempts, settings.poll.interval_ms)
    return VerifyPurchaseResponse(verified=verified, status="complete" if verified else "processing")


@router.post("/purchases/capture", response_model=CaptureStatusResponse, tags=["purchases"])
async def capture_status(
    capture_request: CaptureStatusRequest = Body(..., description="Authorization to re-check"),
    service: ReconciliationService = Depends(get_reconciliation_service),
    token_data: JWTPayload = Depends(requires_scope("purchases.read")),
):
    """Re-check an authorization once its entitlement exists; capture itself only happens in the webhook"""
    if not is_token_id_matching(token_data, capture_request.userId):
        raise HTTPException(
            status_code=403,
            detail=f"userId {capture_request.userId} does not match the token",
        )
    try:
        authorization = await run_in_threadpool(
            service.capture_status,
            capture_request.itemType,
            capture_request.itemId,
            capture_request.authorizationId,
        )
    except stripe.StripeError as e:
        raise HTTPException(status_code=502, detail=str(e))

    if authorization is None:
        raise HTTPException(status_code=409, detail="processing")
    return CaptureStatusResponse(
        authorizationId=authorization.id,
        status=authorization.status,
        captured=authorization.is_captured,
    )
