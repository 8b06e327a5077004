from fastapi import APIRouter, HTTPException, Body, Depends
from azure.data.tables import TableEntity
from api.dependencies import get_gateway
from managers.auth_manager import JWTPayload, requires_scope, is_token_id_matching
from managers.stripe_manager import StripeManager
from models.payment import (
    AuthorizationRequest,
    AuthorizationResponse,
    CheckoutRequest,
    CheckoutResponse,
    ItemType,
)
from repository import catalog as catalog_repo
from repository import user as user_repo
from services.provisioners import get_provisioner
from utils.errors import ItemNotFound
import stripe

router = APIRouter()


def _get_available_item(payment: AuthorizationRequest) -> TableEntity:
    """Load the item and make sure it can still be bought from this artist"""
    provisioner = get_provisioner(payment.itemType)
    try:
        item = catalog_repo.get_item(provisioner.item_table, payment.itemId)
    except ItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    owner = item.get("artistId") or item.get("sellerId") or item.get("instructorId")
    if owner and owner != payment.artistId:
        raise HTTPException(status_code=403, detail="Item does not belong to this artist")
    if item.get("deleted") or item.get("isActive") is False:
        raise HTTPException(status_code=400, detail="Item is not available")
    if payment.itemType == ItemType.ORIGINAL and item.get("sold"):
        raise HTTPException(status_code=400, detail="Item is not available for sale")
    if item.get("stock") == 0:
        raise HTTPException(status_code=400, detail="Item is out of stock")
    return item


@router.post("/payments/authorize", response_model=AuthorizationResponse, status_code=201, tags=["payments"])
async def create_authorization(
    payment: AuthorizationRequest = Body(..., description="Item to place a card hold for"),
    gateway: StripeManager = Depends(get_gateway),
    token_data: JWTPayload = Depends(requires_scope("payments.write")),
):
    """Place a manual-capture hold; the webhook captures it once the entitlement exists"""
    if not is_token_id_matching(token_data, payment.buyerId):
        raise HTTPException(status_code=403, detail=f"buyerId {payment.buyerId} does not match the token")
    _get_available_item(payment)

    artist = user_repo.get_profile(payment.artistId)
    try:
        authorization = gateway.create_authorization(
            payment.amount,
            payment.currency,
            payment.to_metadata(),
            destination=artist.stripeAccountId if artist else None,
        )
    except stripe.StripeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return AuthorizationResponse(
        payment_intent_id=authorization.id,
        client_secret=authorization.client_secret,
        status=authorization.status,
    )


@router.post("/payments/checkout", response_model=CheckoutResponse, status_code=201, tags=["payments"])
async def create_checkout(
    checkout: CheckoutRequest = Body(..., description="Item to check out"),
    gateway: StripeManager = Depends(get_gateway),
    token_data: JWTPayload = Depends(requires_scope("payments.write")),
):
    """Hosted checkout with shipping address collection for physical goods"""
    if not is_token_id_matching(token_data, checkout.buyerId):
        raise HTTPException(status_code=403, detail=f"buyerId {checkout.buyerId} does not match the token")
    _get_available_item(checkout)

    try:
        session_id, url = gateway.create_checkout_session(
            checkout.amount,
            checkout.currency,
            checkout.to_metadata(),
            checkout.success_url,
            checkout.cancel_url,
            allowed_countries=checkout.allowed_countries,
        )
    except stripe.StripeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return CheckoutResponse(session_id=session_id, url=url)
