from pydantic import BaseModel, Field, AliasChoices, ValidationError
from typing import Optional, Dict, Any, List
from enum import Enum
from utils.errors import InvalidMetadata

# stock value the storefront uses for "no inventory limit"
UNLIMITED_STOCK = 999999

CAPTURABLE_STATUSES = ("requires_capture", "succeeded")


class ItemType(str, Enum):
    COURSE = "course"
    ORIGINAL = "original"
    PRINT = "print"
    BOOK = "book"
    PRODUCT = "product"
    MERCHANDISE = "merchandise"

    @property
    def is_physical(self) -> bool:
        return self is not ItemType.COURSE


class PurchaseMetadata(BaseModel):
    itemId: str = Field(min_length=1)
    itemType: ItemType
    buyerId: str = Field(min_length=1, validation_alias=AliasChoices("buyerId", "userId"))
    artistId: str = Field(min_length=1)
    itemTitle: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: Optional[Dict[str, Any]], authorization_id: Optional[str] = None) -> "PurchaseMetadata":
        try:
            return cls.model_validate(metadata or {})
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise InvalidMetadata(
                f"Missing or invalid purchase metadata: {', '.join(fields)}",
                authorization_id=authorization_id,
            )

    def to_stripe_metadata(self) -> Dict[str, str]:
        metadata = {
            "itemId": self.itemId,
            "itemType": self.itemType.value,
            "userId": self.buyerId,
            "artistId": self.artistId,
        }
        if self.itemTitle:
            metadata["itemTitle"] = self.itemTitle
        return metadata


class PaymentAuthorization(BaseModel):
    id: str
    status: str
    amount: int = 0
    currency: str = "usd"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    client_secret: Optional[str] = None

    @property
    def is_capturable(self) -> bool:
        return self.status in CAPTURABLE_STATUSES

    @property
    def is_captured(self) -> bool:
        return self.status == "succeeded"


class ShippingAddress(BaseModel):
    name: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CustomerDetails(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[ShippingAddress] = None


class ShippingDetails(BaseModel):
    name: Optional[str] = None
    address: Optional[ShippingAddress] = None


class CheckoutSession(BaseModel):
    id: str
    payment_intent: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    shipping_details: Optional[ShippingDetails] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    amount_total: Optional[int] = None
    currency: Optional[str] = None

    def shipping_address(self) -> Optional[ShippingAddress]:
        """Shipping details win over the billing address on customer_details"""
        if self.shipping_details and self.shipping_details.address:
            address = self.shipping_details.address.model_copy()
            address.name = address.name or self.shipping_details.name
            return address
        if self.customer_details and self.customer_details.address:
            address = self.customer_details.address.model_copy()
            address.name = address.name or self.customer_details.name
            return address
        return None

    @property
    def buyer_email(self) -> Optional[str]:
        return self.customer_details.email if self.customer_details else None


class WebhookEventData(BaseModel):
    object: Dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    id: str
    type: str
    account: Optional[str] = None
    livemode: bool = False
    data: WebhookEventData = Field(default_factory=WebhookEventData)


class AuthorizationRequest(BaseModel):
    amount: int = Field(ge=50)  # minor units, Stripe minimum is $0.50
    currency: str = "usd"
    itemId: str
    itemType: ItemType
    buyerId: str
    artistId: str
    itemTitle: Optional[str] = None

    def to_metadata(self) -> PurchaseMetadata:
        return PurchaseMetadata(itemId=self.itemId, itemType=self.itemType, buyerId=self.buyerId,
                                artistId=self.artistId, itemTitle=self.itemTitle)


class AuthorizationResponse(BaseModel):
    payment_intent_id: str
    client_secret: Optional[str] = None
    status: str


class CheckoutRequest(AuthorizationRequest):
    success_url: str
    cancel_url: str
    allowed_countries: List[str] = Field(default_factory=lambda: ["US", "CA", "GB"])


class CheckoutResponse(BaseModel):
    session_id: str
    url: str
