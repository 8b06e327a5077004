from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime, timezone
from models.payment import ItemType, PaymentAuthorization, PurchaseMetadata, ShippingAddress


def _serialize_address(address: Optional[ShippingAddress]) -> Optional[str]:
    return address.model_dump_json(exclude_none=True) if address else None


class ProvisionContext(BaseModel):
    authorization: PaymentAuthorization
    metadata: PurchaseMetadata
    shipping_address: Optional[ShippingAddress] = None
    buyer_email: Optional[str] = None
    trigger: Optional[str] = None

    @property
    def item_id(self) -> str:
        return self.metadata.itemId

    @property
    def authorization_id(self) -> str:
        return self.authorization.id


class EntitlementRef(BaseModel):
    table: str
    item_id: str
    authorization_id: str
    item_type: ItemType
    inventory_decremented: bool = False


class ProvisionResult(BaseModel):
    ref: EntitlementRef
    already_exists: bool = False


class Enrollment(BaseModel):
    courseId: str
    userId: str
    paymentAuthorizationId: str
    status: Literal["active"] = "active"
    progress: int = 0
    enrolledAt: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnrollmentTableEntity(BaseModel):
    PartitionKey: str
    RowKey: str
    userId: str
    status: str = "active"
    progress: int = 0
    enrolledAt: Optional[str] = None
    inventoryDecremented: bool = False

    @classmethod
    def from_enrollment(cls, enrollment: Enrollment, inventory_decremented: bool = False) -> "EnrollmentTableEntity":
        return cls(PartitionKey=enrollment.courseId, RowKey=enrollment.paymentAuthorizationId,
                   userId=enrollment.userId, status=enrollment.status, progress=enrollment.progress,
                   enrolledAt=enrollment.enrolledAt.isoformat() if enrollment.enrolledAt else None, inventoryDecremented=inventory_decremented)


class SaleMark(BaseModel):
    itemId: str
    itemType: ItemType
    sold: bool = True
    soldTo: str
    paymentAuthorizationId: str
    shippingAddress: Optional[ShippingAddress] = None
    amount: int = 0
    currency: str = "usd"
    soldAt: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))


class SaleMarkTableEntity(BaseModel):
    PartitionKey: str
    RowKey: str
    itemType: str
    sold: bool = True
    soldTo: str
    shippingAddress: Optional[str] = None
    amount: int = 0
    currency: str = "usd"
    soldAt: Optional[str] = None
    inventoryDecremented: bool = False

    @classmethod
    def from_sale_mark(cls, mark: SaleMark, inventory_decremented: bool = False) -> "SaleMarkTableEntity":
        return cls(PartitionKey=mark.itemId, RowKey=mark.paymentAuthorizationId, itemType=mark.itemType.value,
                   sold=mark.sold, soldTo=mark.soldTo, shippingAddress=_serialize_address(mark.shippingAddress),
                   amount=mark.amount, currency=mark.currency, soldAt=mark.soldAt.isoformat() if mark.soldAt else None,
                   inventoryDecremented=inventory_decremented)


class PurchaseRecord(BaseModel):
    productId: str
    buyerId: str
    sellerId: str
    price: int
    currency: str = "usd"
    paymentAuthorizationId: str
    shippingAddress: Optional[ShippingAddress] = None
    status: Literal["completed"] = "completed"
    createdAt: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))


class PurchaseRecordTableEntity(BaseModel):
    PartitionKey: str
    RowKey: str
    buyerId: str
    sellerId: str
    price: int
    currency: str = "usd"
    shippingAddress: Optional[str] = None
    status: str = "completed"
    createdAt: Optional[str] = None
    inventoryDecremented: bool = False

    @classmethod
    def from_purchase_record(cls, record: PurchaseRecord, inventory_decremented: bool = False) -> "PurchaseRecordTableEntity":
        return cls(PartitionKey=record.productId, RowKey=record.paymentAuthorizationId, buyerId=record.buyerId,
                   sellerId=record.sellerId, price=record.price, currency=record.currency,
                   shippingAddress=_serialize_address(record.shippingAddress), status=record.status,
                   createdAt=record.createdAt.isoformat() if record.createdAt else None, inventoryDecremented=inventory_decremented)
