from pydantic import BaseModel, Field
from typing import Literal, Optional
from models.payment import ItemType


class VerifyPurchaseRequest(BaseModel):
    itemId: str
    itemType: Optional[ItemType] = None
    authorizationId: str = Field(min_length=1)
    userId: str


class VerifyPurchaseResponse(BaseModel):
    verified: bool
    # never "failed": a timed out poll can still complete through the webhook
    status: Literal["complete", "processing"]


class CaptureStatusRequest(BaseModel):
    itemId: str
    itemType: ItemType
    authorizationId: str = Field(min_length=1)
    userId: str


class CaptureStatusResponse(BaseModel):
    authorizationId: str
    status: str
    captured: bool
