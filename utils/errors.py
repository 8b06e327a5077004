from typing import Optional


class ReconciliationError(Exception):
    """Base class for every failure the purchase reconciliation can report"""

    def __init__(self, message: str, authorization_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.authorization_id = authorization_id


class SignatureVerificationError(ReconciliationError):
    pass


class AuthorizationNotCapturable(ReconciliationError):
    def __init__(self, message: str, authorization_id: Optional[str] = None, status: Optional[str] = None):
        super().__init__(message, authorization_id)
        self.status = status

    @property
    def benign(self) -> bool:
        # a canceled hold or one already expired needs no investigation
        return self.status == "canceled"


class InvalidMetadata(ReconciliationError):
    pass


class ItemNotFound(ReconciliationError):
    def __init__(self, message: str, item_id: Optional[str] = None, authorization_id: Optional[str] = None):
        super().__init__(message, authorization_id)
        self.item_id = item_id


class ItemUnavailable(ReconciliationError):
    def __init__(self, message: str, item_id: Optional[str] = None, authorization_id: Optional[str] = None):
        super().__init__(message, authorization_id)
        self.item_id = item_id


class InventoryExhausted(ItemUnavailable):
    pass


class ConcurrentUpdateError(ReconciliationError):
    pass


class CaptureError(ReconciliationError):
    def __init__(
        self,
        message: str,
        authorization_id: Optional[str] = None,
        retryable: bool = False,
        already_captured: bool = False,
    ):
        super().__init__(message, authorization_id)
        self.retryable = retryable
        self.already_captured = already_captured


class NotificationError(ReconciliationError):
    pass
