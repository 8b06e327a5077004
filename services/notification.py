from typing import List, Optional
from managers.email_manager import EmailManager
from managers.table_manager import COURSES
from models.email import EmailRequest, EmailContent, EmailRecipients, EmailAddress
from models.entitlement import ProvisionContext
from models.payment import ItemType
from models.settings import EmailSettings
from utils.errors import ItemNotFound, NotificationError
from repository import catalog as catalog_repo
from repository import user as user_repo
import logging

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Sends the buyer and seller emails after a successful capture.

    notify() never raises: a lost email is logged, never propagated.
    """

    def __init__(self, settings: EmailSettings):
        self.settings = settings

    def notify(self, context: ProvisionContext, amount: int, currency: str) -> int:
        try:
            return self._notify(context, amount, currency)
        except Exception:
            logger.exception(f"Purchase notification for {context.authorization_id} failed")
            return 0

    def _notify(self, context: ProvisionContext, amount: int, currency: str) -> int:
        if not self.settings.sender_address:
            logger.warning("SENDER_ADDRESS is not configured, skipping purchase emails")
            return 0

        metadata = context.metadata
        title = metadata.itemTitle or "Untitled"
        buyer = user_repo.get_profile(metadata.buyerId)
        seller = user_repo.get_profile(metadata.artistId)
        buyer_email = (buyer.email if buyer else None) or context.buyer_email
        buyer_name = buyer.name if buyer else (buyer_email or "there")

        requests: List[EmailRequest] = []
        if buyer_email:
            access_url = self._course_access_url(context)
            if access_url:
                content = EmailContent.course_access(buyer_name, title, access_url, amount, currency,
                                                     context.authorization_id)
            else:
                content = EmailContent.purchase_confirmation(buyer_name, title, amount, currency,
                                                             context.authorization_id)
            requests.append(self._request(buyer_email, content))
        else:
            logger.warning(f"No email address for buyer {metadata.buyerId}")

        if seller and seller.email:
            requests.append(self._request(
                seller.email,
                EmailContent.sale_notification(seller.name, buyer_name, title, amount, currency, context.authorization_id),
            ))
        else:
            logger.warning(f"No email address for seller {metadata.artistId}")

        sent = 0
        for request in requests:
            try:
                self._send(request, context.authorization_id)
                sent += 1
            except NotificationError as e:
                logger.warning(e.message)
        return sent

    def _course_access_url(self, context: ProvisionContext) -> Optional[str]:
        if context.metadata.itemType != ItemType.COURSE:
            return None
        try:
            course = catalog_repo.get_item(COURSES, context.item_id)
        except ItemNotFound:
            logger.warning(f"Course {context.item_id} not found, sending the plain receipt")
            return None
        return course.get("externalUrl") or None

    def _send(self, request: EmailRequest, authorization_id: str) -> None:
        try:
            EmailManager().send(request)
        except Exception as e:
            raise NotificationError(f"Email to {request.recipients.getFirst()} failed: {e}", authorization_id) from e

    def _request(self, address: str, content: EmailContent) -> EmailRequest:
        bcc: List[EmailAddress] = []
        if self.settings.operator_address:
            bcc.append(EmailAddress(address=self.settings.operator_address, displayName=self.settings.operator_address))
        return EmailRequest(
            content=content,
            recipients=EmailRecipients(to=[EmailAddress(address=address, displayName=address)], bcc=bcc),
            senderAddress=self.settings.sender_address,
        )
