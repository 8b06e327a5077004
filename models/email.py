from pydantic import BaseModel
from typing import List, Optional


class EmailAddress(BaseModel):
    address: str
    displayName: Optional[str] = None


class EmailRecipients(BaseModel):
    to: List[EmailAddress]
    bcc: List[EmailAddress] = []

    def getFirst(self):
        if self.to:
            return self.to[0].address
        else:
            return None


def _format_amount(amount: int, currency: str) -> str:
    return f"{amount / 100:,.2f} {currency.upper()}"


class EmailContent(BaseModel):
    subject: str
    plainText: str
    html: Optional[str] = None

    @classmethod
    def purchase_confirmation(cls, buyer_name: str, item_title: str, amount: int, currency: str,
                              authorization_id: str) -> "EmailContent":
        """Receipt sent to the buyer once the payment is captured"""
        price = _format_amount(amount, currency)
        plain = f"""
Hi {buyer_name},

Thank you for your purchase!

Item: {item_title}
Amount: {price}
Payment reference: {authorization_id}

You can find this purchase under Settings > Orders.

Team Gouache
"""
        html = f"""
<div style="font-family: 'Helvetica Neue', Arial, sans-serif; color: #111827;">
  <h1 style="font-size: 24px; font-weight: 700; margin-bottom: 8px;">Purchase Confirmed</h1>
  <p style="font-size: 16px; line-height: 1.5;">Hi {buyer_name}, thank you for your purchase!</p>
  <p style="font-size: 16px; line-height: 1.5;"><strong>{item_title}</strong> &middot; {price}</p>
  <p style="font-size: 14px; color: #6b7280;">Payment reference: {authorization_id}</p>
  <p style="font-size: 16px; font-weight: 600;">Team Gouache</p>
</div>
"""
        return cls(subject=f"Your purchase: {item_title}", plainText=plain, html=html)

    @classmethod
    def course_access(cls, buyer_name: str, course_title: str, access_url: str, amount: int, currency: str,
                      authorization_id: str) -> "EmailContent":
        """Course receipt carrying the link the buyer uses to open the course"""
        price = _format_amount(amount, currency)
        plain = f"""
Hi {buyer_name},

Thank you for your purchase! You now have access to: {course_title}

Access your course here:
{access_url}

Amount: {price}
Payment reference: {authorization_id}

Happy learning!
Team Gouache
"""
        html = f"""
<div style="font-family: 'Helvetica Neue', Arial, sans-serif; color: #111827;">
  <h1 style="font-size: 24px; font-weight: 700; margin-bottom: 8px;">Course Purchase Confirmed</h1>
  <p style="font-size: 16px; line-height: 1.5;">Hi {buyer_name}, thank you for your purchase!</p>
  <p style="font-size: 16px; line-height: 1.5; margin-top: 16px;">You now have access to: <strong>{course_title}</strong></p>
  <p style="margin: 24px 0;">
    <a href="{access_url}" style="display: inline-block; background-color: #111827; color: #ffffff; padding: 12px 20px; border-radius: 999px; font-weight: 600; text-decoration: none;">Access Course</a>
  </p>
  <p style="font-size: 14px; line-height: 1.6; color: #6b7280;">
    If the button above does not work, copy and paste this link into your browser:<br />
    <a href="{access_url}" style="color: #2563eb;">{access_url}</a>
  </p>
  <p style="font-size: 14px; color: #6b7280;">{price} &middot; Payment reference: {authorization_id}</p>
  <p style="font-size: 16px; line-height: 1.5; margin-top: 32px;">Happy learning!</p>
  <p style="font-size: 16px; font-weight: 600;">Team Gouache</p>
</div>
"""
        return cls(subject=f"Access Your Course: {course_title}", plainText=plain, html=html)

    @classmethod
    def sale_notification(cls, seller_name: str, buyer_name: str, item_title: str, amount: int, currency: str,
                          authorization_id: str) -> "EmailContent":
        """Notice sent to the artist when one of their items sells"""
        price = _format_amount(amount, currency)
        plain = f"""
Hi {seller_name},

Good news: {item_title} was just purchased by {buyer_name} for {price}.

Payment reference: {authorization_id}

Team Gouache
"""
        html = f"""
<div style="font-family: 'Helvetica Neue', Arial, sans-serif; color: #111827;">
  <h1 style="font-size: 24px; font-weight: 700; margin-bottom: 8px;">You made a sale</h1>
  <p style="font-size: 16px; line-height: 1.5;"><strong>{item_title}</strong> was purchased by {buyer_name} for {price}.</p>
  <p style="font-size: 14px; color: #6b7280;">Payment reference: {authorization_id}</p>
</div>
"""
        return cls(subject=f"Sold: {item_title}", plainText=plain, html=html)


class EmailRequest(BaseModel):
    content: EmailContent
    recipients: EmailRecipients
    senderAddress: str
