from typing import Optional
from azure.communication.email import EmailClient
from models.email import EmailRequest
import os
import logging

logger = logging.getLogger(__name__)


class EmailManager:
    _instance: Optional['EmailManager'] = None
    client: Optional[EmailClient] = None

    def __new__(cls):
        if cls._instance is None:
            connection_string = os.getenv("EMAIL_CONNECTION_STRING")
            if not connection_string:
                raise ValueError("EMAIL_CONNECTION_STRING is not set")
            cls._instance = super().__new__(cls)
            cls._instance.client = EmailClient.from_connection_string(connection_string)
        return cls._instance

    def send(self, request: EmailRequest) -> dict:
        """Send one message and wait for Azure Communication Services to accept it"""
        poller = self.client.begin_send(request.model_dump(exclude_none=True))
        result = poller.result()
        logger.info(f"Email to {request.recipients.getFirst()} finished with status {result.get('status')}")
        return result
