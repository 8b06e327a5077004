from pydantic import BaseModel, Field
from typing import List, Optional
import os


class StripeSettings(BaseModel):
    secret_key: str
    # platform endpoint secret first, connected-account endpoint secret second
    webhook_secrets: List[str] = Field(default_factory=list)
    signature_tolerance: int = 300

    @classmethod
    def from_env(cls) -> "StripeSettings":
        secrets = [
            os.getenv("STRIPE_WEBHOOK_SECRET"),
            os.getenv("STRIPE_CONNECT_WEBHOOK_SECRET"),
        ]
        return cls(
            secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            webhook_secrets=[s for s in secrets if s],
            signature_tolerance=int(os.getenv("STRIPE_SIGNATURE_TOLERANCE", "300")),
        )


class PollSettings(BaseModel):
    max_attempts: int = 5
    interval_ms: int = 2000

    @classmethod
    def from_env(cls) -> "PollSettings":
        return cls(
            max_attempts=int(os.getenv("PURCHASE_POLL_MAX_ATTEMPTS", "5")),
            interval_ms=int(os.getenv("PURCHASE_POLL_INTERVAL_MS", "2000")),
        )


class EmailSettings(BaseModel):
    sender_address: Optional[str] = None
    operator_address: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EmailSettings":
        return cls(
            sender_address=os.getenv("SENDER_ADDRESS"),
            operator_address=os.getenv("RECIPENTS_ADDRESS"),
        )


class AppSettings(BaseModel):
    stripe: StripeSettings
    poll: PollSettings = Field(default_factory=PollSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    allowed_origins: List[str] = Field(default_factory=list)

    @classmethod
    def from_env(cls) -> "AppSettings":
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
        return cls(
            stripe=StripeSettings.from_env(),
            poll=PollSettings.from_env(),
            email=EmailSettings.from_env(),
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )
