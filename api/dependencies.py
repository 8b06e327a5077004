from fastapi import Depends
from functools import lru_cache
from managers.stripe_manager import StripeManager
from models.settings import AppSettings
from services.notification import NotificationDispatcher
from services.reconciliation import ReconciliationService


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings.from_env()


def get_gateway(settings: AppSettings = Depends(get_settings)) -> StripeManager:
    return StripeManager(settings.stripe)


def get_reconciliation_service(
    settings: AppSettings = Depends(get_settings),
    gateway: StripeManager = Depends(get_gateway),
) -> ReconciliationService:
    return ReconciliationService(gateway, NotificationDispatcher(settings.email))
