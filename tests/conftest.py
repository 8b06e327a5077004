import pytest
from managers.table_manager import TableConnectionManager
from services.reconciliation import ReconciliationService
from tests.fakes import FakeTableServiceClient, FakeGateway, RecordingNotifier


@pytest.fixture
def table_service(monkeypatch):
    """Route every TableConnectionManager() to an in-memory table service"""
    service = FakeTableServiceClient()
    manager = object.__new__(TableConnectionManager)
    manager.client = service
    manager.tables = {}
    monkeypatch.setattr(TableConnectionManager, "_instance", manager)
    return service


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(table_service, gateway, notifier):
    return ReconciliationService(gateway, notifier)
