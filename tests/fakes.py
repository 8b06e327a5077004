from typing import Callable, Dict, List, Optional, Tuple
from azure.core import MatchConditions
from azure.core.exceptions import ResourceExistsError, ResourceModifiedError, ResourceNotFoundError
from azure.data.tables import TableEntity, UpdateMode
from managers.stripe_manager import StripeManager
from models.payment import PaymentAuthorization
from models.settings import StripeSettings, EmailSettings
from utils.errors import CaptureError
import copy
import hashlib
import hmac
import itertools
import json
import re
import threading
import time

PRIMARY_SECRET = "whsec_platform_test"
CONNECT_SECRET = "whsec_connect_test"

_etags = itertools.count(1)


class FakeTableClient:
    """In-memory stand-in for azure.data.tables.TableClient.

    Reproduces the service behaviour the reconciliation relies on: duplicate
    inserts fail with ResourceExistsError and If-Match writes against a stale
    etag fail with ResourceModifiedError.
    """

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.rows: Dict[Tuple[str, str], Tuple[dict, str]] = {}
        self.lock = threading.RLock()
        self.before_update: Optional[Callable[["FakeTableClient", dict], None]] = None

    def _entity(self, key: Tuple[str, str]) -> TableEntity:
        data, etag = self.rows[key]
        entity = TableEntity(copy.deepcopy(data))
        entity._metadata = {"etag": etag}
        return entity

    def create_entity(self, entity: dict, **kwargs):
        with self.lock:
            key = (entity["PartitionKey"], entity["RowKey"])
            if key in self.rows:
                raise ResourceExistsError(message=f"EntityAlreadyExists: {self.table_name}/{key}")
            self.rows[key] = (copy.deepcopy(dict(entity)), f'W/"{next(_etags)}"')
            return {"etag": self.rows[key][1]}

    def get_entity(self, partition_key: str, row_key: str, **kwargs) -> TableEntity:
        with self.lock:
            key = (partition_key, row_key)
            if key not in self.rows:
                raise ResourceNotFoundError(message=f"ResourceNotFound: {self.table_name}/{key}")
            return self._entity(key)

    def update_entity(self, entity: dict, mode=UpdateMode.MERGE, etag=None, match_condition=None, **kwargs):
        if self.before_update is not None:
            self.before_update(self, dict(entity))
        with self.lock:
            key = (entity["PartitionKey"], entity["RowKey"])
            if key not in self.rows:
                raise ResourceNotFoundError(message=f"ResourceNotFound: {self.table_name}/{key}")
            current, current_etag = self.rows[key]
            if match_condition == MatchConditions.IfNotModified and etag != current_etag:
                raise ResourceModifiedError(message="UpdateConditionNotSatisfied")
            self.rows[key] = (self._merge(current, entity, mode), f'W/"{next(_etags)}"')
            return {"etag": self.rows[key][1]}

    def upsert_entity(self, entity: dict, mode=UpdateMode.MERGE, **kwargs):
        with self.lock:
            key = (entity["PartitionKey"], entity["RowKey"])
            current = self.rows[key][0] if key in self.rows else {}
            self.rows[key] = (self._merge(current, entity, mode), f'W/"{next(_etags)}"')
            return {"etag": self.rows[key][1]}

    def delete_entity(self, partition_key: str, row_key: str, **kwargs):
        with self.lock:
            self.rows.pop((partition_key, row_key), None)

    def query_entities(self, query_filter: str, parameters: Optional[dict] = None, **kwargs) -> List[TableEntity]:
        parameters = parameters or {}
        clauses = [re.match(r"(\w+) eq @(\w+)", c.strip()) for c in query_filter.split(" and ")]
        with self.lock:
            return [
                self._entity(key) for key, (data, _) in self.rows.items()
                if all(data.get(c.group(1)) == parameters.get(c.group(2)) for c in clauses)
            ]

    def list_entities(self, **kwargs) -> List[TableEntity]:
        with self.lock:
            return [self._entity(key) for key in self.rows]

    @staticmethod
    def _merge(current: dict, entity: dict, mode) -> dict:
        if mode == UpdateMode.REPLACE:
            return copy.deepcopy(dict(entity))
        merged = copy.deepcopy(current)
        merged.update(copy.deepcopy(dict(entity)))
        return merged


class FakeTableServiceClient:
    def __init__(self):
        self.tables: Dict[str, FakeTableClient] = {}

    def create_table_if_not_exists(self, table_name: str) -> FakeTableClient:
        return self.tables.setdefault(table_name, FakeTableClient(table_name))

    def get_table_client(self, table_name: str) -> FakeTableClient:
        return self.create_table_if_not_exists(table_name)

    def table(self, table_name: str) -> FakeTableClient:
        return self.create_table_if_not_exists(table_name)

    def rows(self, table_name: str) -> List[dict]:
        return [dict(e) for e in self.table(table_name).list_entities()]

    def seed_item(self, table_name: str, item_id: str, **fields) -> None:
        self.table(table_name).create_entity({"PartitionKey": "item", "RowKey": item_id, **fields})

    def item(self, table_name: str, item_id: str) -> dict:
        return dict(self.table(table_name).get_entity(partition_key="item", row_key=item_id))


class FakeGateway(StripeManager):
    """Real webhook signature checks, scripted authorization and capture results"""

    def __init__(self, settings: Optional[StripeSettings] = None):
        super().__init__(settings or StripeSettings(
            secret_key="sk_test_fake",
            webhook_secrets=[PRIMARY_SECRET, CONNECT_SECRET],
        ))
        self.authorizations: Dict[str, PaymentAuthorization] = {}
        self.calls: List[Tuple[str, str]] = []
        self.capture_errors: List[CaptureError] = []
        self.on_capture: Optional[Callable[[str], None]] = None
        self.on_retrieve: Optional[Callable[[str], None]] = None
        self.lock = threading.Lock()

    def add_authorization(self, authorization_id: str, metadata: dict, amount: int = 5000,
                          status: str = "requires_capture", currency: str = "usd") -> PaymentAuthorization:
        authorization = PaymentAuthorization(id=authorization_id, status=status, amount=amount,
                                             currency=currency, metadata=metadata)
        self.authorizations[authorization_id] = authorization
        return authorization

    def retrieve_status(self, authorization_id: str) -> PaymentAuthorization:
        with self.lock:
            self.calls.append(("retrieve", authorization_id))
        if self.on_retrieve is not None:
            self.on_retrieve(authorization_id)
        return self.authorizations[authorization_id].model_copy(deep=True)

    def capture(self, authorization_id: str) -> int:
        with self.lock:
            self.calls.append(("capture", authorization_id))
        if self.on_capture is not None:
            self.on_capture(authorization_id)
        if self.capture_errors:
            raise self.capture_errors.pop(0)
        authorization = self.authorizations[authorization_id]
        authorization.status = "succeeded"
        return authorization.amount

    def captures(self) -> List[str]:
        return [authorization_id for call, authorization_id in self.calls if call == "capture"]


class RecordingNotifier:
    def __init__(self):
        self.settings = EmailSettings()
        self.sent: List[Tuple[str, int, str]] = []

    def notify(self, context, amount: int, currency: str) -> int:
        self.sent.append((context.authorization_id, amount, currency))
        return 2


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def course_metadata(item_id: str = "c1", buyer_id: str = "u1", artist_id: str = "a1") -> dict:
    return {"itemId": item_id, "itemType": "course", "userId": buyer_id, "artistId": artist_id,
            "itemTitle": "Gouache Basics"}


def checkout_completed_event(authorization_id: str, metadata: Optional[dict] = None,
                             event_id: str = "evt_checkout", address: Optional[dict] = None) -> dict:
    session = {
        "id": f"cs_{authorization_id}",
        "object": "checkout.session",
        "payment_intent": authorization_id,
        "metadata": metadata or {},
        "amount_total": 5000,
        "currency": "usd",
        "customer_details": {"name": "Ada Buyer", "email": "ada@example.com", "address": address},
    }
    return {"id": event_id, "object": "event", "type": "checkout.session.completed", "data": {"object": session}}


def payment_intent_event(authorization_id: str, event_type: str = "payment_intent.succeeded",
                         event_id: str = "evt_pi", **fields) -> dict:
    payment_intent = {"id": authorization_id, "object": "payment_intent", **fields}
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": payment_intent}}


def encode(event: dict) -> bytes:
    return json.dumps(event).encode("utf-8")
