from typing import Callable, Optional
from azure.core import MatchConditions
from azure.core.exceptions import ResourceModifiedError
from azure.data.tables import TableEntity, UpdateMode
from managers.table_manager import TableConnectionManager
from models.payment import UNLIMITED_STOCK
from repository.catalog import get_item
from utils.errors import ConcurrentUpdateError, InventoryExhausted
import logging

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 10


def compare_and_swap(table_name: str, item_id: str, mutate: Callable[[TableEntity], Optional[dict]]) -> Optional[dict]:
    """Merge mutate(latest document) into the item with an If-Match write.

    mutate returns the changed fields, or None when nothing needs writing. A
    write that loses to a concurrent writer re-reads the document and retries.
    """
    manager = TableConnectionManager()
    table = manager.get_table(table_name)

    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        entity = get_item(table_name, item_id)
        changes = mutate(entity)
        if changes is None:
            return None
        try:
            table.update_entity(
                entity={"PartitionKey": entity["PartitionKey"], "RowKey": entity["RowKey"], **changes},
                mode=UpdateMode.MERGE,
                etag=entity.metadata["etag"],
                match_condition=MatchConditions.IfNotModified,
            )
            return changes
        except ResourceModifiedError:
            logger.info(f"{table_name}/{item_id} changed concurrently, retrying ({attempt}/{MAX_CAS_ATTEMPTS})")

    raise ConcurrentUpdateError(f"Could not update {table_name}/{item_id} after {MAX_CAS_ATTEMPTS} attempts")


def is_finite_stock(stock) -> bool:
    return stock is not None and stock < UNLIMITED_STOCK


def adjust_stock(table_name: str, item_id: str, delta: int) -> Optional[int]:
    """Atomically move a finite stock counter by delta; returns the new value or None when untracked"""

    def mutate(entity: TableEntity) -> Optional[dict]:
        stock = entity.get("stock")
        if not is_finite_stock(stock):
            return None
        if stock + delta < 0:
            raise InventoryExhausted(f"{table_name} item {item_id} is out of stock", item_id=item_id)
        return {"stock": stock + delta}

    changes = compare_and_swap(table_name, item_id, mutate)
    return changes["stock"] if changes else None


def adjust_counter(table_name: str, item_id: str, field: str, delta: int) -> int:
    """Atomically add delta to a plain counter field, treating a missing field as zero"""

    def mutate(entity: TableEntity) -> dict:
        return {field: max(0, (entity.get(field) or 0) + delta)}

    return compare_and_swap(table_name, item_id, mutate)[field]
