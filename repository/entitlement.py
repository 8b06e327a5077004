from typing import Optional
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.data.tables import TableEntity, UpdateMode
from managers.table_manager import TableConnectionManager
import logging

logger = logging.getLogger(__name__)


def provision_if_absent(table_name: str, entity: dict) -> bool:
    """Create the entitlement row unless one already exists for (PartitionKey, RowKey).

    The insert is rejected by the table service when the key is taken, so of
    any number of concurrent callers exactly one gets True.
    """
    manager = TableConnectionManager()
    try:
        manager.get_table(table_name).create_entity(entity)
        return True
    except ResourceExistsError:
        logger.info(f"Entitlement {table_name}/{entity['PartitionKey']}/{entity['RowKey']} already exists")
        return False


def get_entitlement(table_name: str, item_id: str, authorization_id: str) -> Optional[TableEntity]:
    manager = TableConnectionManager()
    try:
        return manager.get_table(table_name).get_entity(partition_key=item_id, row_key=authorization_id)
    except ResourceNotFoundError:
        return None


def delete_entitlement(table_name: str, item_id: str, authorization_id: str) -> None:
    # deleting a missing row is not an error for the table service
    manager = TableConnectionManager()
    manager.get_table(table_name).delete_entity(partition_key=item_id, row_key=authorization_id)


def mark_inventory_decremented(table_name: str, item_id: str, authorization_id: str) -> None:
    manager = TableConnectionManager()
    manager.get_table(table_name).update_entity(
        {"PartitionKey": item_id, "RowKey": authorization_id, "inventoryDecremented": True},
        mode=UpdateMode.MERGE,
    )
