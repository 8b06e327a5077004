from azure.core.exceptions import ResourceNotFoundError
from azure.data.tables import TableEntity
from managers.table_manager import TableConnectionManager, ITEM_PARTITION
from utils.errors import ItemNotFound


def get_item(table_name: str, item_id: str) -> TableEntity:
    """Load a catalog document (course, artwork, book or product)"""
    manager = TableConnectionManager()
    try:
        return manager.get_table(table_name).get_entity(partition_key=ITEM_PARTITION, row_key=item_id)
    except ResourceNotFoundError:
        raise ItemNotFound(f"{table_name} item {item_id} not found", item_id=item_id)
