from typing import List, Optional
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.data.tables import UpdateMode
from managers.table_manager import (
    TableConnectionManager,
    RECONCILIATIONS,
    OPERATOR_ALERTS,
    DONATIONS,
    FAILED_PAYMENTS,
    DISPUTES,
    TRANSFERS,
)
from models.reconciliation import (
    ReconciliationRecordTableEntity,
    OperatorAlertTableEntity,
    DonationTableEntity,
    FailedPaymentTableEntity,
    DisputeTableEntity,
    TransferTableEntity,
)
from models.query import QueryFilter


def save_record(record: ReconciliationRecordTableEntity) -> None:
    """Write the latest state of a reconciliation (audit trail)"""
    manager = TableConnectionManager()
    manager.get_table(RECONCILIATIONS).upsert_entity(record.model_dump(exclude_none=True), mode=UpdateMode.MERGE)


def get_record(item_id: str, authorization_id: str) -> Optional[ReconciliationRecordTableEntity]:
    manager = TableConnectionManager()
    try:
        entity = manager.get_table(RECONCILIATIONS).get_entity(partition_key=item_id, row_key=authorization_id)
        return ReconciliationRecordTableEntity.from_entity(entity)
    except ResourceNotFoundError:
        return None


def raise_alert(alert: OperatorAlertTableEntity) -> None:
    manager = TableConnectionManager()
    manager.get_table(OPERATOR_ALERTS).create_entity(alert.model_dump(exclude_none=True))


def list_alerts(authorization_id: str) -> List[OperatorAlertTableEntity]:
    manager = TableConnectionManager()
    qf = QueryFilter()
    qf.add_filter("PartitionKey eq @authorization_id", {"authorization_id": authorization_id})
    entities = manager.get_table(OPERATOR_ALERTS).query_entities(**qf.model_dump())
    return [OperatorAlertTableEntity.from_entity(e) for e in entities]


def record_donation(donation: DonationTableEntity) -> bool:
    """Insert the donation once per checkout session; False when already recorded"""
    manager = TableConnectionManager()
    try:
        manager.get_table(DONATIONS).create_entity(donation.model_dump(exclude_none=True))
        return True
    except ResourceExistsError:
        return False


def record_failed_payment(failed: FailedPaymentTableEntity) -> None:
    manager = TableConnectionManager()
    manager.get_table(FAILED_PAYMENTS).upsert_entity(failed.model_dump(exclude_none=True), mode=UpdateMode.REPLACE)


def record_dispute(dispute: DisputeTableEntity) -> None:
    manager = TableConnectionManager()
    manager.get_table(DISPUTES).upsert_entity(dispute.model_dump(exclude_none=True), mode=UpdateMode.REPLACE)


def record_transfer(transfer: TransferTableEntity) -> None:
    manager = TableConnectionManager()
    manager.get_table(TRANSFERS).upsert_entity(transfer.model_dump(exclude_none=True), mode=UpdateMode.REPLACE)
