from typing import Dict, List, Optional, Tuple
from datetime import datetime, timezone
from azure.data.tables import TableEntity
from managers.table_manager import COURSES, ARTWORKS, BOOKS, PRODUCTS, ENROLLMENTS, SALES, PURCHASES
from models.entitlement import (
    ProvisionContext,
    ProvisionResult,
    EntitlementRef,
    Enrollment,
    EnrollmentTableEntity,
    SaleMark,
    SaleMarkTableEntity,
    PurchaseRecord,
    PurchaseRecordTableEntity,
)
from models.payment import ItemType
from repository import catalog as catalog_repo
from repository import entitlement as entitlement_repo
from repository import inventory as inventory_repo
from utils.errors import InvalidMetadata, InventoryExhausted, ItemNotFound, ItemUnavailable
import logging

logger = logging.getLogger(__name__)


class Provisioner:
    """Creates and reverses the entitlement for one kind of purchasable item.

    provision() is gated by a create-if-absent insert keyed by
    (itemId, authorizationId); everything it does to the item document after
    that insert happens only for the caller that won the insert.
    """

    item_table: str = ""
    entitlement_table: str = ""
    item_types: Tuple[ItemType, ...] = ()

    def provision(self, context: ProvisionContext) -> ProvisionResult:
        ref = EntitlementRef(
            table=self.entitlement_table,
            item_id=context.item_id,
            authorization_id=context.authorization_id,
            item_type=context.metadata.itemType,
        )
        # fast path for redeliveries; the insert below is what actually decides
        if self.find(context.item_id, context.authorization_id) is not None:
            return ProvisionResult(ref=ref, already_exists=True)

        try:
            item = catalog_repo.get_item(self.item_table, context.item_id)
        except ItemNotFound as e:
            e.authorization_id = context.authorization_id
            raise
        if item.get("deleted"):
            raise ItemNotFound(f"{self.item_table} item {context.item_id} was deleted",
                               item_id=context.item_id, authorization_id=context.authorization_id)

        entity = self.build_entitlement(context, item)
        if not entitlement_repo.provision_if_absent(self.entitlement_table, entity):
            return ProvisionResult(ref=ref, already_exists=True)

        try:
            ref.inventory_decremented = self.apply(context, item)
            if ref.inventory_decremented:
                entitlement_repo.mark_inventory_decremented(self.entitlement_table, ref.item_id, ref.authorization_id)
        except Exception:
            logger.warning(f"Provisioning {ref.table}/{ref.item_id}/{ref.authorization_id} failed, removing entitlement")
            if ref.inventory_decremented:
                self.rollback(ref)
            else:
                entitlement_repo.delete_entitlement(self.entitlement_table, ref.item_id, ref.authorization_id)
            raise

        return ProvisionResult(ref=ref)

    def rollback(self, ref: EntitlementRef) -> None:
        row = entitlement_repo.get_entitlement(ref.table, ref.item_id, ref.authorization_id)
        decremented = ref.inventory_decremented or bool(row and row.get("inventoryDecremented"))
        try:
            self.revert(ref, row, decremented)
        except ItemNotFound:
            logger.warning(f"{self.item_table} item {ref.item_id} disappeared before rollback, nothing to restore")
        entitlement_repo.delete_entitlement(ref.table, ref.item_id, ref.authorization_id)
        logger.info(f"Rolled back entitlement {ref.table}/{ref.item_id}/{ref.authorization_id}")

    def find(self, item_id: str, authorization_id: str) -> Optional[TableEntity]:
        return entitlement_repo.get_entitlement(self.entitlement_table, item_id, authorization_id)

    def build_entitlement(self, context: ProvisionContext, item: TableEntity) -> dict:
        raise NotImplementedError

    def apply(self, context: ProvisionContext, item: TableEntity) -> bool:
        """Update the item after the entitlement row exists; True when stock was decremented"""
        return False

    def revert(self, ref: EntitlementRef, row: Optional[TableEntity], inventory_decremented: bool) -> None:
        pass


class CourseProvisioner(Provisioner):
    item_table = COURSES
    entitlement_table = ENROLLMENTS
    item_types = (ItemType.COURSE,)

    def build_entitlement(self, context: ProvisionContext, item: TableEntity) -> dict:
        enrollment = Enrollment(
            courseId=context.item_id,
            userId=context.metadata.buyerId,
            paymentAuthorizationId=context.authorization_id,
        )
        return EnrollmentTableEntity.from_enrollment(enrollment).model_dump(exclude_none=True)

    def apply(self, context: ProvisionContext, item: TableEntity) -> bool:
        inventory_repo.adjust_counter(COURSES, context.item_id, "enrollments", 1)
        return False

    def revert(self, ref: EntitlementRef, row: Optional[TableEntity], inventory_decremented: bool) -> None:
        # the enrollment counter only moved if the enrollment row survived provisioning
        if row is not None:
            inventory_repo.adjust_counter(COURSES, ref.item_id, "enrollments", -1)


class SaleMarkProvisioner(Provisioner):
    """Artworks and books: a sale row plus sold/soldTo fields on the item document"""

    entitlement_table = SALES

    def is_unique(self, item: TableEntity, item_type: ItemType) -> bool:
        return item_type != ItemType.PRINT and not inventory_repo.is_finite_stock(item.get("stock"))

    def build_entitlement(self, context: ProvisionContext, item: TableEntity) -> dict:
        mark = SaleMark(
            itemId=context.item_id,
            itemType=context.metadata.itemType,
            soldTo=context.metadata.buyerId,
            paymentAuthorizationId=context.authorization_id,
            shippingAddress=context.shipping_address,
            amount=context.authorization.amount,
            currency=context.authorization.currency,
        )
        return SaleMarkTableEntity.from_sale_mark(mark).model_dump(exclude_none=True)

    def apply(self, context: ProvisionContext, item: TableEntity) -> bool:
        authorization_id = context.authorization_id
        shipping = context.shipping_address.model_dump_json(exclude_none=True) if context.shipping_address else ""
        decremented = False

        def mutate(entity: TableEntity) -> Optional[dict]:
            nonlocal decremented
            decremented = False
            if entity.get("paymentAuthorizationId") == authorization_id:
                return None
            changes = {
                "soldTo": context.metadata.buyerId,
                "paymentAuthorizationId": authorization_id,
                "shippingAddress": shipping,
                "soldAt": datetime.now(timezone.utc).isoformat(),
            }
            stock = entity.get("stock")
            if inventory_repo.is_finite_stock(stock):
                if stock <= 0:
                    raise InventoryExhausted(f"{self.item_table} item {context.item_id} is out of stock",
                                             item_id=context.item_id, authorization_id=authorization_id)
                changes["stock"] = stock - 1
                changes["sold"] = stock - 1 == 0
                decremented = True
            else:
                if self.is_unique(entity, context.metadata.itemType) and entity.get("sold"):
                    raise ItemUnavailable(f"{self.item_table} item {context.item_id} is already sold",
                                          item_id=context.item_id, authorization_id=authorization_id)
                changes["sold"] = True
            return changes

        inventory_repo.compare_and_swap(self.item_table, context.item_id, mutate)
        return decremented

    def revert(self, ref: EntitlementRef, row: Optional[TableEntity], inventory_decremented: bool) -> None:
        def mutate(entity: TableEntity) -> Optional[dict]:
            changes = {}
            if inventory_decremented:
                changes["stock"] = (entity.get("stock") or 0) + 1
                changes["sold"] = False
            if entity.get("paymentAuthorizationId") == ref.authorization_id:
                changes.update({
                    "sold": False,
                    "soldTo": "",
                    "paymentAuthorizationId": "",
                    "shippingAddress": "",
                    "soldAt": "",
                })
            return changes or None

        inventory_repo.compare_and_swap(self.item_table, ref.item_id, mutate)


class ArtworkProvisioner(SaleMarkProvisioner):
    item_table = ARTWORKS
    item_types = (ItemType.ORIGINAL, ItemType.PRINT)


class BookProvisioner(SaleMarkProvisioner):
    item_table = BOOKS
    item_types = (ItemType.BOOK,)


class ProductProvisioner(Provisioner):
    item_table = PRODUCTS
    entitlement_table = PURCHASES
    item_types = (ItemType.PRODUCT, ItemType.MERCHANDISE)

    def build_entitlement(self, context: ProvisionContext, item: TableEntity) -> dict:
        record = PurchaseRecord(
            productId=context.item_id,
            buyerId=context.metadata.buyerId,
            sellerId=context.metadata.artistId,
            price=context.authorization.amount,
            currency=context.authorization.currency,
            paymentAuthorizationId=context.authorization_id,
            shippingAddress=context.shipping_address,
        )
        return PurchaseRecordTableEntity.from_purchase_record(record).model_dump(exclude_none=True)

    def apply(self, context: ProvisionContext, item: TableEntity) -> bool:
        return inventory_repo.adjust_stock(PRODUCTS, context.item_id, -1) is not None

    def revert(self, ref: EntitlementRef, row: Optional[TableEntity], inventory_decremented: bool) -> None:
        if inventory_decremented:
            inventory_repo.adjust_stock(PRODUCTS, ref.item_id, 1)


PROVISIONERS: Dict[ItemType, Provisioner] = {}


def register(provisioner: Provisioner) -> Provisioner:
    for item_type in provisioner.item_types:
        PROVISIONERS[item_type] = provisioner
    return provisioner


for _provisioner in (CourseProvisioner(), ArtworkProvisioner(), BookProvisioner(), ProductProvisioner()):
    register(_provisioner)


def get_provisioner(item_type: ItemType) -> Provisioner:
    try:
        return PROVISIONERS[ItemType(item_type)]
    except (KeyError, ValueError):
        raise InvalidMetadata(f"No provisioner registered for item type {item_type}")


def all_provisioners() -> List[Provisioner]:
    unique: List[Provisioner] = []
    for provisioner in PROVISIONERS.values():
        if provisioner not in unique:
            unique.append(provisioner)
    return unique
