import threading
import pytest
from managers.table_manager import COURSES, ARTWORKS, BOOKS, PRODUCTS, ENROLLMENTS, SALES, PURCHASES
from models.entitlement import ProvisionContext
from models.payment import ItemType, PaymentAuthorization, PurchaseMetadata, UNLIMITED_STOCK
from services.provisioners import (
    Provisioner,
    CourseProvisioner,
    ArtworkProvisioner,
    BookProvisioner,
    ProductProvisioner,
    get_provisioner,
    all_provisioners,
)
from unittest.mock import patch
from utils.errors import InvalidMetadata, InventoryExhausted, ItemNotFound, ItemUnavailable


def context(item_id: str, item_type: ItemType, authorization_id: str = "pi_1", buyer_id: str = "u1") -> ProvisionContext:
    return ProvisionContext(
        authorization=PaymentAuthorization(id=authorization_id, status="requires_capture", amount=2500),
        metadata=PurchaseMetadata(itemId=item_id, itemType=item_type, buyerId=buyer_id, artistId="a1"),
    )


# (item table, entitlement table, item type, seeded item fields)
KINDS = {
    "course": (COURSES, ENROLLMENTS, ItemType.COURSE, {"enrollments": 4}),
    "original": (ARTWORKS, SALES, ItemType.ORIGINAL, {"sold": False}),
    "print": (ARTWORKS, SALES, ItemType.PRINT, {"stock": 3, "sold": False}),
    "book": (BOOKS, SALES, ItemType.BOOK, {"stock": 1, "sold": False}),
    "product": (PRODUCTS, PURCHASES, ItemType.PRODUCT, {"stock": 5}),
    "unlimited product": (PRODUCTS, PURCHASES, ItemType.MERCHANDISE, {"stock": UNLIMITED_STOCK}),
}


class TestRegistry:

    @pytest.mark.parametrize("item_type,expected", [
        (ItemType.COURSE, CourseProvisioner),
        (ItemType.ORIGINAL, ArtworkProvisioner),
        (ItemType.PRINT, ArtworkProvisioner),
        (ItemType.BOOK, BookProvisioner),
        (ItemType.PRODUCT, ProductProvisioner),
        (ItemType.MERCHANDISE, ProductProvisioner),
    ])
    def test_every_item_type_has_a_provisioner(self, item_type, expected):
        assert isinstance(get_provisioner(item_type), expected)

    def test_unknown_item_type(self):
        with pytest.raises(InvalidMetadata):
            get_provisioner("sticker")

    def test_all_provisioners_are_distinct(self):
        assert len(all_provisioners()) == 4


class TestRollback:
    """provision() followed by rollback() leaves the item exactly as it was"""

    @pytest.mark.parametrize("kind", list(KINDS))
    def test_rollback_restores_item(self, table_service, kind):
        item_table, entitlement_table, item_type, fields = KINDS[kind]
        table_service.seed_item(item_table, "item1", artistId="a1", **fields)
        before = table_service.item(item_table, "item1")
        provisioner = get_provisioner(item_type)

        result = provisioner.provision(context("item1", item_type))
        assert not result.already_exists
        assert len(table_service.rows(entitlement_table)) == 1

        provisioner.rollback(result.ref)

        assert table_service.rows(entitlement_table) == []
        after = table_service.item(item_table, "item1")
        for field, value in before.items():
            assert after[field] == value, field
        assert not after.get("soldTo")
        assert not after.get("paymentAuthorizationId")

    def test_rollback_uses_persisted_decrement_flag(self, table_service):
        table_service.seed_item(PRODUCTS, "p1", stock=2)
        provisioner = get_provisioner(ItemType.PRODUCT)
        result = provisioner.provision(context("p1", ItemType.PRODUCT))
        assert table_service.rows(PURCHASES)[0]["inventoryDecremented"] is True

        # a ref rebuilt without the in-memory flag still restores stock
        ref = result.ref.model_copy(update={"inventory_decremented": False})
        provisioner.rollback(ref)

        assert table_service.item(PRODUCTS, "p1")["stock"] == 2

    def test_rollback_after_item_deleted(self, table_service):
        table_service.seed_item(COURSES, "c1", enrollments=0)
        provisioner = get_provisioner(ItemType.COURSE)
        result = provisioner.provision(context("c1", ItemType.COURSE))
        table_service.table(COURSES).delete_entity(partition_key="item", row_key="c1")

        provisioner.rollback(result.ref)

        assert table_service.rows(ENROLLMENTS) == []

    def test_rollback_does_not_clear_another_buyers_sale(self, table_service):
        table_service.seed_item(ARTWORKS, "print1", stock=5)
        provisioner = get_provisioner(ItemType.PRINT)
        first = provisioner.provision(context("print1", ItemType.PRINT, "pi_1", "u1"))
        provisioner.provision(context("print1", ItemType.PRINT, "pi_2", "u2"))

        provisioner.rollback(first.ref)

        item = table_service.item(ARTWORKS, "print1")
        assert item["stock"] == 4
        assert item["soldTo"] == "u2"
        assert item["paymentAuthorizationId"] == "pi_2"


class TestProvision:

    def test_second_call_reports_existing(self, table_service):
        table_service.seed_item(COURSES, "c1", enrollments=0)
        provisioner = get_provisioner(ItemType.COURSE)

        first = provisioner.provision(context("c1", ItemType.COURSE))
        second = provisioner.provision(context("c1", ItemType.COURSE))

        assert not first.already_exists
        assert second.already_exists
        assert table_service.item(COURSES, "c1")["enrollments"] == 1

    def test_deleted_item(self, table_service):
        table_service.seed_item(COURSES, "c1", deleted=True)

        with pytest.raises(ItemNotFound) as exc_info:
            get_provisioner(ItemType.COURSE).provision(context("c1", ItemType.COURSE, "pi_9"))

        assert exc_info.value.authorization_id == "pi_9"
        assert table_service.rows(ENROLLMENTS) == []

    def test_last_unit_goes_to_one_buyer(self, table_service):
        table_service.seed_item(PRODUCTS, "p1", stock=1)
        provisioner = get_provisioner(ItemType.PRODUCT)

        provisioner.provision(context("p1", ItemType.PRODUCT, "pi_1", "u1"))
        with pytest.raises(InventoryExhausted):
            provisioner.provision(context("p1", ItemType.PRODUCT, "pi_2", "u2"))

        assert table_service.item(PRODUCTS, "p1")["stock"] == 0
        assert [r["RowKey"] for r in table_service.rows(PURCHASES)] == ["pi_1"]

    def test_last_print_marks_sold(self, table_service):
        table_service.seed_item(ARTWORKS, "print1", stock=1, sold=False)

        get_provisioner(ItemType.PRINT).provision(context("print1", ItemType.PRINT))

        item = table_service.item(ARTWORKS, "print1")
        assert item["stock"] == 0
        assert item["sold"] is True

    def test_original_cannot_be_sold_twice(self, table_service):
        table_service.seed_item(ARTWORKS, "art1", sold=False)
        provisioner = get_provisioner(ItemType.ORIGINAL)

        provisioner.provision(context("art1", ItemType.ORIGINAL, "pi_1", "u1"))
        with pytest.raises(ItemUnavailable):
            provisioner.provision(context("art1", ItemType.ORIGINAL, "pi_2", "u2"))

        assert table_service.item(ARTWORKS, "art1")["soldTo"] == "u1"
        assert [r["RowKey"] for r in table_service.rows(SALES)] == ["pi_1"]

    def test_redelivery_after_sellout_is_still_a_duplicate(self, table_service):
        table_service.seed_item(BOOKS, "b1", stock=1)
        provisioner = get_provisioner(ItemType.BOOK)

        provisioner.provision(context("b1", ItemType.BOOK))
        again = provisioner.provision(context("b1", ItemType.BOOK))

        assert again.already_exists

    def test_failure_after_decrement_restores_stock(self, table_service):
        table_service.seed_item(PRODUCTS, "p1", stock=2)
        provisioner = get_provisioner(ItemType.PRODUCT)

        with patch("services.provisioners.entitlement_repo.mark_inventory_decremented",
                   side_effect=RuntimeError("table down")):
            with pytest.raises(RuntimeError):
                provisioner.provision(context("p1", ItemType.PRODUCT))

        assert table_service.item(PRODUCTS, "p1")["stock"] == 2
        assert table_service.rows(PURCHASES) == []

        # the next delivery provisions from scratch
        assert not provisioner.provision(context("p1", ItemType.PRODUCT)).already_exists
        assert table_service.item(PRODUCTS, "p1")["stock"] == 1


class TestConcurrency:

    def test_gate_admits_one_of_many(self, table_service):
        """With the fast path disabled every thread reaches the insert; only one wins it"""
        table_service.seed_item(COURSES, "c1", enrollments=0)
        provisioner = get_provisioner(ItemType.COURSE)
        barrier = threading.Barrier(8, timeout=5)
        results = []

        def run():
            barrier.wait()
            results.append(provisioner.provision(context("c1", ItemType.COURSE)))

        with patch.object(Provisioner, "find", return_value=None):
            threads = [threading.Thread(target=run) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert sum(not r.already_exists for r in results) == 1
        assert len(table_service.rows(ENROLLMENTS)) == 1
        assert table_service.item(COURSES, "c1")["enrollments"] == 1

    def test_different_buyers_share_stock_without_lost_updates(self, table_service):
        table_service.seed_item(PRODUCTS, "p1", stock=10)
        provisioner = get_provisioner(ItemType.PRODUCT)
        barrier = threading.Barrier(6, timeout=5)

        def run(i):
            barrier.wait()
            provisioner.provision(context("p1", ItemType.PRODUCT, f"pi_{i}", f"u{i}"))

        threads = [threading.Thread(target=run, args=(i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert table_service.item(PRODUCTS, "p1")["stock"] == 4
        assert len(table_service.rows(PURCHASES)) == 6
