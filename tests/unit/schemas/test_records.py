# tests/unit/schemas/test_records.py
import pytest
from pydantic import ValidationError

from stocksync.core.enums import InventoryDataset, InventoryUnit, MembershipType, TransactionSource
from stocksync.schemas.group import InventoryGroup, filter_groups, normalize_groups
from stocksync.schemas.product import Product, normalize_products
from stocksync.schemas.transaction import Transaction, normalize_transactions


# --- Products ---

def test_product_defaults_filled_from_dataset():
    product = Product.from_dataset(InventoryDataset.CATALOG, "abc", {})

    assert product.id == "abc"
    assert product.product_id == "abc"
    assert product.product_name == "Unknown Product"
    assert product.stock == 0.0
    assert product.unit == InventoryUnit.PCS
    assert product.updated_at == 0


def test_manual_products_default_to_piece():
    product = Product.from_dataset(InventoryDataset.MANUAL, "m", {"productName": "Nails"})
    assert product.unit == InventoryUnit.PIECE


def test_product_reads_camel_case_store_fields():
    product = Product.from_dataset(
        InventoryDataset.MANUAL,
        "m1",
        {"productName": "Cement", "productId": "CEM-1", "stock": "12.5", "unit": " KG ", "updatedAt": 99, "imageUrl": "x"},
    )

    assert product.product_id == "CEM-1"
    assert product.stock == 12.5
    assert product.unit == InventoryUnit.KG
    assert product.updated_at == 99
    assert product.image_url == "x"


def test_product_is_immutable():
    product = Product.from_dataset(InventoryDataset.MANUAL, "m1", {"stock": 1})
    with pytest.raises(ValidationError):
        product.stock = 5


def test_product_rejects_negative_stock():
    with pytest.raises(ValidationError):
        Product.from_dataset(InventoryDataset.MANUAL, "m1", {"stock": -1})


def test_product_to_store_uses_store_field_names():
    product = Product.from_dataset(InventoryDataset.MANUAL, "m1", {"productName": "Sand", "stock": 3})
    stored = product.to_store()

    assert "id" not in stored
    assert stored["productName"] == "Sand"
    assert stored["stock"] == 3.0
    assert stored["unit"] == "piece"
    assert "rate" not in stored


def test_normalize_products_skips_malformed_records(caplog):
    raw = {
        "ok": {"productName": "Good", "stock": 2},
        "neg": {"productName": "Negative", "stock": -4},
        "nan": {"productName": "Text", "stock": "lots"},
        "unit": {"productName": "Odd unit", "unit": "bags"},
        "scalar": "not a record",
    }

    products = normalize_products(raw, InventoryDataset.MANUAL)

    assert [p.id for p in products] == ["ok"]
    assert "Skipping malformed manual product" in caplog.text


def test_normalize_products_sorts_by_last_update_descending():
    raw = {
        "a": {"updatedAt": 1},
        "b": {"updatedAt": 3},
        "c": {"updatedAt": 2},
        "d": {"updatedAt": 3},
    }
    products = normalize_products(raw, InventoryDataset.CATALOG)
    # Equal timestamps keep key order
    assert [p.id for p in products] == ["b", "d", "c", "a"]


def test_normalize_products_handles_absent_collection():
    assert normalize_products(None, InventoryDataset.MANUAL) == []
    assert normalize_products(["x"], InventoryDataset.MANUAL) == []


def test_product_matches_name_or_code():
    product = Product.from_dataset(InventoryDataset.MANUAL, "m1", {"productName": "Portland Cement", "productId": "CEM-1"})
    assert product.matches("cement")
    assert product.matches("cem-1")
    assert not product.matches("sand")


# --- Transactions ---

def test_normalize_transactions_newest_first_and_fills_product():
    raw = {
        "-k1": {"quantityChange": 5, "createdAt": 100, "productName": "Cement"},
        "-k2": {"quantityChange": -2, "createdAt": 300},
        "-k3": {"quantityChange": 1, "createdAt": 200, "unit": "kg"},
    }

    transactions = normalize_transactions(raw, "m1")

    assert [t.id for t in transactions] == ["-k2", "-k3", "-k1"]
    assert all(t.product_id == "m1" for t in transactions)
    assert transactions[0].product_name == "Unknown Product"
    assert transactions[0].source == TransactionSource.MANUAL
    assert transactions[1].unit == InventoryUnit.KG
    assert transactions[2].is_increase


def test_transaction_ties_broken_by_key_order():
    raw = {
        "-a": {"quantityChange": 1, "createdAt": 100},
        "-b": {"quantityChange": 1, "createdAt": 100},
    }
    assert [t.id for t in normalize_transactions(raw, "p")] == ["-b", "-a"]


def test_transaction_rejects_non_finite_quantity():
    with pytest.raises(ValidationError):
        Transaction(id="x", quantity_change=float("inf"))
    with pytest.raises(ValidationError):
        Transaction(id="x", quantity_change=True)


def test_transaction_round_trips_through_store_shape():
    transaction = Transaction(id="-k", product_id="m1", quantity_change=-2.5, note="sold", created_at=5)
    stored = transaction.to_store()

    assert stored == {
        "productId": "m1",
        "productName": "Unknown Product",
        "quantityChange": -2.5,
        "source": "manual",
        "note": "sold",
        "createdAt": 5,
    }
    assert Transaction.from_store("-k", stored) == transaction


# --- Groups ---

GROUPS_RAW = {
    "g1": {
        "name": "Mixed",
        "items": [
            {"productId": "m1", "inventoryType": "manual"},
            {"productId": "c1", "inventoryType": "product"},
        ],
    },
    "g2": {
        "name": "Catalog only",
        # Arrays with gaps come back as index-keyed mappings
        "items": {"0": {"productId": "c1", "inventoryType": "product"}, "10": {"productId": "c2", "inventoryType": "product"}, "2": "junk"},
    },
    "g3": {"name": "  "},
}


def test_normalize_groups_accepts_list_and_mapping_items():
    groups = {g.id: g for g in normalize_groups(GROUPS_RAW)}

    assert [m.product_id for m in groups["g1"].items] == ["m1", "c1"]
    assert [m.product_id for m in groups["g2"].items] == ["c1", "c2"]
    assert groups["g3"].name == "Unnamed Group"
    assert groups["g3"].items == []


def test_filter_groups_prunes_members_by_membership():
    groups = normalize_groups(GROUPS_RAW)

    manual = filter_groups(groups, MembershipType.MANUAL)
    catalog = filter_groups(groups, MembershipType.PRODUCT)

    assert [g.id for g in manual] == ["g1"]
    assert manual[0].member_ids() == {"m1"}
    assert [g.id for g in catalog] == ["g1", "g2"]
    assert catalog[0].member_ids() == {"c1"}


def test_filtering_does_not_change_source_group():
    group = InventoryGroup.from_store("g1", GROUPS_RAW["g1"])
    group.restricted_to(MembershipType.MANUAL)
    assert len(group.items) == 2
