import pytest

from stockpos.errors import ConflictError, ProductNotFound, ValidationError
from stockpos.models import Product, StockMovement
from stockpos.services import products_service
from stockpos.validation import ProductUpdate


def test_create_without_stock_is_out_of_stock(db_session):
    product = products_service.create_product(db_session, sku="EMPTY-1", name="Empty", selling_price_cents=500)

    assert product.current_stock == 0
    assert product.status == "out_of_stock"
    assert db_session.query(StockMovement).filter_by(product_id=product.id).count() == 0


def test_duplicate_sku_conflicts(db_session, product):
    with pytest.raises(ConflictError):
        products_service.create_product(db_session, sku="WID-001", name="Other", selling_price_cents=100)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"sku": "", "name": "x", "selling_price_cents": 1},
        {"sku": "A", "name": " ", "selling_price_cents": 1},
        {"sku": "A", "name": "x", "selling_price_cents": -1},
        {"sku": "A", "name": "x", "selling_price_cents": 1, "initial_stock": -3},
        {"sku": "A", "name": "x", "selling_price_cents": 1, "min_stock_level": 50, "max_stock_level": 10},
    ],
)
def test_create_validation(db_session, kwargs):
    with pytest.raises(ValidationError):
        products_service.create_product(db_session, **kwargs)
    assert db_session.query(Product).count() == 0


def test_update_changes_catalog_fields_only(db_session, product):
    updated = products_service.update_product(
        db_session, product.id, ProductUpdate(name="Widget XL", selling_price_cents=2500),
    )

    assert updated.name == "Widget XL"
    assert updated.selling_price_cents == 2500
    assert updated.current_stock == 10


def test_update_rejects_stock_field():
    with pytest.raises(ValidationError):
        ProductUpdate.from_payload({"name": "x", "current_stock": 500})


def test_update_checks_levels_against_current_values(db_session, product):
    # product has max_stock_level 100
    with pytest.raises(ValidationError):
        products_service.update_product(db_session, product.id, ProductUpdate(min_stock_level=150))


def test_update_sku_conflict(db_session, make_product):
    first = make_product(sku="A-1")
    make_product(sku="B-1")

    with pytest.raises(ConflictError):
        products_service.update_product(db_session, first.id, ProductUpdate(sku="B-1"))


def test_update_missing_product(db_session):
    with pytest.raises(ProductNotFound):
        products_service.update_product(db_session, 9999, ProductUpdate(name="x"))


@pytest.mark.parametrize("payload", [{"sku": 123}, {"name": ["Widget"]}, {"unit": 5}])
def test_update_rejects_non_string_text_fields(db_session, product, payload):
    with pytest.raises(ValidationError):
        products_service.update_product(db_session, product.id, ProductUpdate.from_payload(payload))

    assert db_session.get(Product, product.id).sku == "WID-001"


def test_create_rejects_non_string_sku(db_session):
    with pytest.raises(ValidationError):
        products_service.create_product(db_session, sku=123, name="x", selling_price_cents=1)


def test_list_products_search_and_status(db_session, make_product):
    make_product(sku="TEA-01", name="Green Tea")
    make_product(sku="TEA-02", name="Black Tea", stock=0)
    make_product(sku="COF-01", name="Coffee")

    teas = products_service.list_products(db_session, search="tea")
    assert [p.sku for p in teas["products"]] == ["TEA-02", "TEA-01"]

    in_stock_teas = products_service.list_products(db_session, search="TEA", status="active")
    assert in_stock_teas["total"] == 1

    assert products_service.list_products(db_session, status="all")["total"] == 3

    with pytest.raises(ValidationError):
        products_service.list_products(db_session, page=0)
