"""
Sale coordinator scenarios: create, complete, cancel and refund, with the
stock ledger checked after every step.
"""

from datetime import datetime

import pytest

from stockpos.errors import (
    InsufficientStock,
    InvalidStateTransition,
    ProductNotFound,
    SaleNotFound,
    ValidationError,
)
from stockpos.models import Product, Sale, SaleItem, StockMovement
from stockpos.services import products_service, reporting_service, sales_service
from stockpos.services.inventory_service import movements_for_reference
from stockpos.services.payment_service import list_payment_transactions
from stockpos.services.sales_service import CustomerInfo, PaymentFields, SaleItemRequest

from conftest import ACTOR_ID

NOW = datetime(2026, 10, 18, 9, 30)


def _create(db_session, items, payment=None, **kwargs):
    kwargs.setdefault("actor_id", ACTOR_ID)
    kwargs.setdefault("now", NOW)
    return sales_service.create_sale(
        db_session,
        CustomerInfo(name="Walk-in"),
        items,
        payment,
        **kwargs,
    )


def _stock(db_session, product_id):
    return db_session.get(Product, product_id).current_stock


class TestCreateSale:
    def test_unpaid_sale_is_pending_and_debits_stock(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])

        assert sale.invoice_number == "INV-20261018-0001"
        assert sale.total_amount_cents == 6000
        assert sale.final_amount_cents == 6000
        assert sale.status == "pending"
        assert sale.payment_status == "pending"
        assert sale.sold_by_user_id == ACTOR_ID
        assert sale.completed_at is None
        assert _stock(db_session, product.id) == 7

        movements = movements_for_reference(db_session, sale.id)
        assert len(movements) == 1
        assert movements[0].direction == "out"
        assert movements[0].quantity == 3
        assert movements[0].reference_kind == "sale"

        items = db_session.query(SaleItem).filter_by(sale_id=sale.id).all()
        assert len(items) == 1
        assert items[0].unit_price_cents == 2000
        assert items[0].total_price_cents == 6000

    def test_fully_paid_sale_is_completed_with_change(self, db_session, product):
        sale = _create(
            db_session,
            [SaleItemRequest(product.id, 3)],
            PaymentFields(amount_paid_cents=7000, payment_method="card"),
        )

        assert sale.status == "completed"
        assert sale.payment_status == "paid"
        assert sale.change_amount_cents == 1000
        assert sale.payment_method == "card"
        assert sale.completed_at == NOW

    def test_partially_paid_sale(self, db_session, product):
        sale = _create(
            db_session,
            [SaleItemRequest(product.id, 3)],
            PaymentFields(amount_paid_cents=2000),
        )

        assert sale.status == "pending"
        assert sale.payment_status == "partial"
        assert sale.change_amount_cents == 0

    def test_zero_total_unpaid_sale_is_pending(self, db_session, product):
        sale = _create(
            db_session,
            [SaleItemRequest(product.id, 1)],
            PaymentFields(discount_amount_cents=2000, amount_paid_cents=0),
        )

        assert sale.final_amount_cents == 0
        assert sale.status == "pending"
        assert sale.payment_status == "pending"
        assert sale.completed_at is None
        assert _stock(db_session, product.id) == 9

        completed = sales_service.complete_sale(db_session, sale.id, 100, actor_id=ACTOR_ID)
        assert completed.status == "completed"
        assert completed.change_amount_cents == 100

    def test_tax_rate_and_discount(self, db_session, product):
        sale = _create(
            db_session,
            [SaleItemRequest(product.id, 3)],
            PaymentFields(discount_amount_cents=500, tax_rate_bps=825),
        )

        # 6000 * 8.25% = 495
        assert sale.tax_amount_cents == 495
        assert sale.discount_amount_cents == 500
        assert sale.final_amount_cents == 6000 - 500 + 495

    def test_explicit_tax_overrides_default_rate(self, db_session, product):
        sale = _create(
            db_session,
            [SaleItemRequest(product.id, 1)],
            PaymentFields(tax_amount_cents=123),
            default_tax_rate_bps=1000,
        )
        assert sale.tax_amount_cents == 123

    def test_default_tax_rate_applies(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 1)], default_tax_rate_bps=1000)
        assert sale.tax_amount_cents == 200
        assert sale.final_amount_cents == 2200

    def test_unit_price_override(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 2, unit_price_cents=1500)])
        assert sale.total_amount_cents == 3000

    def test_multi_item_sale_debits_each_product(self, db_session, make_product):
        a = make_product(stock=5, price_cents=100)
        b = make_product(stock=8, price_cents=250)

        sale = _create(db_session, [SaleItemRequest(a.id, 2), SaleItemRequest(b.id, 4)])

        assert sale.total_amount_cents == 2 * 100 + 4 * 250
        assert _stock(db_session, a.id) == 3
        assert _stock(db_session, b.id) == 4
        assert len(movements_for_reference(db_session, sale.id)) == 2

    def test_invoice_numbers_increase(self, db_session, product):
        first = _create(db_session, [SaleItemRequest(product.id, 1)])
        second = _create(db_session, [SaleItemRequest(product.id, 1)])

        assert first.invoice_number == "INV-20261018-0001"
        assert second.invoice_number == "INV-20261018-0002"

    def test_insufficient_stock_on_later_item_rolls_back_everything(self, db_session, make_product):
        plenty = make_product(stock=10)
        scarce = make_product(stock=1, name="Scarce")

        with pytest.raises(InsufficientStock) as exc_info:
            _create(db_session, [SaleItemRequest(plenty.id, 2), SaleItemRequest(scarce.id, 2)])

        assert exc_info.value.product_name == "Scarce"
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert db_session.query(StockMovement).filter_by(direction="out").count() == 0
        assert _stock(db_session, plenty.id) == 10
        assert _stock(db_session, scarce.id) == 1

    def test_repeated_product_lines_are_checked_jointly(self, db_session, product):
        with pytest.raises(InsufficientStock):
            _create(db_session, [SaleItemRequest(product.id, 6), SaleItemRequest(product.id, 6)])

        assert _stock(db_session, product.id) == 10
        assert db_session.query(Sale).count() == 0

    def test_failed_sale_does_not_consume_an_invoice_number(self, db_session, product):
        with pytest.raises(InsufficientStock):
            _create(db_session, [SaleItemRequest(product.id, 50)])

        sale = _create(db_session, [SaleItemRequest(product.id, 1)])
        assert sale.invoice_number == "INV-20261018-0001"

    @pytest.mark.parametrize(
        "items",
        [
            [],
            [SaleItemRequest(1, 0)],
            [SaleItemRequest(1, -2)],
            [SaleItemRequest(1, 1, unit_price_cents=-5)],
        ],
    )
    def test_invalid_items(self, db_session, product, items):
        with pytest.raises(ValidationError):
            _create(db_session, items)
        assert db_session.query(Sale).count() == 0

    def test_invalid_payment_method(self, db_session, product):
        with pytest.raises(ValidationError):
            _create(db_session, [SaleItemRequest(product.id, 1)], PaymentFields(payment_method="barter"))

    def test_discount_larger_than_sale(self, db_session, product):
        with pytest.raises(ValidationError):
            _create(db_session, [SaleItemRequest(product.id, 1)], PaymentFields(discount_amount_cents=2001))
        assert _stock(db_session, product.id) == 10

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            _create(db_session, [SaleItemRequest(9999, 1)])

    def test_discontinued_product_is_not_sellable(self, db_session, product):
        products_service.discontinue_product(db_session, product.id)

        with pytest.raises(ValidationError):
            _create(db_session, [SaleItemRequest(product.id, 1)])
        assert _stock(db_session, product.id) == 10


class TestCompleteSale:
    def test_exact_payment_completes(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])

        completed = sales_service.complete_sale(db_session, sale.id, 6000, actor_id=ACTOR_ID)

        assert completed.status == "completed"
        assert completed.payment_status == "paid"
        assert completed.amount_paid_cents == 6000
        assert completed.change_amount_cents == 0
        assert completed.completed_at is not None
        # payment never moves stock
        assert _stock(db_session, product.id) == 7
        assert len(movements_for_reference(db_session, sale.id)) == 1

    def test_overpayment_returns_change(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])

        completed = sales_service.complete_sale(db_session, sale.id, 7000, "card", actor_id=ACTOR_ID)

        assert completed.change_amount_cents == 1000
        assert completed.payment_method == "card"

    def test_partial_payments_accumulate(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)], PaymentFields(amount_paid_cents=2000))

        partial = sales_service.complete_sale(db_session, sale.id, 1000, actor_id=ACTOR_ID)
        assert partial.status == "pending"
        assert partial.payment_status == "partial"
        assert partial.amount_paid_cents == 3000

        done = sales_service.complete_sale(db_session, sale.id, 3500, actor_id=ACTOR_ID)
        assert done.status == "completed"
        assert done.amount_paid_cents == 6500
        assert done.change_amount_cents == 500

    def test_second_completion_is_rejected(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])
        sales_service.complete_sale(db_session, sale.id, 6000, actor_id=ACTOR_ID)

        with pytest.raises(InvalidStateTransition):
            sales_service.complete_sale(db_session, sale.id, 6000, actor_id=ACTOR_ID)

        assert db_session.get(Sale, sale.id).amount_paid_cents == 6000

    def test_completion_of_cancelled_sale_is_rejected(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])
        sales_service.cancel_sale(db_session, sale.id, actor_id=ACTOR_ID)

        with pytest.raises(InvalidStateTransition):
            sales_service.complete_sale(db_session, sale.id, 6000, actor_id=ACTOR_ID)

    @pytest.mark.parametrize("amount", [0, -100, True])
    def test_non_positive_amount(self, db_session, product, amount):
        sale = _create(db_session, [SaleItemRequest(product.id, 1)])
        with pytest.raises(ValidationError):
            sales_service.complete_sale(db_session, sale.id, amount, actor_id=ACTOR_ID)

    def test_unknown_sale(self, db_session):
        with pytest.raises(SaleNotFound):
            sales_service.complete_sale(db_session, 404, 100, actor_id=ACTOR_ID)

    def test_payment_audit_is_recorded(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])
        results = []

        sales_service.complete_sale(db_session, sale.id, 6000, actor_id=ACTOR_ID, audit_listener=results.append)

        assert results[0].recorded is True
        transactions = list_payment_transactions(db_session, sale.id)
        assert len(transactions) == 1
        assert transactions[0].amount_cents == 6000
        assert transactions[0].processed_by_user_id == ACTOR_ID


class TestCancelAndRefund:
    def test_cancel_completed_sale_restores_stock(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])
        sales_service.complete_sale(db_session, sale.id, 6000, actor_id=ACTOR_ID)

        cancelled = sales_service.cancel_sale(db_session, sale.id, actor_id=99, now=NOW)

        assert cancelled.status == "cancelled"
        assert cancelled.payment_status == "refunded"
        assert cancelled.cancelled_by_user_id == 99
        assert cancelled.cancelled_at == NOW
        assert _stock(db_session, product.id) == 10

        movements = movements_for_reference(db_session, sale.id)
        assert [m.direction for m in movements] == ["out", "in"]
        assert movements[1].quantity == 3
        assert movements[1].reference_kind == "return"
        assert movements[1].note == "Sale cancellation - stock restored"
        assert reporting_service.reconcile_stock(db_session) == []

    def test_cancel_pending_sale(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 4)])

        sales_service.cancel_sale(db_session, sale.id, actor_id=ACTOR_ID)

        assert _stock(db_session, product.id) == 10

    def test_cancel_twice_is_rejected_and_stock_restored_once(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])
        sales_service.cancel_sale(db_session, sale.id, actor_id=ACTOR_ID)

        with pytest.raises(InvalidStateTransition) as exc_info:
            sales_service.cancel_sale(db_session, sale.id, actor_id=ACTOR_ID)

        assert str(exc_info.value) == "Sale is already cancelled"
        assert _stock(db_session, product.id) == 10

    def test_refund_appends_timestamped_note(self, db_session, product):
        sale = _create(
            db_session,
            [SaleItemRequest(product.id, 3)],
            PaymentFields(amount_paid_cents=6000, notes="Gift wrap"),
        )

        refunded = sales_service.refund_sale(
            db_session, sale.id, actor_id=ACTOR_ID, notes="Customer changed mind", now=NOW,
        )

        assert refunded.status == "refunded"
        assert refunded.payment_status == "refunded"
        assert refunded.refunded_by_user_id == ACTOR_ID
        assert refunded.notes == "Gift wrap\nRefunded on 2026-10-18T09:30:00Z: Customer changed mind"
        assert _stock(db_session, product.id) == 10

    def test_refund_without_prior_notes(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 1)])

        refunded = sales_service.refund_sale(db_session, sale.id, actor_id=ACTOR_ID, now=NOW)

        assert refunded.notes == "Refunded on 2026-10-18T09:30:00Z:"

    def test_refund_after_cancel_is_rejected(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])
        sales_service.cancel_sale(db_session, sale.id, actor_id=ACTOR_ID)

        with pytest.raises(InvalidStateTransition):
            sales_service.refund_sale(db_session, sale.id, actor_id=ACTOR_ID)

        assert _stock(db_session, product.id) == 10

    def test_cancel_credits_discontinued_product(self, db_session, product):
        sale = _create(db_session, [SaleItemRequest(product.id, 3)])
        products_service.discontinue_product(db_session, product.id)

        sales_service.cancel_sale(db_session, sale.id, actor_id=ACTOR_ID)

        refreshed = db_session.get(Product, product.id)
        assert refreshed.current_stock == 10
        assert refreshed.status == "discontinued"

    def test_ledger_reconciles_after_mixed_activity(self, db_session, make_product):
        a = make_product(stock=20)
        b = make_product(stock=5)

        s1 = _create(db_session, [SaleItemRequest(a.id, 3), SaleItemRequest(b.id, 5)])
        s2 = _create(db_session, [SaleItemRequest(a.id, 7)], PaymentFields(amount_paid_cents=99999))
        sales_service.complete_sale(db_session, s1.id, 100000, actor_id=ACTOR_ID)
        sales_service.refund_sale(db_session, s2.id, actor_id=ACTOR_ID)

        assert _stock(db_session, a.id) == 17
        assert _stock(db_session, b.id) == 0
        assert reporting_service.reconcile_stock(db_session) == []


def test_get_sale(db_session, product):
    sale = _create(db_session, [SaleItemRequest(product.id, 2)])

    loaded = sales_service.get_sale(db_session, sale.id)
    payload = loaded.to_dict(include_items=True)

    assert payload["invoice_number"] == "INV-20261018-0001"
    assert payload["items"][0]["product_name"] == "Widget"
    assert payload["items"][0]["sku"] == "WID-001"

    with pytest.raises(SaleNotFound):
        sales_service.get_sale(db_session, 12345)


def test_compute_tax_rounds_half_up():
    assert sales_service.compute_tax_cents(1000, 825) == 83  # 82.5
    assert sales_service.compute_tax_cents(1000, 0) == 0
    assert sales_service.compute_tax_cents(999, 1000) == 100  # 99.9
