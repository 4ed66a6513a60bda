"""
Sales order state machine tests.

Verifies:
- DRAFT editing: merge on re-add, price override, update, remove
- Totals always satisfy price - cost == profit
- Confirm decrements every line once, all-or-nothing
- Cancel/return restore stock exactly once
- Terminal and post-confirm transitions fail with InvalidState
"""

import pytest

from vacadmin.errors import (
    ConflictError,
    EmptyOrderError,
    ForbiddenError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from vacadmin.models import SalesOrderLine, StockMovement
from vacadmin.services import sales_service, stock_ledger


def _assert_totals_consistent(order):
    assert order.total_price_cents - order.total_cost_cents == order.profit_cents
    assert order.total_price_cents == sum(l.subtotal_cents for l in order.lines)
    for line in order.lines:
        assert line.subtotal_cents == line.unit_price_cents * line.quantity
        assert line.line_profit_cents == line.subtotal_cents - line.unit_cost_cents * line.quantity


# =============================================================================
# DRAFT LIFECYCLE
# =============================================================================


class TestStartSale:
    def test_start_sale_creates_empty_draft(self, db_session, staff):
        order = sales_service.start_sale(staff.id, customer_name="Khun Somchai")

        assert order.status == "DRAFT"
        assert order.lines == []
        assert order.total_price_cents == 0
        assert order.profit_cents == 0
        assert order.customer_name == "Khun Somchai"
        assert order.order_number.startswith("SO-")
        assert order.order_number.endswith("-0001")

    def test_order_numbers_are_sequential(self, db_session, staff):
        first = sales_service.start_sale(staff.id)
        second = sales_service.start_sale(staff.id)
        assert first.order_number.endswith("-0001")
        assert second.order_number.endswith("-0002")

    def test_supplied_order_number_must_be_unique(self, db_session, staff):
        sales_service.start_sale(staff.id, order_number="LAZ-1001")
        with pytest.raises(ConflictError):
            sales_service.start_sale(staff.id, order_number="LAZ-1001")

    def test_inactive_actor_cannot_start(self, db_session, inactive_staff):
        with pytest.raises(ForbiddenError):
            sales_service.start_sale(inactive_staff.id)


class TestDraftEditing:
    def test_add_item_snapshots_product(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        order = sales_service.add_item(order.id, "HEPA-01", 2, user_id=staff.id)

        line = order.lines[0]
        assert line.product_sku == "HEPA-01"
        assert line.product_barcode == "8850001000011"
        assert line.unit_cost_cents == 1000
        assert line.unit_price_cents == 2000
        assert order.total_price_cents == 4000
        assert order.total_cost_cents == 2000
        _assert_totals_consistent(order)

    def test_adding_same_product_twice_merges_lines(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, filter_product.id, 1, user_id=staff.id)
        order = sales_service.add_item(order.id, "HEPA-01", 2, user_id=staff.id)

        assert len(order.lines) == 1
        assert order.lines[0].quantity == 3
        assert db_session.query(SalesOrderLine).filter_by(order_id=order.id).count() == 1
        _assert_totals_consistent(order)

    def test_scan_barcode_adds_one_unit(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.scan_barcode(order.id, "8850001000011", user_id=staff.id)
        order = sales_service.scan_barcode(order.id, "8850001000011", user_id=staff.id)

        assert len(order.lines) == 1
        assert order.lines[0].quantity == 2

    def test_price_override_on_add_and_merge(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        order = sales_service.add_item(order.id, "HEPA-01", 1, 1800, user_id=staff.id)
        assert order.lines[0].unit_price_cents == 1800

        order = sales_service.add_item(order.id, "HEPA-01", 1, 1500, user_id=staff.id)
        assert order.lines[0].unit_price_cents == 1500
        assert order.total_price_cents == 3000
        assert order.profit_cents == 1000
        _assert_totals_consistent(order)

    def test_add_item_availability_is_checked_cumulatively(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 4, user_id=staff.id)

        with pytest.raises(InsufficientStockError):
            sales_service.add_item(order.id, "HEPA-01", 2, user_id=staff.id)

        order = sales_service.get_order(order.id)
        assert order.lines[0].quantity == 4
        assert stock_ledger.get_on_hand(filter_product.id) == 5

    def test_add_item_does_not_touch_stock(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 5, user_id=staff.id)
        assert stock_ledger.get_on_hand(filter_product.id) == 5
        assert db_session.query(StockMovement).count() == 0

    def test_unknown_product(self, db_session, staff):
        order = sales_service.start_sale(staff.id)
        with pytest.raises(NotFoundError):
            sales_service.add_item(order.id, "NOPE-404", 1, user_id=staff.id)

    def test_inactive_product_is_not_found(self, db_session, staff, filter_product):
        filter_product.is_active = False
        db_session.commit()

        order = sales_service.start_sale(staff.id)
        with pytest.raises(NotFoundError):
            sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)

    @pytest.mark.parametrize("qty", [0, -2, 1.5])
    def test_invalid_quantity(self, db_session, staff, filter_product, qty):
        order = sales_service.start_sale(staff.id)
        with pytest.raises(ValidationError):
            sales_service.add_item(order.id, "HEPA-01", qty, user_id=staff.id)

    def test_negative_price_rejected(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        with pytest.raises(ValidationError):
            sales_service.add_item(order.id, "HEPA-01", 1, -1, user_id=staff.id)

    def test_update_item_quantity_and_price(self, db_session, staff, filter_product, brush_product):
        order = sales_service.start_sale(staff.id)
        order = sales_service.add_item(order.id, "BRUSH-02", 2, user_id=staff.id)
        line_id = order.lines[0].id

        order = sales_service.update_item(line_id, user_id=staff.id, quantity=4, unit_price_cents=700)
        line = order.lines[0]
        assert line.quantity == 4
        assert line.unit_price_cents == 700
        assert line.unit_cost_cents == 300
        assert order.total_price_cents == 2800
        assert order.profit_cents == 2800 - 1200
        _assert_totals_consistent(order)

    def test_update_item_beyond_stock(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        order = sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)
        with pytest.raises(InsufficientStockError):
            sales_service.update_item(order.lines[0].id, user_id=staff.id, quantity=6)

    def test_remove_item_recomputes_totals(self, db_session, staff, filter_product, brush_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)
        order = sales_service.add_item(order.id, "BRUSH-02", 2, user_id=staff.id)
        brush_line_id = next(l.id for l in order.lines if l.product_sku == "BRUSH-02")

        order = sales_service.remove_item(brush_line_id, user_id=staff.id)
        assert [l.product_sku for l in order.lines] == ["HEPA-01"]
        assert order.total_price_cents == 2000
        assert order.total_cost_cents == 1000
        assert db_session.get(SalesOrderLine, brush_line_id) is None
        _assert_totals_consistent(order)

    def test_removed_line_cannot_be_removed_or_updated_again(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        order = sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)
        line_id = order.lines[0].id
        sales_service.remove_item(line_id, user_id=staff.id)

        with pytest.raises(NotFoundError):
            sales_service.remove_item(line_id, user_id=staff.id)
        with pytest.raises(NotFoundError):
            sales_service.update_item(line_id, user_id=staff.id, quantity=2)
        assert sales_service.get_order(order.id).lines == []

    def test_unknown_line(self, db_session, staff):
        with pytest.raises(NotFoundError):
            sales_service.update_item(31337, user_id=staff.id, quantity=1)
        with pytest.raises(NotFoundError):
            sales_service.remove_item(31337, user_id=staff.id)

    def test_update_order_metadata(self, db_session, staff):
        order = sales_service.start_sale(staff.id)
        order = sales_service.update_order(order.id, user_id=staff.id, customer_phone="0812345678", notes="Gift")
        assert order.customer_phone == "0812345678"
        assert order.notes == "Gift"


# =============================================================================
# CONFIRM
# =============================================================================


class TestConfirm:
    def test_confirm_decrements_stock_and_keeps_totals(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 3, user_id=staff.id)

        order = sales_service.confirm_sale(order.id, user_id=staff.id, payment_method="CASH")

        assert order.status == "CONFIRMED"
        assert order.confirmed_at is not None
        assert order.payment_method == "CASH"
        assert stock_ledger.get_on_hand(filter_product.id) == 2
        assert order.total_cost_cents == 3000
        assert order.total_price_cents == 6000
        assert order.profit_cents == 3000

        movement = db_session.query(StockMovement).one()
        assert movement.movement_type == "SALE_CONFIRM"
        assert movement.quantity_delta == -3
        assert movement.reference_id == order.id

    def test_empty_order_cannot_be_confirmed(self, db_session, staff):
        order = sales_service.start_sale(staff.id)
        with pytest.raises(EmptyOrderError):
            sales_service.confirm_sale(order.id, user_id=staff.id)
        assert sales_service.get_order(order.id).status == "DRAFT"

    def test_confirm_is_all_or_nothing(self, db_session, staff, filter_product, brush_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 3, user_id=staff.id)
        sales_service.add_item(order.id, "BRUSH-02", 4, user_id=staff.id)

        # Shelf shrinks after the advisory add-time check
        brush_product.stock_qty = 1
        db_session.commit()

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.confirm_sale(order.id, user_id=staff.id)

        assert exc.value.details["product_id"] == brush_product.id
        assert stock_ledger.get_on_hand(filter_product.id) == 5
        assert stock_ledger.get_on_hand(brush_product.id) == 1
        assert sales_service.get_order(order.id).status == "DRAFT"
        assert db_session.query(StockMovement).count() == 0

    def test_second_confirm_fails_without_double_decrement(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 2, user_id=staff.id)
        sales_service.confirm_sale(order.id, user_id=staff.id)

        with pytest.raises(InvalidStateError):
            sales_service.confirm_sale(order.id, user_id=staff.id)
        assert stock_ledger.get_on_hand(filter_product.id) == 3

    def test_lines_frozen_after_confirm(self, db_session, staff, filter_product, brush_product):
        order = sales_service.start_sale(staff.id)
        order = sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)
        line_id = order.lines[0].id
        sales_service.confirm_sale(order.id, user_id=staff.id)

        with pytest.raises(InvalidStateError):
            sales_service.add_item(order.id, "BRUSH-02", 1, user_id=staff.id)
        with pytest.raises(InvalidStateError):
            sales_service.update_item(line_id, user_id=staff.id, quantity=2)
        with pytest.raises(InvalidStateError):
            sales_service.remove_item(line_id, user_id=staff.id)

    def test_unknown_order(self, db_session, staff):
        with pytest.raises(NotFoundError):
            sales_service.confirm_sale(424242, user_id=staff.id)


# =============================================================================
# CANCEL / RETURN
# =============================================================================


class TestCancel:
    def test_cancel_draft_has_no_stock_effect(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 2, user_id=staff.id)

        order = sales_service.cancel_order(order.id, user_id=staff.id, reason="Customer left")

        assert order.status == "CANCELED"
        assert order.canceled_by_user_id == staff.id
        assert order.cancellation_reason == "Customer left"
        assert stock_ledger.get_on_hand(filter_product.id) == 5
        assert db_session.query(StockMovement).count() == 0

    def test_cancel_confirmed_round_trip(self, db_session, staff, mod, filter_product, brush_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 3, user_id=staff.id)
        sales_service.add_item(order.id, "BRUSH-02", 7, user_id=staff.id)
        sales_service.confirm_sale(order.id, user_id=staff.id)
        assert stock_ledger.get_on_hand(filter_product.id) == 2
        assert stock_ledger.get_on_hand(brush_product.id) == 3

        order = sales_service.cancel_order(order.id, user_id=mod.id, reason="Wrong model")

        assert order.status == "CANCELED"
        assert stock_ledger.get_on_hand(filter_product.id) == 5
        assert stock_ledger.get_on_hand(brush_product.id) == 10

        with pytest.raises(InvalidStateError):
            sales_service.cancel_order(order.id, user_id=mod.id)
        assert stock_ledger.get_on_hand(filter_product.id) == 5
        assert db_session.query(StockMovement).filter_by(movement_type="SALE_CANCEL").count() == 2

    def test_staff_retried_cancel_reports_invalid_state(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)
        sales_service.cancel_order(order.id, user_id=staff.id)

        with pytest.raises(InvalidStateError) as exc:
            sales_service.cancel_order(order.id, user_id=staff.id)

        assert exc.value.details["status"] == "CANCELED"
        assert stock_ledger.get_on_hand(filter_product.id) == 5

    def test_staff_cancel_of_returned_order_reports_invalid_state(self, db_session, staff, mod, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 2, user_id=staff.id)
        sales_service.confirm_sale(order.id, user_id=staff.id)
        sales_service.return_order(order.id, user_id=mod.id)

        with pytest.raises(InvalidStateError):
            sales_service.cancel_order(order.id, user_id=staff.id)
        with pytest.raises(InvalidStateError):
            sales_service.update_order(order.id, user_id=staff.id, notes="late")
        assert stock_ledger.get_on_hand(filter_product.id) == 5

    def test_staff_cannot_cancel_confirmed_directly(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)
        sales_service.confirm_sale(order.id, user_id=staff.id)

        with pytest.raises(ForbiddenError) as exc:
            sales_service.cancel_order(order.id, user_id=staff.id)

        assert exc.value.details["use_action"] == "REQUEST_CANCELLATION"
        assert sales_service.get_order(order.id).status == "CONFIRMED"
        assert stock_ledger.get_on_hand(filter_product.id) == 4


class TestReturn:
    def test_return_restores_stock(self, db_session, staff, owner, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 2, user_id=staff.id)
        sales_service.confirm_sale(order.id, user_id=staff.id)

        order = sales_service.return_order(
            order.id, user_id=owner.id, shipping_cost_cents=120, reason="Damaged in transit"
        )

        assert order.status == "RETURNED"
        assert order.returned_at is not None
        assert order.returned_by_user_id == owner.id
        assert order.return_shipping_cost_cents == 120
        assert stock_ledger.get_on_hand(filter_product.id) == 5

    def test_return_requires_confirmed(self, db_session, staff, mod):
        order = sales_service.start_sale(staff.id)
        with pytest.raises(InvalidStateError):
            sales_service.return_order(order.id, user_id=mod.id)

    def test_cannot_return_after_cancel_or_twice(self, db_session, staff, mod, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)
        sales_service.confirm_sale(order.id, user_id=staff.id)
        sales_service.return_order(order.id, user_id=mod.id)

        with pytest.raises(InvalidStateError):
            sales_service.return_order(order.id, user_id=mod.id)
        with pytest.raises(InvalidStateError):
            sales_service.cancel_order(order.id, user_id=mod.id)
        assert stock_ledger.get_on_hand(filter_product.id) == 5

    def test_staff_return_of_unconfirmed_order_reports_invalid_state(self, db_session, staff):
        order = sales_service.start_sale(staff.id)
        with pytest.raises(InvalidStateError):
            sales_service.return_order(order.id, user_id=staff.id)

        sales_service.cancel_order(order.id, user_id=staff.id)
        with pytest.raises(InvalidStateError):
            sales_service.return_order(order.id, user_id=staff.id)

    def test_staff_cannot_return(self, db_session, staff, filter_product):
        order = sales_service.start_sale(staff.id)
        sales_service.add_item(order.id, "HEPA-01", 1, user_id=staff.id)
        sales_service.confirm_sale(order.id, user_id=staff.id)

        with pytest.raises(ForbiddenError):
            sales_service.return_order(order.id, user_id=staff.id)
        assert stock_ledger.get_on_hand(filter_product.id) == 4

    def test_terminal_order_metadata_is_frozen(self, db_session, staff):
        order = sales_service.start_sale(staff.id)
        sales_service.cancel_order(order.id, user_id=staff.id)
        with pytest.raises(InvalidStateError):
            sales_service.update_order(order.id, user_id=staff.id, notes="late edit")


# =============================================================================
# READS
# =============================================================================


class TestReads:
    def test_list_orders_filters(self, db_session, staff, mod):
        a = sales_service.start_sale(staff.id)
        b = sales_service.start_sale(mod.id)
        sales_service.cancel_order(b.id, user_id=mod.id)

        orders, total = sales_service.list_orders(status="DRAFT")
        assert total == 1
        assert orders[0].id == a.id

        orders, total = sales_service.list_orders(staff_user_id=mod.id)
        assert [o.id for o in orders] == [b.id]

        orders, total = sales_service.list_orders()
        assert [o.id for o in orders] == [b.id, a.id]

    def test_list_orders_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_orders(status="SHIPPED")

    def test_get_by_number(self, db_session, staff):
        order = sales_service.start_sale(staff.id, order_number="SHOPEE-77")
        assert sales_service.get_order_by_number("SHOPEE-77").id == order.id
        with pytest.raises(NotFoundError):
            sales_service.get_order_by_number("SHOPEE-78")
