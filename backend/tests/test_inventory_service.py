import pytest

from shopledger.extensions import db
from shopledger.models import AppendOnlyViolation, Product, StockMovement
from shopledger.services import inventory_service
from shopledger.services.errors import InvalidAmountError, NotFoundError, ValidationError


def _movements(product_id):
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


@pytest.mark.parametrize(
    "kind, magnitude, expected",
    [
        ("IN", 5, 15),
        ("OUT", 4, 6),
        ("LOST", 1, 9),
        ("DAMAGED", 2, 8),
        ("ADJUSTMENT", -3, 7),
        ("ADJUSTMENT", 3, 13),
    ],
)
def test_movement_sign_per_kind(db_session, make_product, kind, magnitude, expected):
    product = make_product()
    inventory_service.apply_stock_movement(product.id, "IN", 10)

    new_stock = inventory_service.apply_stock_movement(product.id, kind, magnitude, "check")

    assert new_stock == expected
    assert db.session.get(Product, product.id).stock == expected
    assert inventory_service.ledger_stock(product.id) == expected


def test_movement_writes_exactly_one_row(db_session, make_product):
    product = make_product()
    inventory_service.apply_stock_movement(product.id, "OUT", 2, "walk-in sale")

    rows = _movements(product.id)
    assert len(rows) == 1
    assert (rows[0].kind, rows[0].quantity, rows[0].note) == ("OUT", -2, "walk-in sale")


def test_oversell_is_recorded_not_blocked(db_session, make_product):
    product = make_product()
    inventory_service.apply_stock_movement(product.id, "IN", 1)

    assert inventory_service.apply_stock_movement(product.id, "OUT", 3) == -2
    summary = inventory_service.get_stock_summary(product.id)
    assert summary["is_negative"] is True
    assert summary["drift"] == 0


@pytest.mark.parametrize("kind, magnitude", [("IN", 0), ("OUT", -1), ("LOST", 0), ("ADJUSTMENT", 0)])
def test_invalid_magnitudes_rejected(db_session, make_product, kind, magnitude):
    product = make_product()
    with pytest.raises(InvalidAmountError):
        inventory_service.apply_stock_movement(product.id, kind, magnitude)
    assert _movements(product.id) == []
    assert db.session.get(Product, product.id).stock == 0


def test_unknown_kind_rejected(db_session, make_product):
    product = make_product()
    with pytest.raises(ValidationError):
        inventory_service.apply_stock_movement(product.id, "GIFT", 1)


def test_unknown_product_not_found(db_session):
    with pytest.raises(NotFoundError):
        inventory_service.apply_stock_movement(9999, "IN", 1)
    assert db.session.query(StockMovement).count() == 0


def test_set_unit_cost(db_session, make_product):
    product = make_product(cost=50)
    inventory_service.set_unit_cost(product.id, 72)
    assert db.session.get(Product, product.id).cost == 72

    with pytest.raises(InvalidAmountError):
        inventory_service.set_unit_cost(product.id, -1)


def test_list_movements_newest_first(db_session, make_product):
    product = make_product()
    inventory_service.apply_stock_movement(product.id, "IN", 10)
    inventory_service.apply_stock_movement(product.id, "OUT", 1)
    inventory_service.apply_stock_movement(product.id, "DAMAGED", 1)

    rows = inventory_service.list_stock_movements(product.id)
    assert [r["kind"] for r in rows] == ["DAMAGED", "OUT", "IN"]
    assert len(inventory_service.list_stock_movements(product.id, limit=2)) == 2


def test_stock_movements_are_append_only(db_session, make_product):
    product = make_product()
    inventory_service.apply_stock_movement(product.id, "IN", 5)
    movement = _movements(product.id)[0]

    movement.quantity = 500
    with pytest.raises(AppendOnlyViolation):
        db.session.flush()
    db.session.rollback()

    movement = _movements(product.id)[0]
    db.session.delete(movement)
    with pytest.raises(AppendOnlyViolation):
        db.session.flush()
    db.session.rollback()

    assert inventory_service.ledger_stock(product.id) == 5
