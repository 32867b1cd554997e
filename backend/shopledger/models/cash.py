from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from shopledger.time_utils import to_utc_z
from .catalog import _reject_mutation


CASH_MOVEMENT_KINDS = ("INCOME", "EXPENSE", "DEBT_COLLECTION", "DEBT_PAYMENT")

# Kinds that put money into the till; the rest take it out
CASH_INFLOW_KINDS = ("INCOME", "DEBT_COLLECTION")


class CashMovement(db.Model):
    """
    Append-only cash ledger ("Transaction" in the shop's screens).

    KINDS:
    - INCOME / DEBT_COLLECTION: cash in
    - EXPENSE / DEBT_PAYMENT: cash out
    DEBT_COLLECTION and DEBT_PAYMENT also reduce the counterparty's cached debt.

    amount is always positive; direction comes from kind.
    IMMUTABLE: Rows are never updated or deleted.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_supplier_kind", "supplier_id", "kind"),
        db.Index("ix_cash_movements_customer_kind", "customer_id", "kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    kind = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer")
    supplier = db.relationship("Supplier")

    @property
    def signed_amount(self) -> int:
        return self.amount if self.kind in CASH_INFLOW_KINDS else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "amount": self.amount,
            "signed_amount": self.signed_amount,
            "description": self.description,
            "payment_method": self.payment_method,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "order_id": self.order_id,
            "customer_name": self.customer.name if self.customer else None,
            "supplier_name": self.supplier.name if self.supplier else None,
            "occurred_at": to_utc_z(self.occurred_at),
        }


event.listen(CashMovement, "before_update", _reject_mutation)
event.listen(CashMovement, "before_delete", _reject_mutation)
