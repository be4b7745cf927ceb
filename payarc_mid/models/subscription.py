"""Subscription model.

Local mirror of a PayArc-managed recurring subscription. The PayArc
subscription ID lives in EntityMeta (_payarc_subscription_id); status is
mutated only by provisioning, local cancellation and webhook reconciliation.

Orders reference their subscription: the parent order is the one with
is_renewal=False, later charges are renewal orders.
"""

import uuid

from payarc_mid.extensions import db


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    # -- Valid statuses --
    STATUSES = ["pending", "active", "on-hold", "cancelled", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    product_id = db.Column(
        db.String(36), db.ForeignKey("products.id"), nullable=False
    )
    status = db.Column(
        db.String(50), default="pending", nullable=False
    )  # pending | active | on-hold | cancelled | failed
    total = db.Column(db.Numeric(10, 2), nullable=False)
    billing_interval = db.Column(db.String(20), default="month", nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="subscriptions")
    product = db.relationship("Product", back_populates="subscriptions")
    orders = db.relationship(
        "Order",
        back_populates="subscription",
        lazy="dynamic",
        order_by="Order.created_at",
    )
    notes = db.relationship(
        "OrderNote",
        back_populates="subscription",
        lazy="dynamic",
        order_by="OrderNote.created_at",
    )

    @property
    def parent_order(self):
        return self.orders.filter_by(is_renewal=False).first()

    def __repr__(self):
        return f"<Subscription {self.id} ({self.status})>"
