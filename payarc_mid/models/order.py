"""Order models.

- Order: a single charge (parent order of a subscription, or a renewal).
  Carries the billing profile used to create the PayArc customer.
- OrderNote: timeline note on an order or a subscription. Customer notes
  are the buyer-visible notices; all others are admin-only.
"""

import uuid

from payarc_mid.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    # -- Valid statuses --
    STATUSES = [
        "pending",
        "processing",
        "completed",
        "on-hold",
        "failed",
        "cancelled",
    ]

    # -- Statuses that mean the order has been paid --
    PAID_STATUSES = ["processing", "completed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    subscription_id = db.Column(
        db.String(36), db.ForeignKey("subscriptions.id"), nullable=True
    )
    is_renewal = db.Column(db.Boolean, default=False, nullable=False)
    status = db.Column(
        db.String(50), default="pending", nullable=False
    )  # pending | processing | completed | on-hold | failed | cancelled
    total = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), default="usd", nullable=False)
    payment_method = db.Column(db.String(50), nullable=True)  # e.g. "payarc_mid"
    failure_reason = db.Column(db.String(500), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # --- Billing profile ---
    billing_first_name = db.Column(db.String(100), nullable=True)
    billing_last_name = db.Column(db.String(100), nullable=True)
    billing_email = db.Column(db.String(255), nullable=True)
    billing_phone = db.Column(db.String(50), nullable=True)
    billing_address_1 = db.Column(db.String(255), nullable=True)
    billing_address_2 = db.Column(db.String(255), nullable=True)
    billing_city = db.Column(db.String(100), nullable=True)
    billing_state = db.Column(db.String(100), nullable=True)
    billing_postcode = db.Column(db.String(20), nullable=True)
    billing_country = db.Column(db.String(2), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="orders")
    subscription = db.relationship("Subscription", back_populates="orders")
    notes = db.relationship(
        "OrderNote",
        back_populates="order",
        lazy="dynamic",
        order_by="OrderNote.created_at",
    )

    @property
    def billing_name(self):
        parts = [self.billing_first_name or "", self.billing_last_name or ""]
        return " ".join(p for p in parts if p).strip()

    @property
    def billing_address(self):
        """Billing address in the shape the PayArc customer API expects."""
        return {
            "address_1": self.billing_address_1,
            "address_2": self.billing_address_2,
            "city": self.billing_city,
            "state": self.billing_state,
            "zip": self.billing_postcode,
            "country": self.billing_country,
            "phone": self.billing_phone,
        }

    @property
    def is_paid(self):
        return self.status in self.PAID_STATUSES

    def __repr__(self):
        return f"<Order {self.id} ({self.status})>"


class OrderNote(db.Model):
    __tablename__ = "order_notes"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id"), nullable=True
    )
    subscription_id = db.Column(
        db.String(36), db.ForeignKey("subscriptions.id"), nullable=True
    )
    body = db.Column(db.Text, nullable=False)
    is_customer_note = db.Column(db.Boolean, default=False)  # buyer-visible
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    order = db.relationship("Order", back_populates="notes")
    subscription = db.relationship("Subscription", back_populates="notes")

    def __repr__(self):
        return f"<OrderNote {self.body[:30]}>"
