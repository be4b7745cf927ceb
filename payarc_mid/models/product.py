"""Product model.

A sellable item. Subscription products carry a single billing interval;
the PayArc plan for a product is linked through EntityMeta, not stored here.
"""

import uuid

from payarc_mid.extensions import db


class Product(db.Model):
    __tablename__ = "products"

    # -- Supported billing intervals (one per subscription) --
    INTERVALS = ["day", "week", "month", "year"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    is_subscription = db.Column(db.Boolean, default=False)
    billing_interval = db.Column(
        db.String(20), default="month", nullable=False
    )  # day | week | month | year
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    subscriptions = db.relationship(
        "Subscription", back_populates="product", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Product {self.name}>"
