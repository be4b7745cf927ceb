"""User model.

A buyer account. The PayArc customer created at first checkout is linked
to the user (EntityMeta _payarc_customer_id), so every order and
subscription of the user shares one PayArc customer and card on file.
"""

import uuid

from flask_login import UserMixin

from payarc_mid.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)  # werkzeug hash
    full_name = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, default=False)  # may view any order
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    orders = db.relationship("Order", back_populates="user", lazy="dynamic")
    subscriptions = db.relationship(
        "Subscription", back_populates="user", lazy="dynamic"
    )

    def __repr__(self):
        return f"<User {self.id} {self.email}>"
