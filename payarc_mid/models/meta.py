"""Entity metadata model (key-value store).

Generic per-entity key-value rows, the way the platform persists
PayArc linkages (user -> customer, product -> plan, subscription ->
PayArc subscription). The unique constraint on (entity_type, entity_id,
meta_key) is what lets concurrent get-or-create calls agree on one winner.
"""

import uuid

from payarc_mid.extensions import db


class EntityMeta(db.Model):
    __tablename__ = "entity_meta"
    __table_args__ = (
        db.UniqueConstraint(
            "entity_type", "entity_id", "meta_key", name="uq_entity_meta_key"
        ),
        db.Index("ix_entity_meta_lookup", "entity_type", "meta_key", "meta_value"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    entity_type = db.Column(
        db.String(50), nullable=False
    )  # user | product | subscription | order
    entity_id = db.Column(db.String(36), nullable=False)
    meta_key = db.Column(db.String(255), nullable=False)  # e.g. "_payarc_customer_id"
    meta_value = db.Column(db.String(255), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<EntityMeta {self.entity_type}:{self.entity_id} {self.meta_key}>"
