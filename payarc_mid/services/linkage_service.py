"""Linkage service — PayArc IDs stored as per-entity metadata.

Responsible for:
- Reading and writing linkages (user -> customer, product -> plan,
  subscription -> PayArc subscription) through get/set-by-key
- Reverse lookup of a local entity by a linked PayArc ID
- get_or_create(): the single look-up-before-create primitive used for
  every linkage

Only EntityMeta is touched here; callers never query the table directly.
"""

import logging

from sqlalchemy.exc import IntegrityError

from payarc_mid.extensions import db
from payarc_mid.models.meta import EntityMeta

logger = logging.getLogger(__name__)

CUSTOMER_KEY = "_payarc_customer_id"
PLAN_KEY = "_payarc_plan_id"
SUBSCRIPTION_KEY = "_payarc_subscription_id"


def get_linkage(entity_type, entity_id, key):
    """Return the stored value for (entity_type, entity_id, key) or None."""
    row = EntityMeta.query.filter_by(
        entity_type=entity_type,
        entity_id=str(entity_id),
        meta_key=key,
    ).first()
    if row and row.meta_value:
        return row.meta_value
    return None


def set_linkage(entity_type, entity_id, key, value):
    """Store a value, overwriting any previous one (last write wins).

    Flushes but does NOT commit; the caller commits.
    """
    row = EntityMeta.query.filter_by(
        entity_type=entity_type,
        entity_id=str(entity_id),
        meta_key=key,
    ).first()
    if row:
        row.meta_value = value
    else:
        row = EntityMeta(
            entity_type=entity_type,
            entity_id=str(entity_id),
            meta_key=key,
            meta_value=value,
        )
        db.session.add(row)
    db.session.flush()
    return row


def find_entity_id(entity_type, key, value):
    """Reverse lookup: the local entity ID linked to a PayArc ID, or None."""
    if not value:
        return None
    row = EntityMeta.query.filter_by(
        entity_type=entity_type,
        meta_key=key,
        meta_value=str(value),
    ).first()
    return row.entity_id if row else None


def _lock_owner(owner_model, entity_id):
    """Take a row lock on the owning entity where the database supports it.

    Serializes concurrent get_or_create calls for the same entity on
    PostgreSQL/MySQL. SQLite ignores FOR UPDATE; the unique constraint
    on entity_meta still guarantees a single winner there.
    """
    if owner_model is None:
        return
    (
        db.session.query(owner_model)
        .filter(owner_model.id == str(entity_id))
        .with_for_update()
        .first()
    )


def get_or_create(entity_type, entity_id, key, create_fn, owner_model=None):
    """Return an existing linkage or create and persist a new one.

    Args:
        entity_type: "user", "product", "subscription".
        entity_id: Local entity ID.
        key: Linkage key, e.g. CUSTOMER_KEY.
        create_fn: Zero-argument callable creating the PayArc object and
                   returning its ID. Only called when no linkage exists.
        owner_model: Optional model to row-lock while creating.

    Returns (value, created). created is False when the linkage already
    existed or a concurrent caller won the insert race; in that case the
    winner's value is returned and the object created here is orphaned.

    Exceptions from create_fn propagate unchanged and nothing is stored.
    Commits on success.
    """
    existing = get_linkage(entity_type, entity_id, key)
    if existing:
        return existing, False

    _lock_owner(owner_model, entity_id)

    # Re-read under the lock: a concurrent caller may have just committed
    existing = get_linkage(entity_type, entity_id, key)
    if existing:
        db.session.commit()
        return existing, False

    value = create_fn()

    try:
        db.session.add(EntityMeta(
            entity_type=entity_type,
            entity_id=str(entity_id),
            meta_key=key,
            meta_value=value,
        ))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        winner = get_linkage(entity_type, entity_id, key)
        logger.warning(
            f"Linkage race on {entity_type}:{entity_id} {key}; "
            f"kept {winner}, discarded {value}"
        )
        return winner, False

    logger.info(f"Linked {entity_type}:{entity_id} {key}={value}")
    return value, True
