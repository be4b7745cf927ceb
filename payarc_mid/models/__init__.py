# Models package — import all models here so Alembic can discover them.

from payarc_mid.models.user import User  # noqa: F401
from payarc_mid.models.product import Product  # noqa: F401
from payarc_mid.models.order import Order, OrderNote  # noqa: F401
from payarc_mid.models.subscription import Subscription  # noqa: F401
from payarc_mid.models.meta import EntityMeta  # noqa: F401
