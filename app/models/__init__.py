# Models package: import all models here so Alembic can discover them.

from app.models.user import User  # noqa: F401
from app.models.purchase import (  # noqa: F401
    Purchase,
    PurchaseEvent,
    PurchaseItem,
    PurchaseRelatedId,
)
from app.models.webhook_event import WebhookEvent  # noqa: F401
