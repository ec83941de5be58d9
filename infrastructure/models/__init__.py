"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentModel
from .order import OrderModel
from .notification import NotificationModel, PushSubscriptionModel
from .user_role import UserRoleModel

__all__ = [
    "Base",
    "metadata",
    "PaymentModel",
    "OrderModel",
    "NotificationModel",
    "PushSubscriptionModel",
    "UserRoleModel",
]
