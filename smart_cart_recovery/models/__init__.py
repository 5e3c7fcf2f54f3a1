"""SQLAlchemy models."""

from smart_cart_recovery.models.abandoned_cart import AbandonedCart
from smart_cart_recovery.models.base import Base
from smart_cart_recovery.models.option import Option

__all__ = [
    # Base
    "Base",
    # Cart Recovery
    "AbandonedCart",
    # Settings
    "Option",
]
