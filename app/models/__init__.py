from app.models.user import User
from app.models.chain import Chain

__all__ = [
    "User",
    "Chain",
]
