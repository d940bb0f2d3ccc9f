"""Database models"""

from gravizot.models.user import User
from gravizot.models.security import RefreshToken

__all__ = ["User", "RefreshToken"]
