from .user import User, UserRole
from .invite_code import InviteCode

__all__ = [
    "User",
    "UserRole",
    "InviteCode",
]
