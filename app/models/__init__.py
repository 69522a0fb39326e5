from .user import User
from .login_code import LoginCode

__all__ = [
    "User",
    "LoginCode",
]
