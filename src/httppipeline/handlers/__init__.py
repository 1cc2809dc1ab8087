"""
Route handlers.

    pages.py   GET /, GET /about
    users.py   /user/:id demos, POST /users(/v2), /api/users
"""

from .pages import register_page_routes
from .users import (
    DEFAULT_USERS,
    User,
    UserRepository,
    check_user_fields,
    register_user_routes,
    UserSchema,
)

__all__ = [
    "register_page_routes",
    "DEFAULT_USERS",
    "User",
    "UserRepository",
    "check_user_fields",
    "register_user_routes",
    "UserSchema",
]
