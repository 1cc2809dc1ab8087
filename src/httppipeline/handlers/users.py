"""
=============================================================================
USER ROUTES
=============================================================================

Three generations of the same "users" endpoint, registered side by side:

    ┌────────────────────────┬──────────────────────────────────────────────┐
    │ Route                  │ How the body is checked                      │
    ├────────────────────────┼──────────────────────────────────────────────┤
    │ POST /users            │ by hand, first failure wins, fixed wording   │
    │ POST /users/v2         │ ValidationStage, every failure listed        │
    │ POST /api/users        │ ValidationStage, behind token + UA stages,   │
    │                        │ and actually stored                          │
    └────────────────────────┴──────────────────────────────────────────────┘

The hand-written messages are kept word for word (typos included). They
are what clients of POST /users already match on.

=============================================================================
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional
import logging
import threading

from pydantic import Field

from ..errors import ClientInputError, NotFoundError
from ..http.request import HTTPParseError, HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, created, ok
from ..http.router import Router
from ..pipeline.stages import ValidationStage
from ..validation import Schema


logger = logging.getLogger(__name__)


class UserSchema(Schema):
    """Body of POST /users/v2 and POST /api/users."""

    name: str = Field(min_length=3, max_length=100)
    age: float = Field(gt=0)
    address: str = Field(min_length=5)


# Manual-check wording for POST /users
MISSING_FIELDS = "All fields (name, age, address, location) are required."
BAD_NAME = "Name must be string and length should be between 3 to 100. "
BAD_AGE = "Age must be a non-zero positive number. "
BAD_ADDRESS = "Address must be string and length should be between more then 3. "


@dataclass
class User:
    name: str
    age: float
    address: str
    id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "User":
        return cls(
            name=payload.get("name"),
            age=payload.get("age"),
            address=payload.get("address"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.id is None:
            del data["id"]
            return data
        return {"id": data.pop("id"), **data}


class UserRepository:
    """
    In-memory users keyed by an incrementing integer id.

    Shared by every worker thread, so all access goes through one lock.
    """

    def __init__(self, seed: Optional[List[Dict[str, Any]]] = None):
        self._users: Dict[int, User] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        for payload in seed or []:
            self.create(payload)

    def create(self, payload: Dict[str, Any]) -> User:
        user = User.from_payload(payload)
        with self._lock:
            user.id = self._next_id
            self._next_id += 1
            self._users[user.id] = user
        logger.debug("Stored user %d", user.id)
        return user

    def get(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def list(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)


DEFAULT_USERS = [
    {"name": "Alice Johnson", "age": 28, "address": "12 Baker Street"},
    {"name": "Bob Smith", "age": 35, "address": "48 Elm Avenue"},
    {"name": "Carol White", "age": 42, "address": "7 Harbor Road"},
]


def check_user_fields(payload: Any) -> Optional[str]:
    """
    The hand-written checks of POST /users. Returns the first failure's
    message, or None if the payload is acceptable.
    """
    if not isinstance(payload, dict):
        return MISSING_FIELDS

    name = payload.get("name")
    age = payload.get("age")
    address = payload.get("address")

    if not name or not age or not address:
        return MISSING_FIELDS
    if not isinstance(name, str) or not 3 <= len(name) <= 100:
        return BAD_NAME
    if isinstance(age, bool) or not isinstance(age, (int, float)) or age <= 0:
        return BAD_AGE
    if not isinstance(address, str) or len(address) < 5:
        return BAD_ADDRESS
    return None


def _text(body: str) -> HTTPResponse:
    return ResponseBuilder().text(body, "text/html; charset=utf-8").build()


def register_user_routes(router: Router, repository: UserRepository) -> None:
    """Attach the /user, /users and /api/users routes to `router`."""

    # -------------------------------------------------------------------------
    # Path parameter + query string demos
    # -------------------------------------------------------------------------

    @router.get("/user/:id")
    def user_with_filter(request: HTTPRequest) -> HTTPResponse:
        user_id = request.path_params["id"]
        flt = request.get_query("filter", "")
        return _text(f"User ID : {user_id} and filter : {flt}")

    @router.get("/user/:id/payment")
    def user_payment(request: HTTPRequest) -> HTTPResponse:
        user_id = request.path_params["id"]
        flt = request.get_query("filter", "")
        return _text(f"User ID : {user_id} is {flt} and confirmed the payment.")

    # -------------------------------------------------------------------------
    # Creation without storage
    # -------------------------------------------------------------------------

    @router.post("/users")
    def create_user_manual(request: HTTPRequest) -> HTTPResponse:
        try:
            payload = request.json
        except HTTPParseError:
            raise ClientInputError("Invalid JSON body")

        problem = check_user_fields(payload)
        if problem:
            raise ClientInputError(problem)

        user = User.from_payload(payload)
        return created({"message": "User created successfully", "data": user.to_dict()})

    @router.post("/users/v2", stages=[ValidationStage(UserSchema)])
    def create_user_validated(request: HTTPRequest) -> HTTPResponse:
        user = User.from_payload(request.attachments["validated"])
        return created({"message": "User created successfully", "data": user.to_dict()})

    # -------------------------------------------------------------------------
    # /api/users: token and User-Agent stages are mounted on /api
    # -------------------------------------------------------------------------

    api = router.group("/api")

    @api.get("/users", name="list_users")
    def list_users(request: HTTPRequest) -> HTTPResponse:
        users = [u.to_dict() for u in repository.list()]
        return ok({"message": "Users fetched successfully", "users": users})

    @api.get("/users/:id", name="get_user")
    def get_user(request: HTTPRequest) -> HTTPResponse:
        raw_id = request.path_params["id"]
        try:
            user_id = int(raw_id)
        except ValueError:
            raise ClientInputError(f"Invalid user id: {raw_id}")

        user = repository.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return ok({"message": "User fetched successfully", "user": user.to_dict()})

    @api.post("/users", name="create_user", stages=[ValidationStage(UserSchema)])
    def create_user(request: HTTPRequest) -> HTTPResponse:
        user = repository.create(request.attachments["validated"])
        return created(
            {"message": "User created successfully", "user": user.to_dict()},
            location=router.url_for("get_user", id=user.id),
        )
