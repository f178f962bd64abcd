from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from datafeed.clusters import ALL_BRANCHES
from datafeed.filters import ROLE_BRANCH, ROLE_CEO, ROLE_CLUSTER, VIEWER_ROLES, ViewerIdentity, normalize_identity


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "email", "password", "employeeId", "role")


class UserStoreError(Exception):
    pass


class UserValidationError(UserStoreError):
    pass


class DuplicateEmployeeIdError(UserStoreError):
    pass


class UserNotFoundError(UserStoreError):
    pass


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    password: str
    employeeId: str
    role: str
    roles: List[str] = field(default_factory=list)
    branch: Optional[str] = None
    cluster: Optional[str] = None

    def public(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("password", None)
        return data

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "User":
        roles = raw.get("roles") or [raw.get("role")]
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name", "")),
            email=str(raw.get("email", "")),
            password=str(raw.get("password", "")),
            employeeId=str(raw["employeeId"]),
            role=str(raw.get("role") or roles[0]),
            roles=[str(r) for r in roles if r],
            branch=raw.get("branch") or None,
            cluster=raw.get("cluster") or None,
        )


DEMO_USERS = (
    User("ceo-1", "John CEO", "ceo@datafeed.com", "password", "CEO001", ROLE_CEO, [ROLE_CEO], ALL_BRANCHES, None),
    User("cluster-1", "Mike Manager", "cluster@datafeed.com", "password", "CLU001", ROLE_CLUSTER, [ROLE_CLUSTER], None, "Gurugram"),
    User("branch-1", "Bob Branch", "branch@datafeed.com", "password", "BRA001", ROLE_BRANCH, [ROLE_BRANCH], "Gurugram", "Gurugram"),
    User("user-1", "User", "user@datafeed.com", "password", "USER001", ROLE_BRANCH, [ROLE_BRANCH], "Faridabad", "Faridabad"),
)


class UserStore(Protocol):
    def list(self) -> List[User]: ...

    def find(self, employee_id: str) -> Optional[User]: ...

    def create(self, user: User) -> User: ...

    def delete(self, user_id: str) -> User: ...


class InMemoryUserStore:
    """Process-local store; seeded with the demo accounts unless ``users`` is given."""

    def __init__(self, users: Optional[Iterable[User]] = None) -> None:
        self._lock = threading.Lock()
        self._users: Dict[str, User] = {}
        for user in DEMO_USERS if users is None else users:
            self._users[user.id] = user

    def list(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def find(self, employee_id: str) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users.values() if u.employeeId == employee_id), None)

    def create(self, user: User) -> User:
        with self._lock:
            if any(u.employeeId == user.employeeId for u in self._users.values()):
                raise DuplicateEmployeeIdError(f"Employee ID {user.employeeId} already exists")
            if user.id in self._users:
                user = replace(user, id=self._free_id(user.id))
            self._users[user.id] = user
            self._persist()
        return user

    def _free_id(self, base: str) -> str:
        # Ids minted in the same millisecond get a numeric suffix.
        n = 2
        while f"{base}-{n}" in self._users:
            n += 1
        return f"{base}-{n}"

    def delete(self, user_id: str) -> User:
        with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            self._persist()
        return user

    def _persist(self) -> None:
        pass


class JsonFileUserStore(InMemoryUserStore):
    """Users kept as a JSON array on disk; the file is created with the demo accounts."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        users: Optional[List[User]] = None
        if self.path.exists():
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
            users = [User.from_dict(item) for item in raw]
            logger.info("Loaded %d users from %s", len(users), self.path)
        super().__init__(users)
        if users is None:
            with self._lock:
                self._persist()

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps([u.to_dict() for u in self._users.values()], indent=2), encoding="utf-8")
        tmp.replace(self.path)


def _join_list(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        parts = [str(v).strip() for v in value if str(v).strip()]
    else:
        parts = [p.strip() for p in str(value).split(",") if p.strip()]
    return ", ".join(parts) or None


def new_user_id() -> str:
    return f"user-{int(time.time() * 1000)}"


def build_user(payload: Mapping[str, Any], *, user_id: Optional[str] = None) -> User:
    missing = [f for f in REQUIRED_FIELDS if not str(payload.get(f) or "").strip()]
    if missing:
        raise UserValidationError(f"Please fill in all required fields: {', '.join(missing)}")

    roles = payload.get("roles") or [payload["role"]]
    if not isinstance(roles, (list, tuple)):
        roles = [roles]
    roles = [str(r).strip() for r in roles if str(r).strip()]
    if not roles:
        raise UserValidationError("Please select at least one role")
    unknown = [r for r in roles if r not in VIEWER_ROLES]
    if unknown:
        raise UserValidationError(f"Unknown role(s): {', '.join(unknown)}")

    branch = _join_list(payload.get("branch"))
    cluster = _join_list(payload.get("cluster"))
    if ROLE_CEO in roles and not branch:
        branch = ALL_BRANCHES
    if (ROLE_BRANCH in roles or ROLE_CLUSTER in roles) and not cluster:
        raise UserValidationError("Please select at least one cluster")
    if ROLE_BRANCH in roles and not branch:
        raise UserValidationError("Please select at least one branch")

    return User(
        id=user_id or new_user_id(),
        name=str(payload["name"]).strip(),
        email=str(payload["email"]).strip(),
        password=str(payload["password"]),
        employeeId=str(payload["employeeId"]).strip(),
        role=roles[0],
        roles=roles,
        branch=branch,
        cluster=cluster,
    )


def create_user(store: UserStore, payload: Mapping[str, Any]) -> User:
    user = build_user(payload)
    if store.find(user.employeeId) is not None:
        raise DuplicateEmployeeIdError(f"Employee ID {user.employeeId} already exists")
    created = store.create(user)
    logger.info("Created user %s (%s, %s)", created.id, created.employeeId, created.role)
    return created


def authenticate(store: UserStore, employee_id: str, password: str) -> Optional[User]:
    user = store.find(employee_id.strip())
    if user is None or user.password != password:
        return None
    return user


def _first(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    head = value.split(",")[0].strip()
    return head or None


def identity_for(user: User) -> ViewerIdentity:
    """Viewer scope for a signed-in user; only the first of several listed branches/clusters is used."""
    if user.role == ROLE_CEO:
        return ViewerIdentity(role=ROLE_CEO)
    # Same rule as request parameters: no branch means every branch.
    return normalize_identity(user.role, _first(user.cluster), _first(user.branch) or ALL_BRANCHES)

