"""
auth/models.py -- Domain dataclasses for directory users and principals.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores and services do the work.

Layer rule: no imports from api/ or directory/.
"""

from __future__ import annotations

from dataclasses import dataclass

AVAILABLE = "available"
NOT_AVAILABLE = "not available"


def make_identity(organisation: str, name: str) -> str:
    """Return the organisation-qualified identity key, e.g. ("acme", "bob") -> "acme-bob"."""
    return f"{organisation}-{name}"


@dataclass
class User:
    """A directory account belonging to exactly one organisation.

    identity is the display form of the organisation-qualified name. It is
    derived from organisation + name and re-derived when the name changes, but
    it is never used as a lookup key; uniqueness is on (organisation, name).
    organisation itself never changes.

    hashed_password is the bcrypt hash. It never leaves the service layer --
    response models in api/models.py have no field for it.
    """

    name: str
    organisation: str
    email: str
    identity: str = ""
    id: int | None = None
    hashed_password: str | None = None
    status: str | None = None  # tenant-defined, free-form
    availability: str = AVAILABLE
    role: str = "user"  # "admin", "user"
    last_login_at: str | None = None  # ISO 8601, stamped on signin
    created_at: str | None = None

    def __post_init__(self) -> None:
        if not self.identity:
            self.identity = make_identity(self.organisation, self.name)


@dataclass
class NewUser:
    """Signup input before validation. password is plaintext and never stored as-is."""

    name: str
    email: str
    password: str
    status: str | None = None
    availability: str = AVAILABLE
    role: str = "user"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, derived from a verified token and its stored record."""

    id: int
    organisation: str
    role: str
    identity: str

    @classmethod
    def from_user(cls, user: User) -> Principal:
        return cls(id=user.id, organisation=user.organisation, role=user.role, identity=user.identity)
