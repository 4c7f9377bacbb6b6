"""
API request and response models for the user directory REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the internal domain
representation. Route handlers map between the two.

Password and email are plain ``str`` fields on purpose: their rules live in
auth/validators.py so a weak password surfaces as PASSWORD_NOT_VALIDATED
rather than a generic schema error. There is no response field for the
password hash.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from core.errors import ErrorCode

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AvailabilityEnum(str, Enum):
    available = "available"
    not_available = "not available"


class RoleEnum(str, Enum):
    admin = "admin"
    user = "user"


# ---------------------------------------------------------------------------
# Request models
#
# Whitespace is stripped per field, never model-wide: a password is judged and
# hashed exactly as sent.
# ---------------------------------------------------------------------------

_Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
_Email = Annotated[str, StringConstraints(strip_whitespace=True, max_length=320)]
_Status = Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]


class SigninRequest(BaseModel):
    """Request body for POST /signin."""

    organisation: _Name
    username: _Name
    password: str = Field(max_length=1024)


class _AccountFields(BaseModel):
    username: _Name
    email: _Email = ""
    password: str = Field(default="", max_length=1024)
    status: Optional[_Status] = None
    availability: AvailabilityEnum = AvailabilityEnum.available


class UserCreate(_AccountFields):
    """Request body for POST / (authenticated create).

    organisation is never read from the body -- the caller's token decides it.
    """

    role: RoleEnum = RoleEnum.user


class SignupRequest(_AccountFields):
    """Request body for POST /signup. Unauthenticated, so it names its organisation.

    There is no role field: self-registered accounts are always plain users.
    """

    organisation: _Name


class UserPatch(BaseModel):
    """Request body for PUT / and PUT /{id}. Only fields that are sent are applied."""

    model_config = ConfigDict(extra="ignore")

    username: Optional[_Name] = None
    email: Optional[_Email] = None
    password: Optional[str] = Field(default=None, max_length=1024)
    status: Optional[_Status] = None
    availability: Optional[AvailabilityEnum] = None
    role: Optional[RoleEnum] = None

    def to_patch(self) -> dict:
        """Return the sent fields keyed by domain attribute name."""
        data = self.model_dump(exclude_unset=True, mode="json")
        if "username" in data:
            data["name"] = data.pop("username")
        return data


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a directory user."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    identity: str
    organisation: str
    email: str
    status: Optional[str] = None
    availability: str
    role: str
    last_login_at: Optional[str] = None
    created_at: Optional[str] = None


class UserEnvelope(BaseModel):
    """{ok, data} for single-record reads and writes."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True
    data: Optional[UserResponse] = None


class UpdatedUserEnvelope(BaseModel):
    """{ok, user} returned by PUT /{id}."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True
    user: Optional[UserResponse] = None


class UserListEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    data: list[UserResponse] = Field(default_factory=list)


class TokenEnvelope(BaseModel):
    """Response for /signin, /signup and /signin_token."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class OkEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True


class ErrorEnvelope(BaseModel):
    """Error envelope returned on every 4xx/5xx response.

    error is a short human-readable message, never an internal exception.
    """

    model_config = ConfigDict(frozen=True)

    ok: bool = False
    code: ErrorCode
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
