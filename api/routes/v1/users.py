"""
api/routes/v1/users.py -- User directory and authentication REST endpoints.

Routes (all under /api/v1):
  POST   /user/signin        -- organisation + username + password; sets JWT cookie
  POST   /user/logout        -- clears cookie; 200
  POST   /user/signup        -- create an account in the named organisation; signs it in
  GET    /user/signin_token  -- renew the caller's token (requires auth)
  GET    /user/available     -- caller's organisation, availability != "not available"
  GET    /user/{user_id}     -- one user in the caller's organisation, or data: null
  POST   /user               -- create a user in the caller's organisation
  GET    /user               -- caller's organisation, filtered by query params
  PUT    /user/{user_id}     -- patch a user in the caller's organisation
  PUT    /user               -- patch the caller's own record
  DELETE /user/{user_id}     -- delete; missing ids are still 200

Security:
  [C1] AuthService.signin() uses timing-equalized credential checks.
  [M5] Cache-Control: no-store on every response that carries a token.
  Tenant scoping: handlers never pass an organisation taken from the request
  body or query string. DirectoryService scopes every call to the principal.

Static paths (/available, /signin_token) are registered before /{user_id} so
they are not captured by the path parameter.

Domain errors raised by the services propagate to the DirectoryError handler
in api/main.py, which renders {ok: false, code}.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    OkEnvelope,
    SigninRequest,
    SignupRequest,
    TokenEnvelope,
    UpdatedUserEnvelope,
    UserCreate,
    UserEnvelope,
    UserListEnvelope,
    UserPatch,
    UserResponse,
)
from auth.dependencies import get_current_principal
from auth.models import NewUser, Principal, User
from auth.service import AuthService
from auth.tokens import clear_auth_cookie, set_auth_cookie
from core.config import get_settings
from directory.service import DirectoryService

# Auth policy:
# - POST /user/signin, /user/logout, /user/signup: public
# - everything else: requires auth (get_current_principal)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/user/signin", response_model=TokenEnvelope)
def signin(request: Request, body: SigninRequest) -> JSONResponse:
    """Authenticate and set the JWT cookie.

    Wrong password and unknown account both produce 401 INVALID_CREDENTIALS.
    """
    auth: AuthService = request.app.state.auth_service
    token, user = auth.signin(body.organisation, body.username, body.password)
    return _token_response(token, user)


@router.post("/user/logout", response_model=OkEnvelope)
def logout(request: Request) -> JSONResponse:
    """Clear the JWT cookie. Stateless tokens mean there is nothing else to revoke."""
    auth: AuthService = request.app.state.auth_service
    auth.logout()
    resp = JSONResponse(content=OkEnvelope().model_dump())
    clear_auth_cookie(resp)
    return resp


@router.post("/user/signup", response_model=TokenEnvelope)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an account in body.organisation and sign it in. Public signups always get role "user"."""
    auth: AuthService = request.app.state.auth_service
    user = auth.signup(_to_new_user(body), body.organisation)
    return _token_response(auth.issue_token(user), user)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/user/signin_token", response_model=TokenEnvelope)
def signin_token(request: Request, principal: Principal = Depends(get_current_principal)) -> JSONResponse:
    auth: AuthService = request.app.state.auth_service
    token, user = auth.signin_token(principal)
    return _token_response(token, user)


@router.get("/user/available", response_model=UserListEnvelope)
def list_available(request: Request, principal: Principal = Depends(get_current_principal)) -> UserListEnvelope:
    directory: DirectoryService = request.app.state.directory
    users = directory.list_available(principal)
    return UserListEnvelope(data=[_to_response(u) for u in users])


@router.get("/user/{user_id}", response_model=UserEnvelope)
def get_user(
    request: Request,
    user_id: int,
    principal: Principal = Depends(get_current_principal),
) -> UserEnvelope:
    """Return one user, or data: null when the id is unknown in the caller's organisation."""
    directory: DirectoryService = request.app.state.directory
    user = directory.get_by_id(principal, user_id)
    return UserEnvelope(data=_to_response(user) if user else None)


@router.post("/user", response_model=UserEnvelope)
def create_user(
    request: Request,
    body: UserCreate,
    principal: Principal = Depends(get_current_principal),
) -> UserEnvelope:
    directory: DirectoryService = request.app.state.directory
    user = directory.create_user(principal, _to_new_user(body, role=body.role.value))
    return UserEnvelope(data=_to_response(user))


@router.get("/user", response_model=UserListEnvelope)
def list_users(request: Request, principal: Principal = Depends(get_current_principal)) -> UserListEnvelope:
    """List users in the caller's organisation matching the query-string filters.

    Filterable keys: name, email, status, availability, role. Anything else,
    including organisation, is ignored.
    """
    directory: DirectoryService = request.app.state.directory
    users = directory.list_filtered(principal, dict(request.query_params))
    return UserListEnvelope(data=[_to_response(u) for u in users])


@router.put("/user/{user_id}", response_model=UpdatedUserEnvelope)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    principal: Principal = Depends(get_current_principal),
) -> UpdatedUserEnvelope:
    directory: DirectoryService = request.app.state.directory
    user = directory.update_by_id(principal, user_id, body.to_patch())
    return UpdatedUserEnvelope(user=_to_response(user) if user else None)


@router.put("/user", response_model=UserEnvelope)
def update_self(
    request: Request,
    body: UserPatch,
    principal: Principal = Depends(get_current_principal),
) -> UserEnvelope:
    directory: DirectoryService = request.app.state.directory
    user = directory.update_self(principal, body.to_patch())
    return UserEnvelope(data=_to_response(user) if user else None)


@router.delete("/user/{user_id}", response_model=OkEnvelope)
def delete_user(
    request: Request,
    user_id: int,
    principal: Principal = Depends(get_current_principal),
) -> OkEnvelope:
    directory: DirectoryService = request.app.state.directory
    directory.delete_by_id(principal, user_id)
    return OkEnvelope()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_new_user(body: UserCreate | SignupRequest, role: str = "user") -> NewUser:
    return NewUser(
        name=body.username,
        email=body.email,
        password=body.password,
        status=body.status,
        availability=body.availability.value,
        role=role,
    )


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        identity=user.identity,
        organisation=user.organisation,
        email=user.email,
        status=user.status,
        availability=user.availability,
        role=user.role,
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )


def _token_response(token: str, user: User) -> JSONResponse:
    envelope = TokenEnvelope(
        token=token,
        expires_in=get_settings().token_expire_seconds,
        user=_to_response(user),
    )
    resp = JSONResponse(content=envelope.model_dump())
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
