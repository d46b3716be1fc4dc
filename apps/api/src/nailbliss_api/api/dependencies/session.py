"""Session-aware dependencies for customer and staff APIs."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from nailbliss_api.services.backend import (
    BackendAuthorizationError,
    BackendError,
    ProfileNotFoundError,
    SupabaseBackend,
)
from nailbliss_api.services.identity import AuthSession, IdentityContext, Profile
from nailbliss_api.services.redemption import StaffAuthorizationError, StationRegistry
from nailbliss_api.services.tokens import QRRenderer, TokenCodec


def get_backend(request: Request) -> SupabaseBackend:
    return request.app.state.backend


def get_codec(request: Request) -> TokenCodec:
    return request.app.state.codec


def get_renderer(request: Request) -> QRRenderer:
    return request.app.state.renderer


def get_stations(request: Request) -> StationRegistry:
    return request.app.state.stations


def parse_session(user_id: str | None, access_token: str | None) -> AuthSession:
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )
    try:
        UUID(user_id)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        ) from error
    return AuthSession(user_id=user_id, access_token=access_token or None)


async def require_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    authorization: str | None = Header(None),
) -> AuthSession:
    """Resolve the forwarded auth session from request headers."""

    access_token: str | None = None
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() != "bearer" or not value.strip():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authorization header must be a bearer token",
            )
        access_token = value.strip()
    return parse_session(session_user, access_token)


async def load_profile(backend: SupabaseBackend, session: AuthSession) -> Profile:
    try:
        return await backend.fetch_profile(session.user_id, access_token=session.access_token)
    except ProfileNotFoundError as error:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session user not found",
        ) from error
    except BackendAuthorizationError as error:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session is no longer valid",
        ) from error
    except BackendError as error:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Profile lookup failed",
        ) from error


async def require_profile(
    session: AuthSession = Depends(require_session),
    backend: SupabaseBackend = Depends(get_backend),
) -> Profile:
    """Load the session user's profile; the role always comes from the backend."""

    return await load_profile(backend, session)


async def require_identity(
    session: AuthSession = Depends(require_session),
    profile: Profile = Depends(require_profile),
) -> IdentityContext:
    return IdentityContext.signed_in(session, profile)


async def require_customer(identity: IdentityContext = Depends(require_identity)) -> IdentityContext:
    if not identity.is_customer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Loyalty cards are only available to customers",
        )
    return identity


async def require_staff(identity: IdentityContext = Depends(require_identity)) -> IdentityContext:
    if not identity.is_staff:
        notice = StaffAuthorizationError().to_notice()
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"kind": notice.kind.value, "title": notice.title, "message": notice.message},
        )
    return identity
