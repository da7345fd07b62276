"""
Authentication routes - Registration, password login and Google OAuth.

User and admin logins both return the signed token in the envelope and set it
as an HttpOnly cookie. Admin login endpoints sit behind IP control.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse
from structlog import get_logger

from app.api.dependencies import (
    get_auth_service,
    get_oauth_flow_manager,
    verify_ip_access,
)
from app.config import Settings, get_settings
from app.exceptions import ValidationError
from app.models.api import (
    Envelope,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from app.models.domain import IssuedToken, TokenRole
from app.services.auth import AuthService, OAuthFlowManager

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(issued: IssuedToken) -> TokenResponse:
    return TokenResponse(
        token=issued.access_token,
        expires_at=issued.expires_at,
        role=issued.role.value,
        is_admin=issued.is_admin,
        permissions=list(issued.permissions),
    )


def _set_session_cookie(response: Response, issued: IssuedToken, settings: Settings) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=issued.access_token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=settings.jwt_expire_hours * 3600,
    )


def _base_url(request: Request) -> str:
    # Scheme and host as seen by the client, behind the reverse proxy
    scheme = request.headers.get("X-Forwarded-Proto", request.url.scheme)
    host = request.headers.get("Host", request.url.hostname)
    return f"{scheme}://{host}"


# ============================================================================
# Password auth
# ============================================================================


@router.post(
    "/register",
    response_model=Envelope[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    body: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Envelope[UserResponse]:
    """Create a user on the free plan."""
    user = await auth.register(body.name, body.email, body.password)
    return Envelope(data=UserResponse.model_validate(user))


@router.post("/login", response_model=Envelope[TokenResponse])
async def login(
    body: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> Envelope[TokenResponse]:
    """
    User password login.

    Runs the monthly credit reset before the token is issued.
    """
    issued = await auth.login(body.email, body.password)
    _set_session_cookie(response, issued, settings)
    return Envelope(data=_token_response(issued))


@router.post(
    "/admin/login",
    response_model=Envelope[TokenResponse],
    dependencies=[Depends(verify_ip_access)],
)
async def admin_login(
    body: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> Envelope[TokenResponse]:
    """Admin password login. The token carries the admin's permission names."""
    issued = await auth.admin_login(body.email, body.password)
    _set_session_cookie(response, issued, settings)
    return Envelope(data=_token_response(issued))


@router.post("/logout", response_model=Envelope[MessageResponse])
async def logout(
    response: Response, settings: Settings = Depends(get_settings)
) -> Envelope[MessageResponse]:
    response.delete_cookie(key=settings.auth_cookie_name)
    logger.info("user_logout")
    return Envelope(data=MessageResponse(message="Logged out successfully"))


# ============================================================================
# Google OAuth
# ============================================================================


async def _start_oauth(
    request: Request,
    flows: OAuthFlowManager,
    audience: TokenRole,
    redirect_uri: str | None,
    callback_path: str,
) -> RedirectResponse:
    base_url = _base_url(request)
    callback_url = f"{base_url}{callback_path}"
    state, auth_url = flows.initiate(audience, redirect_uri or f"{base_url}/", callback_url)
    logger.info(
        "oauth_login_initiated",
        state=state[:8],
        audience=audience.value,
        callback_url=callback_url,
    )
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


def _finish_oauth(redirect_uri: str, issued: IssuedToken, settings: Settings) -> RedirectResponse:
    redirect = RedirectResponse(
        url=f"{redirect_uri}?token={issued.access_token}",
        status_code=status.HTTP_302_FOUND,
    )
    _set_session_cookie(redirect, issued, settings)
    return redirect


@router.get("/google")
async def google_login(
    request: Request,
    redirect_uri: str | None = None,
    flows: OAuthFlowManager = Depends(get_oauth_flow_manager),
) -> RedirectResponse:
    """Redirect to the Google consent screen for a user sign-in."""
    return await _start_oauth(
        request, flows, TokenRole.USER, redirect_uri, "/api/auth/google/callback"
    )


@router.get("/google/callback")
async def google_callback(
    code: str,
    state: str,
    flows: OAuthFlowManager = Depends(get_oauth_flow_manager),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    try:
        session, oauth_user = await flows.complete(code, state, TokenRole.USER)
    except ValueError as e:
        logger.warning("oauth_callback_failed", error=str(e))
        raise ValidationError(f"OAuth authentication failed: {e}") from e

    issued = await auth.sign_in_with_google(oauth_user)
    logger.info("oauth_callback_success", user_id=issued.subject_id)
    return _finish_oauth(session.redirect_uri, issued, settings)


@router.get("/google-admin", dependencies=[Depends(verify_ip_access)])
async def google_admin_login(
    request: Request,
    redirect_uri: str | None = None,
    flows: OAuthFlowManager = Depends(get_oauth_flow_manager),
) -> RedirectResponse:
    """Redirect to the Google consent screen for an admin sign-in."""
    return await _start_oauth(
        request, flows, TokenRole.ADMIN, redirect_uri, "/api/auth/google-admin/callback"
    )


@router.get("/google-admin/callback", dependencies=[Depends(verify_ip_access)])
async def google_admin_callback(
    code: str,
    state: str,
    flows: OAuthFlowManager = Depends(get_oauth_flow_manager),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    try:
        session, oauth_user = await flows.complete(code, state, TokenRole.ADMIN)
    except ValueError as e:
        logger.warning("admin_oauth_callback_failed", error=str(e))
        raise ValidationError(f"OAuth authentication failed: {e}") from e

    issued = await auth.admin_sign_in_with_google(oauth_user)
    logger.info("admin_oauth_callback_success", admin_id=issued.subject_id)
    return _finish_oauth(session.redirect_uri, issued, settings)
