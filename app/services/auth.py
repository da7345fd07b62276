"""
Authentication Service - Registration, password and Google sign-in for users and admins.

User login runs the monthly credit reset synchronously before the token is
issued. Admin tokens embed the admin's permission names as they stand at
login time.
"""

import re
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Admin, User
from app.exceptions import ConflictError, ForbiddenError, UnauthorizedError, ValidationError
from app.models.domain import IssuedToken, OAuthSession, OAuthUser, TokenRole
from app.services.audit_log import AuditLogService
from app.services.credits import CreditService
from app.services.google_oauth import GoogleOAuthProvider
from app.services.passwords import PasswordService
from app.services.permission_registry import PermissionRegistryService
from app.services.tokens import TokenService

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
OAUTH_STATE_TTL = timedelta(minutes=10)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_new_credentials(email: str | None, password: str | None) -> str:
    """Shared checks for new users and admins. Returns the normalized email."""
    email = normalize_email(email)
    if not email or not password:
        raise ValidationError("Email and password are required")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return email


class AuthService:
    """Issues session tokens after verifying credentials."""

    def __init__(
        self,
        session: AsyncSession,
        credits: CreditService,
        permissions: PermissionRegistryService,
        tokens: TokenService,
        passwords: PasswordService,
        audit: AuditLogService,
    ) -> None:
        self.session = session
        self.credits = credits
        self.permissions = permissions
        self.tokens = tokens
        self.passwords = passwords
        self.audit = audit

    # ========================================================================
    # Users
    # ========================================================================

    async def register(self, name: str | None, email: str | None, password: str | None) -> User:
        """
        Create a user and their free-plan account in one transaction.

        Raises:
            ValidationError: missing or malformed email/password
            ConflictError: email already registered
            NotFoundError: the free plan does not exist
        """
        email = validate_new_credentials(email, password)
        if password is None:
            raise ValidationError("Email and password are required")

        if await self.find_user_by_email(email) is not None:
            raise ConflictError("Email already exists")

        user = User(
            name=(name or "").strip() or None,
            email=email,
            password_hash=self.passwords.hash(password),
        )
        await self._create_user_with_account(user)

        logger.info("user_registered", user_id=user.id, email=email)
        await self.audit.record(user.id, "register", email, "Auth")
        return user

    async def login(self, email: str | None, password: str | None) -> IssuedToken:
        """
        Password login for users.

        Raises:
            ValidationError: unknown email or wrong password
            PaymentNotFoundError: a paid plan is due for reset but unpaid
        """
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = await self.find_user_by_email(email)
        if user is None or not self.passwords.verify(password, user.password_hash):
            logger.info("login_failed", email=email)
            await self.audit.record(email, "login_failed", None, "Auth", level="warn")
            raise ValidationError("Invalid credentials")

        return await self._complete_user_login(user)

    async def sign_in_with_google(self, oauth_user: OAuthUser) -> IssuedToken:
        """Google sign-in for users; creates the user on first sign-in."""
        user = await self._find_user_by_google_id(oauth_user.id)
        if user is None:
            user = await self.find_user_by_email(oauth_user.email)
            if user is not None:
                user.google_id = oauth_user.id
            else:
                user = User(name=oauth_user.name, email=oauth_user.email, google_id=oauth_user.id)
                await self._create_user_with_account(user)
                logger.info("user_registered", user_id=user.id, email=user.email, via="google")
                await self.audit.record(user.id, "register", f"{user.email} via google", "Auth")

        return await self._complete_user_login(user)

    async def find_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(func.lower(User.email) == normalize_email(email))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def _find_user_by_google_id(self, google_id: str) -> User | None:
        result = await self.session.execute(select(User).where(User.google_id == google_id))
        return result.scalar_one_or_none()

    # ========================================================================
    # Admins
    # ========================================================================

    async def admin_login(self, email: str | None, password: str | None) -> IssuedToken:
        """Password login for admins. The token embeds current permission names."""
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")

        admin = await self.find_admin_by_email(email)
        if admin is None or not self.passwords.verify(password, admin.password_hash):
            logger.info("admin_login_failed", email=email)
            await self.audit.record(email, "admin_login_failed", None, "Auth", level="warn")
            raise ValidationError("Invalid credentials")

        return await self._complete_admin_login(admin)

    async def admin_sign_in_with_google(self, oauth_user: OAuthUser) -> IssuedToken:
        """Google sign-in for admins. The admin must already exist."""
        admin = await self.find_admin_by_email(oauth_user.email)
        if admin is None:
            logger.warning("admin_google_login_unknown", email=oauth_user.email)
            raise ForbiddenError("Admin account not found")
        if admin.google_id and admin.google_id != oauth_user.id:
            logger.warning("admin_google_id_mismatch", admin_id=admin.id)
            raise ForbiddenError("Google account does not match this admin")
        admin.google_id = oauth_user.id
        return await self._complete_admin_login(admin)

    async def find_admin_by_email(self, email: str) -> Admin | None:
        stmt = select(Admin).where(func.lower(Admin.email) == normalize_email(email))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_admin_by_id(self, admin_id: int) -> Admin | None:
        return await self.session.get(Admin, admin_id)

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _create_user_with_account(self, user: User) -> None:
        self.session.add(user)
        try:
            await self.session.flush()
            await self.credits.open_account(user.id)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("Email already exists") from e
        except Exception:
            await self.session.rollback()
            raise

    async def _complete_user_login(self, user: User) -> IssuedToken:
        await self.credits.check_and_reset(user.id)

        user.last_login = datetime.now(UTC)
        await self.session.commit()

        token = self.tokens.sign(user.id, user.email, TokenRole.USER)
        logger.info("user_login_success", user_id=user.id)
        await self.audit.record(user.id, "login", None, "Auth")
        return token

    async def _complete_admin_login(self, admin: Admin) -> IssuedToken:
        is_super = admin.is_super_admin
        permissions: list[str] = (
            [] if is_super else await self.permissions.get_permission_names(admin.id)
        )

        admin.last_login = datetime.now(UTC)
        await self.session.commit()

        token = self.tokens.sign(
            admin.id, admin.email, TokenRole.ADMIN, is_admin=is_super, permissions=permissions
        )
        logger.info(
            "admin_login_success",
            admin_id=admin.id,
            is_super_admin=is_super,
            permission_count=len(permissions),
        )
        await self.audit.record(admin.id, "admin_login", None, "Auth")
        return token


class OAuthFlowManager:
    """
    Google OAuth state handling shared by the user and admin flows.

    Pending states live in process memory and expire after ten minutes.
    """

    def __init__(self, provider: GoogleOAuthProvider, admin_hd_domain: str | None = None) -> None:
        self.provider = provider
        self.admin_hd_domain = admin_hd_domain
        self._sessions: dict[str, OAuthSession] = {}

    def initiate(self, audience: TokenRole, redirect_uri: str, callback_url: str) -> tuple[str, str]:
        """Returns (state, auth_url)."""
        self._purge_expired()
        state = secrets.token_urlsafe(32)
        self._sessions[state] = OAuthSession(
            redirect_uri=redirect_uri,
            callback_url=callback_url,
            audience=audience,
            created_at=datetime.now(UTC),
        )
        hd = self.admin_hd_domain if audience == TokenRole.ADMIN else None
        auth_url = self.provider.get_authorization_url(state, callback_url, hd)
        logger.info("oauth_flow_initiated", state=state[:8], audience=audience.value)
        return state, auth_url

    async def complete(
        self, code: str, state: str, audience: TokenRole
    ) -> tuple[OAuthSession, OAuthUser]:
        """
        Exchange the code and fetch the profile.

        Raises:
            UnauthorizedError: unknown, expired or cross-audience state
            ValueError: Google rejected the exchange or the profile
        """
        self._purge_expired()
        session = self._sessions.pop(state, None)
        if session is None or session.audience != audience:
            logger.warning("invalid_oauth_state", state=state[:8])
            raise UnauthorizedError("Invalid OAuth state")

        token = await self.provider.exchange_code_for_token(code, session.callback_url)
        hd = self.admin_hd_domain if audience == TokenRole.ADMIN else None
        user = await self.provider.get_user_info(token.access_token, hd)
        logger.info("oauth_user_info_received", email=user.email, audience=audience.value)
        return session, user

    def _purge_expired(self) -> None:
        cutoff = datetime.now(UTC) - OAUTH_STATE_TTL
        for key in [k for k, s in self._sessions.items() if s.created_at < cutoff]:
            del self._sessions[key]
