"""
Access Control - IP whitelist and country blacklist for the admin surface.

An admin request passes only when the client IP is whitelisted and the IP's
country (when it can be determined) is not blacklisted.
"""

from datetime import UTC, datetime

import httpx
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request
from structlog import get_logger

from app.db.models import BlacklistCountry, WhitelistIP
from app.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from app.observability.metrics import metrics
from app.services.audit_log import AuditLogService

logger = get_logger(__name__)

COMPONENT = "ipControl"


def extract_client_ip(request: Request) -> str:
    """
    Client address as resolved by the proxy-headers middleware.

    X-Forwarded-For is only honoured there, and only from trusted proxies;
    the raw header is never read here.
    """
    ip = request.client.host if request.client else ""
    return normalize_ip(ip)


def normalize_ip(ip: str) -> str:
    ip = ip.strip()
    if ip.startswith("::ffff:"):
        ip = ip[len("::ffff:") :]
    if ip == "::1":
        ip = "127.0.0.1"
    return ip


class GeoIPLookup:
    """Country lookup over an ip-api compatible JSON endpoint."""

    def __init__(
        self, url_template: str, timeout: float = 5.0, http_client: httpx.AsyncClient | None = None
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout
        self._http_client = http_client

    async def lookup(self, ip: str) -> str | None:
        """ISO alpha-2 country code for ``ip``, or None when it cannot be determined."""
        if not ip:
            return None
        url = self.url_template.format(ip=ip)
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("geoip_lookup_failed", ip=ip, error=str(e))
            return None

        if data.get("status", "success") != "success":
            return None
        code = data.get("countryCode")
        return code.upper() if isinstance(code, str) and code else None


class CountryCatalog:
    """ISO country list used by the admin UI to pick blacklist entries."""

    def __init__(
        self, url: str, timeout: float = 10.0, http_client: httpx.AsyncClient | None = None
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._http_client = http_client

    async def list_countries(self) -> list[tuple[str, str]]:
        """
        (alpha-2 code, common name) pairs sorted by name.

        Raises:
            InternalError: the country source could not be read
        """
        try:
            if self._http_client is not None:
                response = await self._http_client.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("country_list_fetch_failed", error=str(e))
            raise InternalError("Failed to get country list") from e

        if not isinstance(data, list):
            raise InternalError("Failed to get country list")

        countries = [
            (item["cca2"].upper(), item["name"]["common"])
            for item in data
            if isinstance(item, dict) and item.get("cca2") and item.get("name")
        ]
        return sorted(countries, key=lambda c: c[1])


class WhitelistIPService:
    """CRUD over whitelisted admin IPs."""

    def __init__(self, session: AsyncSession, audit: AuditLogService) -> None:
        self.session = session
        self.audit = audit

    async def list_ips(self) -> list[WhitelistIP]:
        result = await self.session.execute(select(WhitelistIP).order_by(WhitelistIP.id))
        return list(result.scalars().all())

    async def is_whitelisted(self, ip: str) -> bool:
        stmt = select(WhitelistIP.id).where(WhitelistIP.ip == ip)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def add(self, ip: str, description: str | None, actor_id: int) -> WhitelistIP:
        ip = normalize_ip(ip)
        if not ip:
            raise ValidationError("IP address is required")

        entry = WhitelistIP(ip=ip, description=description, added_by=actor_id)
        self.session.add(entry)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("IP address already exists") from e

        logger.info("whitelist_ip_added", ip=ip, added_by=actor_id)
        await self.audit.record(actor_id, "add_whitelist_ip", ip, COMPONENT)
        return entry

    async def edit(
        self, entry_id: int, ip: str, description: str | None, actor_id: int
    ) -> WhitelistIP:
        entry = await self.session.get(WhitelistIP, entry_id)
        if entry is None:
            raise NotFoundError("IP address not found")
        ip = normalize_ip(ip)
        if not ip:
            raise ValidationError("IP address is required")

        entry.ip = ip
        entry.description = description
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("IP address already exists") from e

        await self.audit.record(actor_id, "edit_whitelist_ip", ip, COMPONENT)
        return entry

    async def delete(self, entry_id: int, actor_id: int) -> None:
        result = await self.session.execute(delete(WhitelistIP).where(WhitelistIP.id == entry_id))
        if result.rowcount == 0:
            raise NotFoundError("IP address not found")
        await self.session.commit()
        await self.audit.record(actor_id, "delete_whitelist_ip", f"id={entry_id}", COMPONENT)

    async def mark_login(self, ip: str) -> None:
        stmt = update(WhitelistIP).where(WhitelistIP.ip == ip).values(last_login=datetime.now(UTC))
        await self.session.execute(stmt)
        await self.session.commit()


class BlacklistCountryService:
    """CRUD over blacklisted countries; edits and deletes are scoped to the creator."""

    def __init__(self, session: AsyncSession, audit: AuditLogService) -> None:
        self.session = session
        self.audit = audit

    async def list_countries(self) -> list[BlacklistCountry]:
        stmt = select(BlacklistCountry).order_by(BlacklistCountry.country_code)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def is_blacklisted(self, country_code: str) -> bool:
        stmt = select(BlacklistCountry.id).where(
            BlacklistCountry.country_code == country_code.upper()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def add(
        self, country_code: str, country_name: str | None, actor_id: int
    ) -> BlacklistCountry:
        entry = BlacklistCountry(
            country_code=country_code.upper(), country_name=country_name, added_by=actor_id
        )
        self.session.add(entry)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("Country already exists") from e

        logger.info("country_blacklisted", country_code=entry.country_code, added_by=actor_id)
        await self.audit.record(actor_id, "add_blacklist_country", entry.country_code, COMPONENT)
        return entry

    async def edit(
        self, entry_id: int, country_code: str, country_name: str | None, actor_id: int
    ) -> BlacklistCountry:
        stmt = (
            update(BlacklistCountry)
            .where(BlacklistCountry.id == entry_id, BlacklistCountry.added_by == actor_id)
            .values(country_code=country_code.upper(), country_name=country_name)
            .returning(BlacklistCountry)
        )
        try:
            result = await self.session.execute(stmt)
            entry = result.scalar_one_or_none()
            if entry is None:
                raise NotFoundError("Country not found")
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("Country already exists") from e

        await self.audit.record(actor_id, "edit_blacklist_country", entry.country_code, COMPONENT)
        return entry

    async def delete(self, entry_id: int, actor_id: int) -> None:
        stmt = delete(BlacklistCountry).where(
            BlacklistCountry.id == entry_id, BlacklistCountry.added_by == actor_id
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Country not found")
        await self.session.commit()
        await self.audit.record(actor_id, "delete_blacklist_country", f"id={entry_id}", COMPONENT)


class AccessControlService:
    """Whitelist and country gate applied before admin handlers run."""

    def __init__(
        self,
        whitelist: WhitelistIPService,
        blacklist: BlacklistCountryService,
        geoip: GeoIPLookup,
        audit: AuditLogService,
    ) -> None:
        self.whitelist = whitelist
        self.blacklist = blacklist
        self.geoip = geoip
        self.audit = audit

    async def verify_client_access(self, ip: str) -> str | None:
        """
        Admit ``ip`` or raise.

        Returns the country code the IP resolved to, if any.

        Raises:
            ForbiddenError: IP not whitelisted or country blacklisted
        """
        if not await self.whitelist.is_whitelisted(ip):
            logger.warning("access_denied_ip", ip=ip)
            metrics.access_denials_total.labels(reason="ip").inc()
            await self.audit.record(
                "system", "ACCESS_DENIED", f"IP not whitelisted: {ip}", COMPONENT, level="error"
            )
            raise ForbiddenError("Forbidden")

        country = await self.geoip.lookup(ip)
        if country and await self.blacklist.is_blacklisted(country):
            logger.warning("access_denied_country", ip=ip, country=country)
            metrics.access_denials_total.labels(reason="country").inc()
            await self.audit.record(
                "system",
                "ACCESS_DENIED",
                f"Blacklisted country {country} for IP {ip}",
                COMPONENT,
                level="error",
            )
            raise ForbiddenError("Forbidden")

        await self.whitelist.mark_login(ip)
        logger.debug("access_granted", ip=ip, country=country)
        return country
