"""IMAP transport adapter providing mailbox access."""

from __future__ import annotations

import asyncio
import imaplib
import logging
import time
from collections.abc import Awaitable, Callable, Iterator
from datetime import UTC, datetime

from ..core.config import ImapSettings
from ..core.errors import ProviderError
from ..core.models import EmailAccount, EmailFolder, EmailProvider, RawMessage
from ..ingestion.parser import EmailParser

LOGGER = logging.getLogger(__name__)

_PROVIDER_HOSTS = {
    EmailProvider.GMAIL: "imap.gmail.com",
    EmailProvider.OUTLOOK: "outlook.office365.com",
}
_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

Connection = imaplib.IMAP4 | imaplib.IMAP4_SSL
ConnectionFactory = Callable[[str, int, bool, int], Connection]
CredentialResolver = Callable[[EmailAccount], str | None]
TokenProvider = Callable[[EmailAccount], Awaitable[str]]


def imap_since(value: datetime) -> str:
    """Format a date for the IMAP ``SINCE`` search key."""
    return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year}"


def _default_connection(host: str, port: int, use_ssl: bool, timeout: int) -> Connection:
    if use_ssl:
        LOGGER.debug("Connecting to IMAP host %s:%s via SSL", host, port)
        return imaplib.IMAP4_SSL(host, port, timeout=timeout)
    LOGGER.debug("Connecting to IMAP host %s:%s without SSL", host, port)
    return imaplib.IMAP4(host, port, timeout=timeout)


class ImapProviderAdapter:
    """Fetch messages over IMAP, running ``imaplib`` in a worker thread."""

    def __init__(
        self,
        settings: ImapSettings,
        *,
        parser: EmailParser | None = None,
        credentials: CredentialResolver | None = None,
        token_provider: TokenProvider | None = None,
        connection_factory: ConnectionFactory = _default_connection,
    ) -> None:
        self._settings = settings
        self._parser = parser or EmailParser()
        self._credentials = credentials
        self._token_provider = token_provider
        self._connection_factory = connection_factory
        self._secrets: dict[str, str] = {}

    # Public API ---------------------------------------------------------------
    async def authenticate(self, account: EmailAccount) -> str:
        """Resolve the password or OAuth token used for ``account``."""
        if account.provider is EmailProvider.EXCHANGE:
            raise ProviderError("Exchange accounts are not supported over IMAP")
        if account.provider is EmailProvider.IMAP:
            secret = self._credentials(account) if self._credentials else None
            secret = secret or self._settings.app_password
            if not secret:
                raise ProviderError(
                    f"IMAP credentials are not configured for {account.email_address}"
                )
        else:
            if self._token_provider is None:
                raise ProviderError(
                    f"No OAuth token provider configured for {account.provider}"
                )
            secret = await self._token_provider(account)
        self._secrets[account.id] = secret
        return secret

    async def fetch_messages(
        self, account: EmailAccount, folder: EmailFolder, since: datetime
    ) -> list[RawMessage]:
        secret = self._secrets.get(account.id)
        if secret is None:
            secret = await self.authenticate(account)
        mailbox = self._settings.folder_names.get(str(folder), str(folder))
        return await asyncio.to_thread(
            self._fetch_blocking, account, secret, mailbox, since
        )

    # Internal helpers ---------------------------------------------------------
    def resolve_host(self, account: EmailAccount) -> str:
        host = account.imap_host or self._settings.host
        host = host or _PROVIDER_HOSTS.get(account.provider)
        if not host:
            raise ProviderError(f"No IMAP host configured for {account.email_address}")
        return host

    def _fetch_blocking(
        self, account: EmailAccount, secret: str, mailbox: str, since: datetime
    ) -> list[RawMessage]:
        host = self.resolve_host(account)
        port = account.imap_port or self._settings.port
        use_ssl = account.use_ssl and self._settings.use_ssl
        try:
            connection = self._connection_factory(
                host, port, use_ssl, self._settings.timeout_seconds
            )
        except (OSError, imaplib.IMAP4.error) as exc:
            raise ProviderError(f"Failed to connect to IMAP server {host}: {exc}") from exc

        try:
            self._login(connection, account, secret)
            status, _ = connection.select(f'"{mailbox}"', readonly=True)
            if status != "OK":
                raise ProviderError(f"Unable to select mailbox '{mailbox}'")
            return list(self._fetch_since(connection, since))
        except imaplib.IMAP4.error as exc:
            raise ProviderError(f"IMAP error in mailbox '{mailbox}': {exc}") from exc
        except OSError as exc:
            raise ProviderError(f"IMAP connection lost: {exc}") from exc
        finally:
            _logout(connection)

    def _login(self, connection: Connection, account: EmailAccount, secret: str) -> None:
        if account.provider is EmailProvider.IMAP:
            username = self._settings.username or account.email_address
            LOGGER.debug("Authenticating as %s", username)
            connection.login(username, secret)
            return
        auth_string = f"user={account.email_address}\x01auth=Bearer {secret}\x01\x01"
        LOGGER.debug("Authenticating %s with XOAUTH2", account.email_address)
        connection.authenticate("XOAUTH2", lambda _challenge: auth_string.encode())

    def _fetch_since(self, connection: Connection, since: datetime) -> Iterator[RawMessage]:
        criterion = imap_since(since)
        LOGGER.debug("Searching for messages since %s", criterion)
        status, data = connection.uid("SEARCH", None, "SINCE", criterion)  # type: ignore[arg-type]
        if status != "OK":
            raise ProviderError("Failed to search for message UIDs")

        raw_ids = data[0].split() if data and data[0] else []
        for uid_bytes in raw_ids:
            uid_str = uid_bytes.decode()
            status_fetch, fetch_data = connection.uid(
                "FETCH", uid_str, "(FLAGS INTERNALDATE RFC822)"
            )
            if status_fetch != "OK":
                raise ProviderError(f"Failed to fetch message UID {uid_str}")
            envelope = _extract_payload(fetch_data)
            if envelope is None:
                LOGGER.warning("No RFC822 payload returned for UID %s", uid_str)
                continue
            header, payload = envelope
            flags = {flag.decode() for flag in imaplib.ParseFlags(header)}
            yield self._parser.parse(
                payload,
                received_at=_internal_date(header),
                is_read="\\Seen" in flags,
                is_flagged="\\Flagged" in flags,
                is_draft="\\Draft" in flags,
            )


def _extract_payload(
    fetch_data: list[tuple[bytes, bytes] | bytes],
) -> tuple[bytes, bytes] | None:
    """Extract the response header and RFC822 payload from ``imaplib`` chunks."""
    for entry in fetch_data:
        if isinstance(entry, tuple) and len(entry) == 2:
            return entry[0], entry[1]
    return None


def _internal_date(header: bytes) -> datetime:
    parsed = imaplib.Internaldate2tuple(header)
    if parsed is None:
        return datetime.now(tz=UTC)
    return datetime.fromtimestamp(time.mktime(parsed), tz=UTC)


def _logout(connection: Connection) -> None:
    try:
        LOGGER.debug("Closing IMAP connection")
        connection.logout()
    except (OSError, imaplib.IMAP4.error):  # pragma: no cover - depends on server state
        LOGGER.debug("IMAP logout raised; suppressing during shutdown")


__all__ = ["ImapProviderAdapter", "imap_since"]
