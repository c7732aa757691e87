"""Active Directory adapter for computer objects.

This adapter implements IComputerDirectory with ldap3. ldap3 is a blocking
library, so every call runs in a worker thread via asyncio.to_thread; the
use cases still await them one at a time.

Environment Variables:
    LDAP_SERVER: Domain controller host or ldaps:// URL
    LDAP_USER: Bind account (user@domain or DOMAIN\\user)
    LDAP_PASSWORD: Bind password
    LDAP_SEARCH_BASE: DN to search for computer objects
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from dotenv import load_dotenv
from ldap3 import NTLM, SIMPLE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException, LDAPSocketOpenError

from ...api.exceptions import ConfigurationError, ConnectionError, DirectoryError
from ...api.resilience import retry, retry_async
from ..domain.entities import ComputerRecord, MutationOutcome
from ..domain.ports import IComputerDirectory

load_dotenv()

logger = logging.getLogger(__name__)

COMPUTER_FILTER = "(objectClass=computer)"
COMPUTER_ATTRIBUTES = ["cn", "dNSHostName", "whenCreated", "distinguishedName"]

# Tree Delete control: removes child objects (BitLocker keys, service points) too
TREE_DELETE_CONTROL = ("1.2.840.113556.1.4.805", True, None)

NO_SUCH_OBJECT = 32


def _single(value: Any) -> Any:
    # Without schema info ldap3 returns every attribute as a list
    if isinstance(value, list):
        return value[0] if value else None
    return value


def parse_generalized_time(value: Any) -> Optional[datetime]:
    """Parse an LDAP GeneralizedTime value (20240102030405.0Z) to aware UTC."""
    value = _single(value)
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.strptime(str(value)[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)


def map_computer_entry(entry: dict[str, Any]) -> ComputerRecord:
    """Transform an ldap3 search entry into a ComputerRecord."""
    attributes = entry.get("attributes", {})
    return ComputerRecord(
        name=_single(attributes.get("cn")) or "",
        distinguished_name=_single(attributes.get("distinguishedName")) or entry.get("dn", ""),
        dns_host_name=_single(attributes.get("dNSHostName")) or None,
        created_at=parse_generalized_time(attributes.get("whenCreated")),
    )


class LdapComputerDirectory(IComputerDirectory):
    """Active Directory computer objects over LDAP.

    Must be used as an async context manager so the connection is unbound:

        async with LdapComputerDirectory() as directory:
            computers = await directory.list_computers()
    """

    def __init__(
        self,
        server: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        search_base: Optional[str] = None,
        page_size: int = 500,
    ):
        self.server_address = server or os.getenv("LDAP_SERVER")
        self.user = user or os.getenv("LDAP_USER")
        self.password = password or os.getenv("LDAP_PASSWORD")
        self.search_base = search_base or os.getenv("LDAP_SEARCH_BASE")
        self.page_size = page_size

        missing = [
            key
            for key, value in (
                ("LDAP_SERVER", self.server_address),
                ("LDAP_USER", self.user),
                ("LDAP_PASSWORD", self.password),
                ("LDAP_SEARCH_BASE", self.search_base),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing_keys=missing,
            )

        self._connection: Optional[Connection] = None

    async def __aenter__(self) -> "LdapComputerDirectory":
        self._connection = await retry_async(
            asyncio.to_thread,
            self._bind,
            max_attempts=3,
            retryable_exceptions=(ConnectionError,),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._connection is not None:
            await asyncio.to_thread(self._connection.unbind)
            self._connection = None

    def _bind(self) -> Connection:
        """Open and bind a connection (blocking)."""
        server = Server(self.server_address, connect_timeout=10)
        authentication = NTLM if "\\" in self.user else SIMPLE
        connection = Connection(
            server,
            user=self.user,
            password=self.password,
            authentication=authentication,
            receive_timeout=60,
        )
        try:
            bound = connection.bind()
        except LDAPSocketOpenError as e:
            raise ConnectionError(
                f"Cannot reach domain controller {self.server_address}",
                host=self.server_address,
                cause=e,
            )
        except LDAPException as e:
            raise DirectoryError(f"LDAP bind failed: {e}", operation="bind", cause=e)

        if not bound:
            raise DirectoryError(
                f"LDAP bind rejected for {self.user}",
                operation="bind",
                result=connection.result.get("description"),
            )
        logger.info(f"Bound to {self.server_address} as {self.user}")
        return connection

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise RuntimeError(
                "LdapComputerDirectory must be used as async context manager: "
                "async with LdapComputerDirectory(...) as directory:"
            )
        return self._connection

    def _search_computers(self) -> list[ComputerRecord]:
        try:
            entries = self.connection.extend.standard.paged_search(
                search_base=self.search_base,
                search_filter=COMPUTER_FILTER,
                search_scope=SUBTREE,
                attributes=COMPUTER_ATTRIBUTES,
                paged_size=self.page_size,
                generator=False,
            )
        except LDAPSocketOpenError as e:
            raise ConnectionError(
                f"Lost connection to {self.server_address}",
                host=self.server_address,
                cause=e,
            )
        except LDAPException as e:
            raise DirectoryError(f"Computer search failed: {e}", operation="search", cause=e)

        return [
            map_computer_entry(entry)
            for entry in entries
            if entry.get("type") == "searchResEntry"
        ]

    @retry(max_attempts=2, retryable_exceptions=(ConnectionError,))
    async def list_computers(self) -> list[ComputerRecord]:
        computers = await asyncio.to_thread(self._search_computers)
        logger.info(f"Found {len(computers)} computer objects under {self.search_base}")
        return computers

    def _delete(self, record: ComputerRecord) -> MutationOutcome:
        try:
            deleted = self.connection.delete(
                record.distinguished_name,
                controls=[TREE_DELETE_CONTROL],
            )
        except LDAPException as e:
            raise DirectoryError(
                f"Failed to delete {record.name}: {e}",
                operation="delete",
                cause=e,
                recoverable=True,
            )

        if deleted:
            return MutationOutcome.APPLIED

        result = self.connection.result
        if result.get("result") == NO_SUCH_OBJECT:
            return MutationOutcome.ALREADY_IN_STATE
        raise DirectoryError(
            f"Failed to delete {record.name}",
            operation="delete",
            result=result.get("description"),
        )

    async def delete_computer(self, record: ComputerRecord) -> MutationOutcome:
        return await asyncio.to_thread(self._delete, record)
