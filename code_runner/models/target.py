"""
Target URL validation (SSRF protection).

A target is accepted only when its scheme is http(s) and EVERY address its
hostname resolves to lies outside the denylist. The same denylist guards the
fetch session's resolver, so the connection itself can only reach addresses
that pass the check.
"""
import ipaddress
import socket
from enum import StrEnum
from typing import Final

from aiohttp.abc import AbstractResolver, ResolveResult
from aiohttp.resolver import ThreadedResolver
from loguru import logger as l
from yarl import URL

from .base import ModelBase
from .field_types import Str256


ALLOWED_SCHEMES: Final[frozenset[str]] = frozenset({"http", "https"})

_BLOCKED_IPV4_NETWORKS: Final[tuple[ipaddress.IPv4Network, ...]] = tuple(
    ipaddress.IPv4Network(network) for network in (
        "127.0.0.0/8",  # loopback
        "10.0.0.0/8",  # RFC1918
        "172.16.0.0/12",  # RFC1918
        "192.168.0.0/16",  # RFC1918
        "169.254.0.0/16",  # link-local
        "0.0.0.0/8",  # current network
    )
)

_BLOCKED_IPV6_NETWORKS: Final[tuple[ipaddress.IPv6Network, ...]] = tuple(
    ipaddress.IPv6Network(network) for network in (
        "::1/128",  # loopback
        "::/128",  # unspecified
        "fe80::/10",  # link-local
        "fc00::/7",  # unique local
    )
)

BLOCKED_NETWORKS: Final[tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...]] = (
    _BLOCKED_IPV4_NETWORKS + _BLOCKED_IPV6_NETWORKS
)
"""Process-wide denylist. IPv4-mapped IPv6 addresses are checked against the IPv4 part."""


def is_blocked_address(address: str) -> bool:
    """
    Returns True if `address` falls in the denylist.

    Addresses that cannot be parsed are treated as blocked.
    """
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return True

    if isinstance(ip, ipaddress.IPv6Address):
        if ip.ipv4_mapped is not None:
            return any(ip.ipv4_mapped in network for network in _BLOCKED_IPV4_NETWORKS)
        return any(ip in network for network in _BLOCKED_IPV6_NETWORKS)
    return any(ip in network for network in _BLOCKED_IPV4_NETWORKS)


class BlockedAddressError(Exception):
    """Raised by GuardedResolver when a hostname resolves into the denylist."""
    def __init__(self, hostname: str, address: str):
        self.hostname = hostname
        self.address = address
        self.message = f"The resolved address for '{hostname}' is not allowed"
        super().__init__(self.message)


class GuardedResolver(AbstractResolver):
    """
    aiohttp resolver that refuses to hand blocked addresses to the connector.

    Installed on the shared fetch session so the address a connection uses is
    the address that was checked.
    """

    def __init__(self, inner: AbstractResolver | None = None) -> None:
        self._inner = inner or ThreadedResolver()

    async def resolve(
        self,
        host: str,
        port: int = 0,
        family: socket.AddressFamily = socket.AF_INET,
    ) -> list[ResolveResult]:
        results = await self._inner.resolve(host, port, family)
        for result in results:
            if is_blocked_address(result["host"]):
                l.error(f"Blocked connection to {host}: resolved to {result['host']}")
                raise BlockedAddressError(host, result["host"])
        return results

    async def close(self) -> None:
        await self._inner.close()


# =============================================================================
# Validation Outcome Models
# =============================================================================

class ValidationStatus(StrEnum):
    OK = "ok"
    BAD_SCHEME = "bad_scheme"
    BLOCKED_ADDRESS = "blocked_address"
    DNS_FAILURE = "dns_failure"


class TargetURL(ModelBase):
    """A URL that passed validation, with every address its host resolved to."""
    url: str
    hostname: Str256
    addresses: tuple[str, ...]


class ValidationOutcome(ModelBase):
    status: ValidationStatus
    target: TargetURL | None = None
    message: str | None = None
    hostname: str | None = None
    offending_address: str | None = None


class TargetValidator:
    """
    Checks scheme and resolved destinations of a fetch target.

    The only side effect is the DNS query.
    """

    def __init__(self, resolver: AbstractResolver | None = None) -> None:
        self._resolver = resolver

    def _get_resolver(self) -> AbstractResolver:
        # ThreadedResolver binds to the running loop, so it is created lazily.
        if self._resolver is None:
            self._resolver = ThreadedResolver()
        return self._resolver

    async def resolve(self, hostname: str) -> list[str]:
        """Resolves `hostname` to all of its A/AAAA addresses. IP literals resolve to themselves."""
        try:
            return [str(ipaddress.ip_address(hostname))]
        except ValueError:
            pass
        results = await self._get_resolver().resolve(hostname, 0, socket.AF_UNSPEC)
        return list(dict.fromkeys(result["host"] for result in results))

    async def validate(self, url: URL) -> ValidationOutcome:
        if url.scheme not in ALLOWED_SCHEMES:
            l.error(f"Rejected non-HTTP protocol '{url.scheme}:' for {url}")
            return ValidationOutcome(
                status=ValidationStatus.BAD_SCHEME,
                message=f"Protocol '{url.scheme}:' is not allowed. Only http: and https: are permitted",
            )

        hostname = url.raw_host or ""
        try:
            addresses = await self.resolve(hostname)
        except OSError as e:
            l.error(f"DNS lookup failed for '{hostname}': {e}")
            addresses = []
        if not addresses:
            return ValidationOutcome(
                status=ValidationStatus.DNS_FAILURE,
                message=f"DNS lookup failed for '{hostname}'",
                hostname=hostname,
            )

        for address in addresses:
            if is_blocked_address(address):
                l.error(f"Rejected blocked IP {address} for '{hostname}' ({url})")
                return ValidationOutcome(
                    status=ValidationStatus.BLOCKED_ADDRESS,
                    message=f"The resolved address for '{hostname}' is not allowed",
                    hostname=hostname,
                    offending_address=address,
                )

        l.debug(f"Target {url} validated, addresses: {addresses}")
        return ValidationOutcome(
            status=ValidationStatus.OK,
            target=TargetURL(url=str(url), hostname=hostname, addresses=tuple(addresses)),
            hostname=hostname,
        )
