"""
Relay endpoints as the sync engine sees them.

Every relay url that reaches a relay set, a fetch or a publish passes
through [Relay][ravensync.models.relay.Relay] first, so two spellings of the
same endpoint (``wss://Relay.Example.com/`` and ``wss://relay.example.com``)
collapse to one key. Chat clients talk to whatever relay the user typed, so
loopback and private hosts are accepted and tagged
[NetworkType.LOCAL][ravensync.models.constants.NetworkType]. Overlay
hosts (``.onion``, ``.i2p``, ``.loki``) are always addressed over ``ws://``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import ip_address
from typing import NamedTuple

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from .constants import NetworkType


_OVERLAY_SUFFIXES: tuple[tuple[str, NetworkType], ...] = (
    (".onion", NetworkType.TOR),
    (".i2p", NetworkType.I2P),
    (".loki", NetworkType.LOKI),
)
_LOCAL_NAMES = frozenset({"localhost", "localhost.localdomain"})
_DEFAULT_PORTS = {"ws": 80, "wss": 443}

_VALIDATOR = (
    Validator()
    .require_presence_of("scheme", "host")
    .allow_schemes("ws", "wss")
    .check_validity_of("scheme", "host", "port", "path")
)


class _Endpoint(NamedTuple):
    scheme: str
    host: str
    port: int | None
    path: str | None
    network: NetworkType


def classify_host(host: str) -> NetworkType:
    """Return the network a relay host lives on.

    Raises:
        ValueError: If *host* is empty or is not a dotted domain name,
            an IP address or a known local name.
    """
    bare = host.strip("[]").lower()
    if not bare:
        raise ValueError("Invalid host: ''")

    for suffix, network in _OVERLAY_SUFFIXES:
        if bare.endswith(suffix):
            return network
    if bare in _LOCAL_NAMES:
        return NetworkType.LOCAL

    try:
        address = ip_address(bare)
    except ValueError:
        labels = bare.split(".")
        well_formed = all(
            label and label[0] != "-" and label[-1] != "-" for label in labels
        )
        if len(labels) < 2 or not well_formed:
            raise ValueError(f"Invalid host: '{host}'") from None
        return NetworkType.CLEARNET

    if address.is_loopback or address.is_private:
        return NetworkType.LOCAL
    return NetworkType.CLEARNET


def _split_endpoint(raw: str) -> _Endpoint:
    uri = uri_reference(raw.strip()).normalize()
    try:
        _VALIDATOR.validate(uri)
    except UnpermittedComponentError:
        raise ValueError("Invalid scheme: must be ws or wss") from None
    except ValidationError as e:
        raise ValueError(f"Invalid URL: {e}") from None

    if uri.query:
        raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
    if uri.fragment:
        raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

    host = uri.host.strip("[]").lower()
    network = classify_host(host)
    scheme = uri.scheme if network in (NetworkType.CLEARNET, NetworkType.LOCAL) else "ws"

    segments = [segment for segment in (uri.path or "").split("/") if segment]
    path = "/" + "/".join(segments) if segments else None

    return _Endpoint(
        scheme=scheme,
        host=host,
        port=int(uri.port) if uri.port else None,
        path=path,
        network=network,
    )


@dataclass(frozen=True, slots=True)
class Relay:
    """A normalized ``ws://`` or ``wss://`` relay endpoint.

    ``url`` is the canonical form used as the key in relay sets, seen-on
    maps and publish results: lower-cased host, default port dropped,
    duplicate and trailing slashes removed.

    Attributes:
        url: Canonical relay url.
        network: Where the host lives.
        scheme: ``ws`` or ``wss`` (always ``ws`` on overlay networks).
        host: Host name or IP address without IPv6 brackets.
        port: Explicit non-standard port, or ``None``.
        path: Collapsed path, or ``None`` for the root.

    Raises:
        ValueError: On null bytes, a non-websocket scheme, a query string,
            a fragment or an unusable host.

    Examples:
        ```python
        Relay("wss://Relay.Damus.io/").url     # 'wss://relay.damus.io'
        Relay("ws://localhost:7777").network   # NetworkType.LOCAL
        Relay("wss://abc123.onion").url        # 'ws://abc123.onion'
        ```
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    network: NetworkType = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    def __post_init__(self) -> None:
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        endpoint = _split_endpoint(self.raw_url)
        authority = f"[{endpoint.host}]" if ":" in endpoint.host else endpoint.host
        if endpoint.port and endpoint.port != _DEFAULT_PORTS[endpoint.scheme]:
            authority = f"{authority}:{endpoint.port}"

        for name in ("network", "scheme", "host", "port", "path"):
            object.__setattr__(self, name, getattr(endpoint, name))
        object.__setattr__(self, "url", f"{endpoint.scheme}://{authority}{endpoint.path or ''}")

    def __str__(self) -> str:
        return self.url


def normalize_relay_urls(urls: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Normalize *urls*, dropping invalid entries and duplicates (first wins)."""
    seen: dict[str, None] = {}
    for raw in urls:
        try:
            seen.setdefault(Relay(raw).url, None)
        except ValueError:
            continue
    return tuple(seen)
