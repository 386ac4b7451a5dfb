"""Peer address parsing, raw IP encoding and time-limited bans."""

from __future__ import annotations

import ipaddress
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

log = logging.getLogger(__name__)

RAW_IP_SIZE = 16
MAX_IP_STRING_LENGTH = 48

_IPV4_MAPPED_PREFIX = bytes(10) + b"\xff\xff"
_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class PeerAddress:
    """One entry of an address list."""

    is_v6: bool
    address: str
    ip: str
    port: int


def _leading_int(text: str) -> int:
    match = _LEADING_INT_RE.match(text)
    return int(match.group(1)) if match else 0


def parse_address_list(address_list: str) -> list[PeerAddress]:
    """Parse ``ip:port,[ipv6]:port,...``; entries without a valid port are skipped."""
    result: list[PeerAddress] = []
    if not address_list:
        return result
    for address in address_list.split(","):
        host, sep, port_text = address.rpartition(":")
        if not sep:
            continue
        is_v6 = ":" in host
        ip = host
        if is_v6:
            if ip.startswith("["):
                ip = ip[1:]
            if ip.endswith("]"):
                ip = ip[:-1]
        port = _leading_int(port_text)
        if 0 < port < 65536:
            result.append(PeerAddress(is_v6, address, ip, port))
        else:
            log.warning("invalid IP:port %s", address)
    return result


def raw_ip(ip: str, is_v6: Optional[bool] = None) -> bytes:
    """16-byte form of an address; IPv4 becomes an IPv4-mapped IPv6 address."""
    if is_v6 is None:
        is_v6 = ":" in ip
    try:
        if is_v6:
            return ipaddress.IPv6Address(ip).packed
        return _IPV4_MAPPED_PREFIX + ipaddress.IPv4Address(ip).packed
    except ipaddress.AddressValueError as exc:
        kind = "IPv6" if is_v6 else "IPv4"
        raise ValueError(f"failed to parse {kind} address {ip}") from exc


def is_localhost(raw: bytes) -> bool:
    """Whether a 16-byte address is a loopback address."""
    if len(raw) != RAW_IP_SIZE:
        raise ValueError("raw IP must be 16 bytes")
    address = ipaddress.IPv6Address(bytes(raw))
    mapped = address.ipv4_mapped
    if mapped is not None:
        return mapped.is_loopback
    return address.is_loopback


def format_peer(ip: str, port: int, is_v6: bool) -> str:
    """``ip:port`` or ``[ip]:port``, with overly long addresses cut short."""
    ip = ip[:MAX_IP_STRING_LENGTH]
    return f"[{ip}]:{port}" if is_v6 else f"{ip}:{port}"


class BanList:
    """Addresses banned until a moment on a monotonic clock; loopback is never banned."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._bans: dict[bytes, float] = {}

    def ban(self, raw: bytes, seconds: float) -> None:
        """Ban an address for ``seconds``."""
        if is_localhost(raw):
            return
        until = self._clock() + seconds
        with self._lock:
            self._bans[bytes(raw)] = until

    def is_banned(self, raw: bytes) -> bool:
        """Whether an address is banned now; expired bans are dropped."""
        if is_localhost(raw):
            return False
        now = self._clock()
        key = bytes(raw)
        with self._lock:
            until = self._bans.get(key)
            if until is None:
                return False
            if now < until:
                return True
            del self._bans[key]
            return False

    def active_bans(self) -> list[tuple[bytes, int]]:
        """Addresses still banned with whole seconds left."""
        now = self._clock()
        with self._lock:
            bans = list(self._bans.items())
        return [(raw, int(until - now)) for raw, until in bans if now < until]