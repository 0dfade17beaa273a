"""Address arithmetic over IPv4 and IPv6 prefixes.

Prefixes are represented as stdlib ``ipaddress`` interfaces so that a
prefix can carry host bits (``10.252.1.0/17`` is a valid subnet CIDR in
supernet compatibility mode). All arithmetic is done on Python ints, so
a /64 worth of IPv6 hosts needs no special handling.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Union

from csinet.constraints.errors import InvalidInputError

logger = logging.getLogger(__name__)

IPV4_BITS = 32
IPV6_BITS = 128
# Only the last /64 of an IPv6 block counts as host space.
IPV6_HOST_PREFIX = 64

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPInterface = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

_INTERFACE_TYPES = (ipaddress.IPv4Interface, ipaddress.IPv6Interface)
_NETWORK_TYPES = (ipaddress.IPv4Network, ipaddress.IPv6Network)
_ADDRESS_TYPES = (ipaddress.IPv4Address, ipaddress.IPv6Address)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_prefix(value) -> IPInterface:
    """Parse a CIDR into an interface, keeping any host bits.

    >>> parse_prefix('10.252.1.0/17')
    IPv4Interface('10.252.1.0/17')
    >>> parse_prefix('10.252.0.0/255.255.128.0')
    IPv4Interface('10.252.0.0/17')
    """
    if isinstance(value, _INTERFACE_TYPES):
        return value
    if isinstance(value, _NETWORK_TYPES):
        return ipaddress.ip_interface(value.with_prefixlen)
    text = str(value).strip()
    if "/" not in text:
        raise InvalidInputError(f"invalid CIDR {value!r}: missing prefix length")
    try:
        return ipaddress.ip_interface(text)
    except ValueError as e:
        raise InvalidInputError(f"invalid CIDR {value!r}") from e


def parse_network(value) -> IPNetwork:
    """Parse a CIDR into its canonical network, clearing host bits.

    >>> parse_network('10.252.1.0/17')
    IPv4Network('10.252.0.0/17')
    """
    if isinstance(value, _NETWORK_TYPES):
        return value
    return parse_prefix(value).network


def parse_address(value) -> IPAddress:
    """Parse a bare IPv4 or IPv6 address."""
    if isinstance(value, _INTERFACE_TYPES):
        return value.ip
    if isinstance(value, _ADDRESS_TYPES):
        return value
    try:
        return ipaddress.ip_address(str(value).strip())
    except ValueError as e:
        raise InvalidInputError(f"invalid IP address {value!r}") from e


def _as_network(value) -> IPNetwork:
    if isinstance(value, _INTERFACE_TYPES):
        return value.network
    if isinstance(value, _NETWORK_TYPES):
        return value
    if isinstance(value, _ADDRESS_TYPES):
        return ipaddress.ip_network(value)
    return parse_network(value)


def _base(value) -> tuple[IPAddress, IPNetwork | None]:
    """Split a prefix or address into (starting address, containing network)."""
    # Interfaces subclass addresses, so they are checked first.
    if isinstance(value, _INTERFACE_TYPES):
        return value.ip, value.network
    if isinstance(value, _NETWORK_TYPES):
        return value.network_address, value
    if isinstance(value, _ADDRESS_TYPES):
        return value, None
    if "/" in str(value):
        prefix = parse_prefix(value)
        return prefix.ip, prefix.network
    return parse_address(value), None


# ---------------------------------------------------------------------------
# Integer conversion
# ---------------------------------------------------------------------------

def to_int(address) -> int:
    """Convert an address to its big-endian integer value.

    >>> to_int('10.0.0.1')
    167772161
    """
    return int(parse_address(address))


def from_int(value: int, version: int) -> IPAddress:
    """Convert an integer back to an address of the given IP version.

    >>> from_int(167772161, 4)
    IPv4Address('10.0.0.1')
    """
    if version == 4:
        bits, cls = IPV4_BITS, ipaddress.IPv4Address
    elif version == 6:
        bits, cls = IPV6_BITS, ipaddress.IPv6Address
    else:
        raise InvalidInputError(f"unknown IP version {version}")
    if not 0 <= value < (1 << bits):
        raise InvalidInputError(f"{value} does not fit in an IPv{version} address")
    return cls(value)


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------

def add(value, delta: int) -> IPAddress:
    """Advance a prefix (from its address) or a bare address by delta.

    Results past the end of the prefix are clamped to its broadcast
    address and a warning is logged.

    >>> add('10.252.0.0/17', 1)
    IPv4Address('10.252.0.1')
    >>> add('2001:db8::/64', 2**64 - 1)
    IPv6Address('2001:db8::ffff:ffff:ffff:ffff')
    """
    if delta < 0:
        raise InvalidInputError(f"cannot add a negative delta ({delta})")
    base, network = _base(value)
    if network is not None:
        limit = int(network.broadcast_address)
    else:
        limit = (1 << base.max_prefixlen) - 1
    result = int(base) + delta
    if result > limit:
        clamped = type(base)(limit)
        logger.warning(
            "Tried adding %d to %s but the result was out-of-range, using %s",
            delta, value, clamped,
        )
        return clamped
    return type(base)(result)


def subtract(value, delta: int) -> IPAddress:
    """Move a prefix address or bare address back by delta.

    Results before the prefix root (or address zero) are clamped.

    >>> subtract('10.252.0.255', 1)
    IPv4Address('10.252.0.254')
    """
    if delta < 0:
        raise InvalidInputError(f"cannot subtract a negative delta ({delta})")
    base, network = _base(value)
    floor = int(network.network_address) if network is not None else 0
    result = int(base) - delta
    if result < floor:
        clamped = type(base)(floor)
        logger.warning(
            "Tried subtracting %d from %s but the result was out-of-range, using %s",
            delta, value, clamped,
        )
        return clamped
    return type(base)(result)


def broadcast(prefix) -> IPAddress:
    """Return the last address in the prefix.

    >>> broadcast('10.252.1.0/17')
    IPv4Address('10.252.127.255')
    """
    return _as_network(prefix).broadcast_address


def find_cidr_root_ip(prefix) -> IPAddress:
    """Return the network address of the prefix.

    >>> find_cidr_root_ip('10.252.1.0/17')
    IPv4Address('10.252.0.0')
    """
    return _as_network(prefix).network_address


def find_gateway_ip(prefix) -> IPAddress:
    """Return the conventional gateway, the root address plus one.

    >>> find_gateway_ip('10.252.1.0/17')
    IPv4Address('10.252.0.1')
    """
    return add(_as_network(prefix), 1)


def ip_less_than(a, b) -> bool:
    """Numeric ordering of two addresses of the same family."""
    left, right = parse_address(a), parse_address(b)
    if left.version != right.version:
        raise InvalidInputError(f"cannot compare {left} with {right}")
    return int(left) < int(right)


# ---------------------------------------------------------------------------
# Masks and host counts
# ---------------------------------------------------------------------------

def prefix_length_to_subnet_mask(prefix_length: int, bits: int) -> IPAddress:
    """Convert a prefix length to an address-formatted mask.

    >>> prefix_length_to_subnet_mask(22, 32)
    IPv4Address('255.255.252.0')
    >>> prefix_length_to_subnet_mask(64, 128)
    IPv6Address('ffff:ffff:ffff:ffff::')
    """
    if bits not in (IPV4_BITS, IPV6_BITS):
        raise InvalidInputError(f"bit width must be 32 or 128, not {bits}")
    if not 0 <= prefix_length <= bits:
        raise InvalidInputError(f"prefix length {prefix_length} out of range for {bits} bits")
    mask = ((1 << bits) - 1) ^ ((1 << (bits - prefix_length)) - 1)
    return from_int(mask, 4 if bits == IPV4_BITS else 6)


def subnet_mask_to_prefix_length(mask) -> int:
    """Convert an address-formatted mask back to a prefix length.

    >>> subnet_mask_to_prefix_length('255.255.252.0')
    22
    """
    address = parse_address(mask)
    bits = address.max_prefixlen
    host = ~int(address) & ((1 << bits) - 1)
    if host & (host + 1):
        raise InvalidInputError(f"{mask} is not a contiguous subnet mask")
    return bits - host.bit_length()


def mask_prefix_length(mask, bits: int) -> int:
    """Normalize a mask given as an int, '/N', 'N' or dotted form."""
    if isinstance(mask, bool):
        raise InvalidInputError(f"invalid mask {mask!r}")
    if isinstance(mask, int):
        length = mask
    else:
        text = str(mask).strip().lstrip("/")
        if text.isdigit():
            length = int(text)
        else:
            address = parse_address(text)
            if address.max_prefixlen != bits:
                raise InvalidInputError(f"mask {mask} does not match a {bits}-bit network")
            length = subnet_mask_to_prefix_length(address)
    if not 0 <= length <= bits:
        raise InvalidInputError(f"prefix length {length} out of range for {bits} bits")
    return length


def total_addresses(prefix) -> int:
    """Return the number of addresses in the prefix.

    >>> total_addresses('10.0.0.0/24')
    256
    """
    return _as_network(prefix).num_addresses


def usable_host_addresses(prefix) -> int:
    """Return the number of assignable host addresses in the prefix.

    IPv4 excludes network and broadcast addresses, so /31 and /32 have
    none. IPv6 prefixes shorter than /64 are counted as /64.

    >>> usable_host_addresses('10.0.0.0/24')
    254
    >>> usable_host_addresses('10.0.0.0/31')
    0
    >>> usable_host_addresses('2001:db8::/63') == 2**64 - 1
    True
    >>> usable_host_addresses('2001:db8::/126')
    3
    """
    network = _as_network(prefix)
    if network.version == 4:
        if network.prefixlen >= IPV4_BITS - 1:
            return 0
        return 2 ** (IPV4_BITS - network.prefixlen) - 2
    prefixlen = max(network.prefixlen, IPV6_HOST_PREFIX)
    return 2 ** (IPV6_BITS - prefixlen) - 1


def contains(network, subnet) -> bool:
    """True if both the first and last address of subnet lie in network.

    >>> contains('10.252.0.0/17', '10.252.1.0/24')
    True
    >>> contains('10.252.0.0/17', '10.252.0.0/16')
    False
    """
    outer = _as_network(network)
    inner = _as_network(subnet)
    if outer.version != inner.version:
        return False
    return inner.network_address in outer and inner.broadcast_address in outer
