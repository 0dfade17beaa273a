"""First-fit subnet allocation inside a parent network.

Given a parent network, a desired mask and the subnets already carved
out of it, compute the free address ranges between the allocated
subnets and return the first aligned block of the requested size.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Iterable

from csinet.constraints.errors import (
    AddressExhaustedError,
    AllocationError,
    InvalidInputError,
)
from csinet.models.addressing import (
    IPNetwork,
    contains,
    from_int,
    mask_prefix_length,
    parse_network,
    usable_host_addresses,
)


@dataclass(frozen=True)
class IPRange:
    """An inclusive range of addresses held as integers.

    >>> r = IPRange.from_network(ipaddress.ip_network('10.0.0.0/30'))
    >>> r.size
    4
    >>> r.to_addresses()
    (IPv4Address('10.0.0.0'), IPv4Address('10.0.0.3'))
    """

    start: int
    end: int
    version: int = 4

    @classmethod
    def from_network(cls, network: IPNetwork) -> IPRange:
        return cls(
            start=int(network.network_address),
            end=int(network.broadcast_address),
            version=network.version,
        )

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def to_addresses(self):
        return from_int(self.start, self.version), from_int(self.end, self.version)

    def __str__(self) -> str:
        first, last = self.to_addresses()
        return f"{first}-{last}"


def _normalize_subnets(network: IPNetwork, subnets: Iterable) -> list[IPNetwork]:
    result = []
    for subnet in subnets:
        net = parse_network(subnet)
        if net.version != network.version or not contains(network, net):
            raise InvalidInputError(f"subnet {net} is not part of {network}")
        result.append(net)
    return result


def free_ip_ranges(network, subnets: Iterable) -> list[IPRange]:
    """Return the unallocated ranges of network, in address order.

    >>> [str(r) for r in free_ip_ranges('10.0.0.0/24', ['10.0.0.64/26'])]
    ['10.0.0.0-10.0.0.63', '10.0.0.128-10.0.0.255']
    """
    network = parse_network(network)
    allocated = sorted(
        _normalize_subnets(network, subnets),
        key=lambda n: int(n.network_address),
    )
    whole = IPRange.from_network(network)

    ranges: list[IPRange] = []
    cursor = whole.start
    for subnet in allocated:
        used = IPRange.from_network(subnet)
        if used.start > cursor:
            ranges.append(IPRange(cursor, used.start - 1, network.version))
        # Nested or overlapping subnets must not move the cursor backwards.
        cursor = max(cursor, used.end + 1)
    if cursor <= whole.end:
        ranges.append(IPRange(cursor, whole.end, network.version))
    return ranges


def _trailing_zeros(value: int, bits: int) -> int:
    if value == 0:
        return bits
    return (value & -value).bit_length() - 1


def _space(ranges: list[IPRange], prefixlen: int, bits: int) -> int:
    """Return the first aligned start address that fits a /prefixlen block."""
    size = 1 << (bits - prefixlen)
    for free_range in ranges:
        start, end = free_range.start, free_range.end
        # Round start up until it is a valid base address for the mask.
        zeros = _trailing_zeros(start, bits)
        while start < end and prefixlen < bits - zeros:
            start = (start | ((1 << zeros) - 1)) + 1
            zeros = _trailing_zeros(start, bits)
        if end - start + 1 >= size:
            return start
    raise AddressExhaustedError(f"tried to fit: /{prefixlen}")


def free(network, mask, subnets: Iterable = ()) -> IPNetwork:
    """Return the first free subnet of the given mask inside network.

    The mask may be a prefix length, '/N', or a dotted mask.

    >>> free('10.0.0.0/24', 26, ['10.0.0.0/26'])
    IPv4Network('10.0.0.64/26')
    >>> free('10.0.0.0/24', '255.255.255.192', ['10.0.0.0/25'])
    IPv4Network('10.0.0.128/26')
    """
    network = parse_network(network)
    bits = network.max_prefixlen
    prefixlen = mask_prefix_length(mask, bits)
    if prefixlen < network.prefixlen:
        raise AllocationError(
            f"requested mask /{prefixlen} is larger than network {network} "
            f"(have: /{network.prefixlen}, requested: /{prefixlen})"
        )

    ranges = free_ip_ranges(network, subnets)
    start = _space(ranges, prefixlen, bits)
    return ipaddress.ip_network((from_int(start, network.version), prefixlen))


def calculate_subnet_mask(prefix_length: int, count: int, bits: int = 32) -> int:
    """Return the prefix length that divides a /prefix_length into count parts.

    >>> calculate_subnet_mask(24, 4)
    26
    >>> calculate_subnet_mask(24, 5)
    27
    """
    if count == 0:
        raise InvalidInputError("divide by zero")
    if count < 0:
        raise InvalidInputError(f"cannot split into {count} subnets")
    needed = (count - 1).bit_length()
    if needed > bits - prefix_length:
        raise AllocationError(
            f"no room in network mask /{prefix_length} to accommodate {count} subnets"
        )
    return prefix_length + needed


def split(network, count: int) -> list[IPNetwork]:
    """Split network into count equal subnets, lowest first.

    >>> split('10.0.0.0/24', 3)
    [IPv4Network('10.0.0.0/26'), IPv4Network('10.0.0.64/26'), IPv4Network('10.0.0.128/26')]
    """
    network = parse_network(network)
    prefixlen = calculate_subnet_mask(network.prefixlen, count, network.max_prefixlen)
    subnets: list[IPNetwork] = []
    for _ in range(count):
        subnets.append(free(network, prefixlen, subnets))
    return subnets


def half(network) -> tuple[IPNetwork, IPNetwork]:
    """Split network into its two halves.

    >>> half('10.0.0.0/24')
    (IPv4Network('10.0.0.0/25'), IPv4Network('10.0.0.128/25'))
    """
    network = parse_network(network)
    if network.prefixlen == network.max_prefixlen:
        raise InvalidInputError(f"single address network {network} cannot be halved")
    first = free(network, network.prefixlen + 1)
    second = free(network, network.prefixlen + 1, [first])
    return first, second


def subnet_within(network, host_count: int) -> IPNetwork:
    """Return the smallest subnet, based at network, with more than host_count hosts.

    >>> subnet_within('10.103.6.0/24', 9)
    IPv4Network('10.103.6.0/28')
    >>> subnet_within('10.103.6.0/24', 14)
    IPv4Network('10.103.6.0/27')
    """
    network = parse_network(network)
    bits = network.max_prefixlen
    for prefixlen in range(bits - 2, network.prefixlen - 1, -1):
        candidate = ipaddress.ip_network((network.network_address, prefixlen))
        if usable_host_addresses(candidate) > host_count:
            return candidate
    raise AllocationError(f"no subnet within {network} can hold {host_count} hosts")


def canonicalize_subnets(network, subnets: Iterable) -> list[IPNetwork]:
    """Drop subnets outside network and exact duplicates, keeping order.

    Overlapping but distinct subnets are kept.

    >>> canonicalize_subnets('192.168.2.0/24',
    ...     ['172.168.2.0/25', '192.168.2.0/25', '192.168.2.0/25', '192.168.2.128/25'])
    [IPv4Network('192.168.2.0/25'), IPv4Network('192.168.2.128/25')]
    """
    network = parse_network(network)
    result: list[IPNetwork] = []
    for subnet in subnets:
        net = parse_network(subnet)
        if not contains(network, net) or net in result:
            continue
        result.append(net)
    return result
