"""Dual-stack extension: add IPv6 subnets and addresses to built networks.

Each selected subnet gets the smallest IPv6 block that holds its
reservations, carved from the network's IPv6 CIDR, and every
reservation is given an IPv6 address in IPv4 address order.
"""

from __future__ import annotations

import ipaddress
import logging

from csinet.constraints.errors import InvalidInputError
from csinet.derivations.layout import normalized_name
from csinet.derivations.network_builder import resolve_gateway
from csinet.ipam.allocator import free, subnet_within
from csinet.models.addressing import contains, find_gateway_ip, parse_network
from csinet.models.network import (
    SUPERNET_HACK_SUBNETS,
    CompatibilityMode,
    Network,
)

logger = logging.getLogger(__name__)

DEFAULT_IPV6_SUBNETS = ("network_hardware", "bootstrap_dhcp")


def _ipv4_order(reservation) -> tuple[int, int]:
    if reservation.ipv4 is None:
        return (1, 0)
    return (0, int(reservation.ipv4))


def add_ipv6_to_network(
    network: Network,
    cidr6,
    subnet_names: tuple[str, ...] | None = DEFAULT_IPV6_SUBNETS,
    gateway6=None,
    mode: CompatibilityMode = CompatibilityMode.STANDARD,
    force: bool = False,
) -> Network:
    """Give a network an IPv6 CIDR and its subnets IPv6 blocks.

    Args:
        network: Network to extend in place.
        cidr6: The network's IPv6 CIDR.
        subnet_names: Subnets to extend; None extends every subnet.
        gateway6: Explicit IPv6 gateway for the bootstrap_dhcp subnet.
        mode: In SUPERNET mode the hack subnets take the network's
            IPv6 mask and gateway, as they do for IPv4.
        force: Replace an IPv6 CIDR the network already has.
    """
    prefix = parse_network(cidr6)
    if prefix.version != 6:
        raise InvalidInputError(f"{network.name}: {cidr6} is not an IPv6 CIDR")
    if network.cidr6 is not None and not force:
        raise InvalidInputError(
            f"network {network.name} already has CIDR6 {network.cidr6}"
        )
    network.cidr6 = prefix
    logger.info("Adding IPv6 %s to %s", prefix, network.name)

    if subnet_names is None:
        targets = list(network.subnets)
    else:
        targets = [s for name in subnet_names for s in network.subnets if s.name == name]

    for subnet in targets:
        subnet.cidr6 = None
    for subnet in targets:
        size = subnet_within(prefix, len(subnet.reservations) + 1)
        used = [b for b in network.allocated_subnets6() if contains(prefix, b)]
        block = free(prefix, size.prefixlen, used)
        subnet.cidr6 = ipaddress.IPv6Interface(block.with_prefixlen)
        subnet.gateway6 = find_gateway_ip(block)

    # Every block is carved before any mask is widened.
    for subnet in targets:
        block = subnet.cidr6.network
        if mode is CompatibilityMode.SUPERNET and subnet.name in SUPERNET_HACK_SUBNETS:
            subnet.cidr6 = ipaddress.IPv6Interface((block.network_address, prefix.prefixlen))
            subnet.gateway6 = find_gateway_ip(prefix)
        if gateway6 is not None and subnet.name == "bootstrap_dhcp":
            subnet.gateway6 = gateway6

        ordered = sorted(subnet.reservations, key=_ipv4_order)
        for reservation in ordered:
            reservation.ipv6 = None
        for reservation in ordered:
            subnet.update_reservation(reservation, ipv6_only=True)
    return network


def add_ipv6_networks(
    networks: dict[str, Network],
    overrides: dict[str, str] | None = None,
    mode: CompatibilityMode = CompatibilityMode.STANDARD,
) -> list[str]:
    """Apply ``<net>-cidr6`` overrides; return the names of the networks extended."""
    overrides = overrides or {}
    extended = []
    for name in sorted(networks):
        cidr6 = overrides.get(f"{normalized_name(name)}-cidr6", "")
        if not cidr6:
            continue
        add_ipv6_to_network(
            networks[name],
            cidr6,
            gateway6=resolve_gateway(name, overrides, 6),
            mode=mode,
        )
        extended.append(name)
    return extended
