"""Post-build constraint checks on networks.

Network Constraints: run on each Network after the topology is built.
Cross-Network Constraints: run on the full name -> Network mapping.
"""

from __future__ import annotations

from itertools import combinations

from csinet.constraints.errors import (
    ConstraintViolation,
    Severity,
    ValidationResult,
)
from csinet.models.addressing import contains, find_gateway_ip
from csinet.models.network import Network, Subnet
from csinet.models.vlan import MAX_VLAN, MIN_VLAN


def _violation(severity, code, message, network, subnet: Subnet | None = None):
    return ConstraintViolation(
        severity=severity,
        code=code,
        message=message,
        network=network.name,
        subnet=subnet.name if subnet is not None else "",
    )


def _spans_network(network: Network, subnet: Subnet) -> bool:
    """True for subnets widened to the whole network.

    The supernet compatibility mode and the CAN/CHN bootstrap subnets do
    this, so their overlaps are only warnings.
    """
    return (
        network.cidr is not None
        and subnet.cidr is not None
        and subnet.cidr.network == network.cidr
    )


# ---------------------------------------------------------------------------
# Network Constraints
# ---------------------------------------------------------------------------

def _check_containment(network: Network, subnet: Subnet, result: ValidationResult) -> None:
    if network.cidr is not None and subnet.cidr is not None:
        if not contains(network.cidr, subnet.cidr):
            result.add(_violation(
                Severity.ERROR, "subnet_outside_network",
                f"{subnet.cidr} is not part of {network.cidr}", network, subnet,
            ))
    if network.cidr6 is not None and subnet.cidr6 is not None:
        if not contains(network.cidr6, subnet.cidr6):
            result.add(_violation(
                Severity.ERROR, "subnet_outside_network",
                f"{subnet.cidr6} is not part of {network.cidr6}", network, subnet,
            ))


def _check_addresses(network: Network, subnet: Subnet, result: ValidationResult) -> None:
    """Gateway, DHCP range and reservations must lie inside the subnet.

    The parent network's own gateway is also accepted, as used by the
    UAI macvlan subnet.
    """
    if subnet.cidr is not None:
        block = subnet.cidr.network
        if (
            subnet.gateway is not None
            and subnet.gateway not in block
            and not (network.cidr is not None and subnet.gateway == find_gateway_ip(network.cidr))
        ):
            result.add(_violation(
                Severity.ERROR, "address_outside_subnet",
                f"gateway {subnet.gateway} is not part of {subnet.cidr}", network, subnet,
            ))
        for label, address in (
            ("DHCP start", subnet.dhcp_start),
            ("DHCP end", subnet.dhcp_end),
            ("reservation start", subnet.reservation_start),
            ("reservation end", subnet.reservation_end),
        ):
            if address is not None and address not in block:
                result.add(_violation(
                    Severity.ERROR, "address_outside_subnet",
                    f"{label} {address} is not part of {subnet.cidr}", network, subnet,
                ))
    if subnet.cidr6 is not None and subnet.gateway6 is not None:
        if subnet.gateway6 not in subnet.cidr6.network:
            result.add(_violation(
                Severity.ERROR, "address_outside_subnet",
                f"gateway6 {subnet.gateway6} is not part of {subnet.cidr6}", network, subnet,
            ))

    for reservation in subnet.reservations:
        if reservation.ipv4 is not None and (
            subnet.cidr is None or reservation.ipv4 not in subnet.cidr.network
        ):
            result.add(_violation(
                Severity.ERROR, "reservation_outside_subnet",
                f"{reservation.name} ({reservation.ipv4}) is not part of {subnet.cidr}",
                network, subnet,
            ))
        if reservation.ipv6 is not None and (
            subnet.cidr6 is None or reservation.ipv6 not in subnet.cidr6.network
        ):
            result.add(_violation(
                Severity.ERROR, "reservation_outside_subnet",
                f"{reservation.name} ({reservation.ipv6}) is not part of {subnet.cidr6}",
                network, subnet,
            ))


def _check_dhcp_range(network: Network, subnet: Subnet, result: ValidationResult) -> None:
    """The DHCP range must be ordered and clear of the gateway and reservations."""
    start, end = subnet.dhcp_start, subnet.dhcp_end
    if start is None or end is None:
        return
    if start > end:
        result.add(_violation(
            Severity.ERROR, "dhcp_range_inverted",
            f"DHCP start {start} is after DHCP end {end}", network, subnet,
        ))
        return
    if subnet.gateway is not None and start <= subnet.gateway <= end:
        result.add(_violation(
            Severity.ERROR, "gateway_in_dhcp_range",
            f"gateway {subnet.gateway} is inside DHCP range {start}-{end}", network, subnet,
        ))
    for reservation in subnet.reservations:
        if reservation.ipv4 is not None and start <= reservation.ipv4 <= end:
            result.add(_violation(
                Severity.ERROR, "reservation_in_dhcp_range",
                f"{reservation.name} ({reservation.ipv4}) is inside DHCP range {start}-{end}",
                network, subnet,
            ))


def _check_duplicate_reservations(
    network: Network, subnet: Subnet, result: ValidationResult,
) -> None:
    seen: dict[object, str] = {}
    for reservation in subnet.reservations:
        for address in (reservation.ipv4, reservation.ipv6):
            if address is None:
                continue
            if address in seen:
                result.add(_violation(
                    Severity.ERROR, "duplicate_reservation",
                    f"{address} is reserved for both {seen[address]} and {reservation.name}",
                    network, subnet,
                ))
            else:
                seen[address] = reservation.name


def _check_vlan(network: Network, subnet: Subnet, result: ValidationResult) -> None:
    if not MIN_VLAN <= subnet.vlan_id <= MAX_VLAN:
        result.add(_violation(
            Severity.ERROR, "vlan_out_of_range",
            f"VLAN {subnet.vlan_id} is outside {MIN_VLAN}-{MAX_VLAN}", network, subnet,
        ))
    elif len(network.vlan_range) == 2:
        low, high = network.vlan_range
        if subnet.vlan_id and not low <= subnet.vlan_id <= high:
            result.add(_violation(
                Severity.WARNING, "vlan_outside_network_range",
                f"VLAN {subnet.vlan_id} is outside the network range {low}-{high}",
                network, subnet,
            ))


def _check_sibling_overlap(network: Network, result: ValidationResult) -> None:
    for first, second in combinations(network.subnets, 2):
        pairs = []
        if first.cidr is not None and second.cidr is not None:
            pairs.append((first.cidr.network, second.cidr.network))
        if first.cidr6 is not None and second.cidr6 is not None:
            pairs.append((first.cidr6.network, second.cidr6.network))
        for a, b in pairs:
            if not a.overlaps(b):
                continue
            widened = _spans_network(network, first) or _spans_network(network, second)
            result.add(ConstraintViolation(
                severity=Severity.WARNING if widened else Severity.ERROR,
                code="subnet_overlap",
                message=f"{first.name} ({a}) overlaps {second.name} ({b})",
                network=network.name,
            ))


def validate_network(network: Network) -> ValidationResult:
    """Check one network's subnets.

    Checks:
    - every subnet lies inside the network
    - sibling subnets do not overlap (widened subnets only warn)
    - gateway, DHCP range and reservations lie inside their subnet
    - the DHCP range is ordered and clear of the gateway and reservations
    - no address is reserved twice
    - subnet VLANs are valid and inside the network's VLAN range
    """
    result = ValidationResult()
    for subnet in network.subnets:
        _check_containment(network, subnet, result)
        _check_addresses(network, subnet, result)
        _check_dhcp_range(network, subnet, result)
        _check_duplicate_reservations(network, subnet, result)
        _check_vlan(network, subnet, result)
    _check_sibling_overlap(network, result)
    return result


# ---------------------------------------------------------------------------
# Cross-Network Constraints
# ---------------------------------------------------------------------------

def validate_networks(networks: dict[str, Network]) -> ValidationResult:
    """Validate every network plus overlaps between networks.

    Overlapping top-level networks are reported as warnings; catch-all
    networks such as BICAN's 0.0.0.0/0 are ignored.
    """
    result = ValidationResult()
    for name in sorted(networks):
        result.extend(validate_network(networks[name]))

    routed = [
        networks[name] for name in sorted(networks)
        if networks[name].cidr is not None and networks[name].cidr.prefixlen > 0
    ]
    for first, second in combinations(routed, 2):
        if first.cidr.overlaps(second.cidr):
            result.add(ConstraintViolation(
                severity=Severity.WARNING,
                code="network_overlap",
                message=f"{first.name} ({first.cidr}) overlaps {second.name} ({second.cidr})",
                network=first.name,
            ))
    return result
