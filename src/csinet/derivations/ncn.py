"""Management node (NCN) addressing.

Runs after build_csm_networks(): reserves an address for every NCN in
each bootstrap_dhcp subnet, renames those reservations once hostnames
are known, and finally recomputes the DHCP ranges so they start past
the NCN reservations and stop short of the MetalLB pools.
"""

from __future__ import annotations

import logging

from csinet.constraints.errors import InvalidInputError, SubnetNotFoundError
from csinet.derivations.defaults import VALID_NET_NAMES
from csinet.derivations.network_builder import BOOTSTRAP_DHCP_SUBNET
from csinet.models.addressing import broadcast, parse_network, subtract
from csinet.models.hardware import ManagementNode
from csinet.models.network import UAI_MACVLAN_SUBNET, CompatibilityMode, Network, Subnet

logger = logging.getLogger(__name__)

# Networks whose bootstrap DHCP range must end before the MetalLB pools.
USER_FACING_NETWORKS = ("CAN", "CMN", "CHN")


def _find_subnet(network: Network, name: str) -> Subnet | None:
    try:
        return network.look_up_subnet(name)
    except SubnetNotFoundError:
        return None


def bootstrap_subnets(networks: dict[str, Network]) -> dict[str, Subnet]:
    """Return the live bootstrap_dhcp subnet of each network that has one."""
    subnets = {}
    for name in sorted(networks):
        subnet = _find_subnet(networks[name], BOOTSTRAP_DHCP_SUBNET)
        if subnet is not None:
            subnets[name] = subnet
    return subnets


def allocate_ncn_ips(networks: dict[str, Network], ncns: list[ManagementNode]) -> None:
    """Reserve every NCN's address in every bootstrap_dhcp subnet.

    Reservations are named and commented with the NCN xname. On the HMN
    the node's BMC is reserved first, named by the BMC xname and
    commented '<xname>-mgmt'. The reserved addresses are recorded on
    each ManagementNode.
    """
    subnets = bootstrap_subnets(networks)
    for ncn in ncns:
        for net_name, subnet in subnets.items():
            if net_name == "HMN":
                bmc = subnet.add_reservation(ncn.bmc_xname, f"{ncn.xname}-mgmt")
                ncn.bmc_ip = bmc.ipv4
            reservation = subnet.add_reservation(ncn.xname, ncn.xname)
            ncn.ip_addresses[net_name] = reservation.ipv4
            logger.debug("Reserved %s for %s in %s", reservation.ipv4, ncn.xname, net_name)


def update_reservations(subnet: Subnet, ncns: list[ManagementNode]) -> None:
    """Rename NCN reservations to hostnames and add their DNS aliases."""
    net = subnet.net_name.lower()
    by_xname = {ncn.xname: ncn for ncn in ncns if ncn.hostname}
    by_bmc = {f"{ncn.xname}-mgmt": ncn for ncn in ncns if ncn.hostname}

    for reservation in subnet.reservations:
        ncn = by_xname.get(reservation.comment)
        if ncn is not None:
            reservation.name = ncn.hostname
            reservation.add_alias(f"{ncn.hostname}-{net}")
            reservation.add_alias(f"time-{net}")
            reservation.add_alias(f"time-{net}.local")
            if ncn.subrole.lower() == "storage" and net == "hmn":
                reservation.add_alias("rgw-vip.hmn")
            if net == "nmn":
                # The NCN xname resolves to its NMN address.
                reservation.add_alias(ncn.xname)

        bmc_of = by_bmc.get(reservation.comment)
        if bmc_of is not None:
            reservation.comment = reservation.name
            reservation.add_alias(f"{bmc_of.hostname}-mgmt")

        if net == "nmn":
            reservation.add_alias(f"{reservation.name}.local")


def update_ncn_reservations(networks: dict[str, Network], ncns: list[ManagementNode]) -> None:
    """Apply update_reservations() to every bootstrap_dhcp and the NMN UAI subnet."""
    for name in VALID_NET_NAMES:
        network = networks.get(name)
        if network is None:
            continue
        subnet = _find_subnet(network, BOOTSTRAP_DHCP_SUBNET)
        if subnet is not None:
            update_reservations(subnet, ncns)
        if name == "NMN":
            uai = _find_subnet(network, UAI_MACVLAN_SUBNET)
            if uai is not None:
                update_reservations(uai, ncns)


def _pool_start(net_name: str, overrides: dict[str, str]):
    """Return the first address of the earliest MetalLB pool, or the broadcast address."""
    lower = net_name.lower()
    starts = []
    for key in (f"{lower}-static-pool", f"{lower}-dynamic-pool"):
        raw = overrides.get(key, "")
        if not raw:
            continue
        try:
            starts.append(parse_network(raw).network_address)
        except InvalidInputError:
            logger.warning("Ignoring invalid %s %r when sizing the DHCP range", key, raw)
    if starts:
        return min(starts)
    return broadcast(parse_network(overrides[f"{lower}-cidr"]))


def finalize_dhcp_ranges(
    networks: dict[str, Network],
    overrides: dict[str, str] | None = None,
    mode: CompatibilityMode = CompatibilityMode.STANDARD,
) -> None:
    """Recompute DHCP ranges once all reservations are in place.

    CAN, CMN and CHN never use the supernet range. Their DHCP range ends
    no later than just before the first MetalLB pool (or the broadcast
    address), and one address earlier when the gateway sits there.
    """
    overrides = overrides or {}
    for name in VALID_NET_NAMES:
        network = networks.get(name)
        if network is None:
            continue

        subnet = _find_subnet(network, BOOTSTRAP_DHCP_SUBNET)
        if subnet is not None and subnet.cidr is not None:
            if name in USER_FACING_NETWORKS:
                subnet.update_dhcp_range(CompatibilityMode.STANDARD)
                if overrides.get(f"{name.lower()}-cidr"):
                    pool_start = _pool_start(name, overrides)
                    if subnet.gateway == subtract(pool_start, 1):
                        limit = subtract(pool_start, 2)
                    else:
                        limit = subtract(pool_start, 1)
                    subnet.dhcp_end = min(subnet.dhcp_end, limit)
            else:
                subnet.update_dhcp_range(mode)

        if name == "NMN":
            uai = _find_subnet(network, UAI_MACVLAN_SUBNET)
            if uai is not None:
                uai.update_dhcp_range(CompatibilityMode.STANDARD)
