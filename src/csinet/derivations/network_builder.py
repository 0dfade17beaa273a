"""Topology builder: turn layouts plus hardware inputs into Networks.

This is the central derivation. Each layout is expanded into a Network
with its MetalLB pools, networking hardware subnet, bootstrap DHCP
subnet, UAI subnet and per-cabinet subnets; the NMN and HMN load
balancer networks are then added with their pinned reservations.
"""

from __future__ import annotations

import copy
import logging

from csinet.constraints.errors import BuildError, IPAMError, InvalidInputError
from csinet.derivations import defaults
from csinet.derivations.layout import NetworkLayoutConfiguration, normalized_name, override_int
from csinet.models.addressing import find_gateway_ip, parse_address, parse_network, parse_prefix
from csinet.models.hardware import (
    CabinetClass,
    CabinetFilter,
    CabinetGroupDetail,
    CabinetKind,
    ManagementSwitch,
    ManagementSwitchType,
    and_cabinet_filter,
    cabinet_air_cooled_chassis_count_filter,
    cabinet_class_filter,
    cabinet_kind_filter,
    or_cabinet_filter,
    switch_xnames_by_type,
)
from csinet.models.network import UAI_MACVLAN_SUBNET, CompatibilityMode, Network, Subnet
from csinet.models.vlan import VLANRegistry

logger = logging.getLogger(__name__)

BOOTSTRAP_DHCP_SUBNET = "bootstrap_dhcp"
NETWORK_HARDWARE_SUBNET = "network_hardware"

# Networks that carry Kubernetes API VIPs in their bootstrap subnet.
_VIP_NETWORKS = ("NMN", "HMN", "CMN", "CAN", "CHN")

# (override kind, subnet name, full name, MetalLB pool name)
_METALLB_POOLS = {
    "CMN": (
        ("static", "cmn_metallb_static_pool", "CMN Static Pool MetalLB", "customer-management-static"),
        ("dynamic", "cmn_metallb_address_pool", "CMN Dynamic MetalLB", "customer-management"),
    ),
    "CAN": (
        ("static", "can_metallb_static_pool", "CAN Static Pool MetalLB", "customer-access-static"),
        ("dynamic", "can_metallb_address_pool", "CAN Dynamic MetalLB", "customer-access"),
    ),
    "CHN": (
        ("static", "chn_metallb_static_pool", "CHN Static Pool MetalLB", "customer-high-speed-static"),
        ("dynamic", "chn_metallb_address_pool", "CHN Dynamic MetalLB", "customer-high-speed"),
    ),
}

RIVER_CABINET_FILTER: CabinetFilter = or_cabinet_filter(
    cabinet_class_filter(CabinetClass.RIVER),
    # EX2500 cabinets with an air-cooled chassis also host river hardware.
    and_cabinet_filter(
        cabinet_kind_filter(CabinetKind.EX2500),
        cabinet_air_cooled_chassis_count_filter(1),
    ),
)
MOUNTAIN_CABINET_FILTER: CabinetFilter = or_cabinet_filter(
    cabinet_class_filter(CabinetClass.MOUNTAIN),
    cabinet_class_filter(CabinetClass.HILL),
)
ALL_CABINETS_FILTER: CabinetFilter = or_cabinet_filter(
    cabinet_class_filter(CabinetClass.RIVER),
    cabinet_class_filter(CabinetClass.HILL),
    cabinet_class_filter(CabinetClass.MOUNTAIN),
)


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------

def resolve_gateway(net_name: str, overrides: dict[str, str], version: int = 4):
    """Return the gateway override for a network, or None.

    IPv4 reads ``<net>-gateway4`` then ``<net>-gateway``; IPv6 reads
    ``<net>-gateway6``. An unparseable value is logged and ignored.
    """
    prefix = normalized_name(net_name)
    if version == 4:
        keys = (f"{prefix}-gateway4", f"{prefix}-gateway")
    else:
        keys = (f"{prefix}-gateway6",)

    for key in keys:
        raw = overrides.get(key, "")
        if not raw:
            continue
        try:
            gateway = parse_address(raw)
        except InvalidInputError:
            logger.warning(
                "%s had a gateway override present but an invalid value %r, using the default",
                net_name, raw,
            )
            return None
        if gateway.version != version:
            logger.warning(
                "%s gateway override %s is not IPv%d, using the default", net_name, gateway, version,
            )
            return None
        return gateway
    return None


def _override_network(overrides: dict[str, str], key: str):
    raw = overrides.get(key, "")
    if not raw:
        return None
    try:
        return parse_network(raw)
    except InvalidInputError:
        logger.warning("Invalid %s %r, not creating it", key, raw)
        return None


# ---------------------------------------------------------------------------
# Subnet assembly
# ---------------------------------------------------------------------------

def _add_metallb_pools(network: Network, vlan_id: int, overrides: dict[str, str]) -> None:
    lower = network.name.lower()
    pools: dict[str, Subnet] = {}
    for kind, subnet_name, full_name, pool_name in _METALLB_POOLS[network.name]:
        cidr = _override_network(overrides, f"{lower}-{kind}-pool")
        if cidr is None:
            continue
        try:
            subnet = network.add_subnet_by_cidr(cidr, subnet_name, vlan_id)
        except IPAMError as e:
            raise BuildError(
                f"couldn't add MetalLB {kind} pool of {cidr} to net {network.cidr}: {e}"
            ) from e
        subnet.full_name = full_name
        subnet.metallb_pool_name = pool_name
        pools[kind] = subnet

    external_dns = overrides.get("cmn-external-dns", "")
    if network.name == "CMN" and "static" in pools and external_dns:
        pools["static"].add_reservation_with_ip(
            "external-dns", external_dns, "site to system lookups",
        )


def _add_hsn_base_subnet(network: Network, overrides: dict[str, str]) -> None:
    cidr = _override_network(overrides, "hsn-cidr")
    if cidr is None:
        return
    subnet = network.add_subnet_by_cidr(cidr, "hsn_base_subnet", defaults.DEFAULT_HSN_VLAN_RANGE[0])
    subnet.full_name = "HSN Base Subnet"


def _add_networking_hardware_subnet(
    network: Network, layout: NetworkLayoutConfiguration, switches: list[ManagementSwitch],
) -> None:
    subnet = network.add_subnet(layout.networking_hardware_mask, NETWORK_HARDWARE_SUBNET, layout.vlan)
    subnet.full_name = f"{network.name} Management Network Infrastructure"
    subnet.reserve_net_mgmt_ips(
        switch_xnames_by_type(switches, ManagementSwitchType.SPINE),
        switch_xnames_by_type(switches, ManagementSwitchType.LEAF),
        switch_xnames_by_type(switches, ManagementSwitchType.LEAF_BMC),
        switch_xnames_by_type(switches, ManagementSwitchType.CDU),
    )


def _add_bootstrap_dhcp_subnet(
    network: Network,
    layout: NetworkLayoutConfiguration,
    switches: list[ManagementSwitch],
    mask: int,
    user_cidr,
    gateway,
) -> Subnet:
    subnet = network.add_biggest_subnet(mask, BOOTSTRAP_DHCP_SUBNET, layout.vlan)
    subnet.full_name = f"{network.name} Bootstrap DHCP Subnet"
    subnet.parent_device = network.parent_device

    if network.name in ("CAN", "CHN") and user_cidr is not None:
        subnet.cidr = parse_prefix(user_cidr)
    if gateway is not None:
        subnet.gateway = gateway
    if network.name == "CAN":
        subnet.add_reservation("can-switch-1")
        subnet.add_reservation("can-switch-2")
    elif network.name == "CHN":
        subnet.reserve_edge_switch_ips(switch_xnames_by_type(switches, ManagementSwitchType.EDGE))

    if network.name in _VIP_NETWORKS:
        subnet.add_reservation("kubeapi-vip", "k8s-virtual-ip")
        if network.name == "NMN":
            subnet.add_reservation("rgw-vip", "rgw-virtual-ip")
    subnet.update_dhcp_range(CompatibilityMode.STANDARD)
    return subnet


def _add_uai_subnet(network: Network, overrides: dict[str, str]) -> None:
    vlan_id = override_int(overrides, "nmn-bootstrap-vlan")
    if vlan_id is None:
        vlan_id = defaults.DEFAULT_MACVLAN_VLAN
    subnet = network.add_subnet(defaults.DEFAULT_UAI_MASK, UAI_MACVLAN_SUBNET, vlan_id)
    subnet.gateway = find_gateway_ip(network.cidr)
    subnet.full_name = "NMN UAIs"

    for name in sorted(defaults.DEFAULT_UAI_SUBNET_RESERVATIONS):
        aliases = defaults.DEFAULT_UAI_SUBNET_RESERVATIONS[name]
        reservation = subnet.add_reservation(name, ",".join(aliases))
        for alias in aliases:
            reservation.add_alias(alias)
    subnet.update_dhcp_range(CompatibilityMode.STANDARD)


def _cabinet_filter_for(name: str) -> CabinetFilter:
    if name.endswith("RVR"):
        return RIVER_CABINET_FILTER
    if name.endswith("MTN"):
        return MOUNTAIN_CABINET_FILTER
    return ALL_CABINETS_FILTER


def create_net_from_layout(
    layout: NetworkLayoutConfiguration,
    cabinet_groups: list[CabinetGroupDetail],
    switches: list[ManagementSwitch],
    overrides: dict[str, str],
    mode: CompatibilityMode = CompatibilityMode.STANDARD,
) -> Network:
    """Build one Network from its layout."""
    network = copy.deepcopy(layout.template)
    lower = normalized_name(network.name)
    bootstrap_mask = layout.bootstrap_dhcp_mask

    user_cidr = None
    if network.name in _METALLB_POOLS:
        user_cidr = _override_network(overrides, f"{lower}-cidr")
        if user_cidr is not None:
            bootstrap_mask = user_cidr.prefixlen
        if network.name == "CMN" or user_cidr is not None:
            _add_metallb_pools(network, layout.vlan, overrides)

    if network.name == "HSN":
        _add_hsn_base_subnet(network, overrides)

    if layout.include_networking_hardware_subnet:
        _add_networking_hardware_subnet(network, layout, switches)

    gateway = resolve_gateway(network.name, overrides, 4)
    bootstrap = None
    if layout.include_bootstrap_dhcp and overrides.get(f"{lower}-cidr"):
        bootstrap = _add_bootstrap_dhcp_subnet(
            network, layout, switches, bootstrap_mask, user_cidr, gateway,
        )

    my_asn = override_int(overrides, f"bgp-{lower}-asn")
    if my_asn is not None:
        network.peer_asn = override_int(overrides, "bgp-asn") or 0
        network.my_asn = my_asn

    if layout.include_uai_subnet:
        _add_uai_subnet(network, overrides)

    if layout.subdivide_by_cabinet:
        network.gen_subnets(cabinet_groups, layout.cabinet_mask, _cabinet_filter_for(network.name))

    if layout.supernet_hack and mode is CompatibilityMode.SUPERNET:
        network.apply_supernet_hack()

    # An explicit gateway also wins over the supernet gateway.
    if bootstrap is not None and gateway is not None:
        bootstrap.gateway = gateway

    for subnet in network.subnets:
        subnet.net_name = network.name
    return network


def _build_load_balancer(
    network: Network, pool_name: str, full_name: str, metallb_pool_name: str,
    vlan_id: int, hardware: bool = False,
) -> Network:
    pool = network.add_subnet(defaults.DEFAULT_LOAD_BALANCER_MASK, pool_name, vlan_id)
    pool.full_name = full_name
    pool.metallb_pool_name = metallb_pool_name
    for name, (octet, aliases) in defaults.PINNED_METALLB_RESERVATIONS.items():
        if hardware:
            # No local ingress and no API gateway aliases on the HMN.
            if name == "istio-ingressgateway-local":
                continue
            if name == "istio-ingressgateway":
                aliases = ()
        pool.add_reservation_with_pin(name, ",".join(aliases), octet)
    return network


def load_balancer_networks(overrides: dict[str, str]) -> dict[str, Network]:
    """Return the NMNLB and HMNLB networks with their MetalLB pools."""
    nmn_vlan = override_int(overrides, "nmn-bootstrap-vlan")
    hmn_vlan = override_int(overrides, "hmn-bootstrap-vlan")
    return {
        "NMNLB": _build_load_balancer(
            defaults.default_nmn_load_balancer(), "nmn_metallb_address_pool",
            "NMN MetalLB", "node-management",
            defaults.DEFAULT_NMN_VLAN if nmn_vlan is None else nmn_vlan,
        ),
        "HMNLB": _build_load_balancer(
            defaults.default_hmn_load_balancer(), "hmn_metallb_address_pool",
            "HMN MetalLB", "hardware-management",
            defaults.DEFAULT_HMN_VLAN if hmn_vlan is None else hmn_vlan,
            hardware=True,
        ),
    }


# ---------------------------------------------------------------------------
# VLAN bookkeeping
# ---------------------------------------------------------------------------

def _allocate_layout_vlans(layout: NetworkLayoutConfiguration, vlans: VLANRegistry) -> None:
    vlan_range = layout.template.vlan_range
    if len(vlan_range) == 2:
        vlans.allocate_range(vlan_range[0], vlan_range[1])
        logger.debug("Allocating VLANs %s %d-%d", layout.name, vlan_range[0], vlan_range[1])
    elif vlan_range:
        vlans.allocate(vlan_range[0])
        logger.debug("Allocating VLAN %s %d", layout.name, vlan_range[0])


def _record_vlans(network: Network, vlans: VLANRegistry) -> None:
    for vlan_id in network.allocated_vlans():
        if vlans.reserve(vlan_id):
            logger.debug("Recorded VLAN %d for %s", vlan_id, network.name)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_csm_networks(
    layouts: dict[str, NetworkLayoutConfiguration],
    cabinet_groups: list[CabinetGroupDetail],
    switches: list[ManagementSwitch],
    overrides: dict[str, str] | None = None,
    mode: CompatibilityMode = CompatibilityMode.STANDARD,
    vlans: VLANRegistry | None = None,
) -> dict[str, Network]:
    """Build every network in layouts, plus NMNLB and HMNLB.

    Networks are built in name order so the result does not depend on
    the order of layouts. Every VLAN used is recorded in vlans.

    Raises:
        BuildError: chained to the underlying error, naming the network.
    """
    overrides = overrides or {}
    if vlans is None:
        vlans = VLANRegistry()
    for group in cabinet_groups:
        group.populate_ids()

    networks: dict[str, Network] = {}
    for name in sorted(layouts):
        layout = layouts[name]
        if name == "CHN" and not overrides.get("chn-cidr"):
            logger.info("No CHN network definition provided, skipping it")
            continue
        logger.info("Building %s network", name)
        try:
            _allocate_layout_vlans(layout, vlans)
            networks[name] = create_net_from_layout(
                layout, cabinet_groups, switches, overrides, mode,
            )
        except BuildError:
            raise
        except IPAMError as e:
            raise BuildError(f"couldn't add {name} network because {e}") from e

    try:
        networks.update(load_balancer_networks(overrides))
    except IPAMError as e:
        raise BuildError(f"couldn't add the load balancer networks because {e}") from e

    for network in networks.values():
        try:
            _record_vlans(network, vlans)
        except IPAMError as e:
            raise BuildError(f"couldn't record VLANs for {network.name} because {e}") from e
    return networks
