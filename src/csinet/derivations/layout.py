"""Per-network layout configuration.

A NetworkLayoutConfiguration says how one logical network is carved up:
which standard subnets it gets, what sizes they are, and whether it is
subdivided per cabinet. default_layouts() assembles the standard set
for a system and applies the ``<net>-bootstrap-vlan`` and ``<net>-cidr``
overrides.
"""

from __future__ import annotations

from dataclasses import dataclass

from csinet.constraints.errors import InvalidInputError
from csinet.derivations import defaults
from csinet.ipam.allocator import subnet_within
from csinet.models.addressing import parse_network
from csinet.models.hardware import CabinetClass, CabinetGroupDetail, ManagementSwitch
from csinet.models.network import Network

USER_NETWORKS = ("CAN", "CHN")


@dataclass
class NetworkLayoutConfiguration:
    """How to lay out a single network.

    Attributes:
        template: Network to start from; copied before building.
        subdivide_by_cabinet: Generate one cabinet_<id> subnet per cabinet.
        group_networks_by_cabinet_type: Per-cabinet subnets live in the
            separate *_RVR / *_MTN networks instead of this one.
        include_bootstrap_dhcp: Add a bootstrap_dhcp subnet when the
            network's CIDR is given.
        include_networking_hardware_subnet: Add a network_hardware subnet
            with switch reservations.
        include_uai_subnet: Add the uai_macvlan subnet.
        supernet_hack: Allow CompatibilityMode.SUPERNET to rewrite this
            network's hack subnets.
        cabinet_mask: Prefix length of per-cabinet subnets.
        networking_hardware_mask: Prefix length of network_hardware.
        bootstrap_dhcp_mask: Desired prefix length of bootstrap_dhcp.
        base_vlan: First VLAN of the network; None means the template's.
    """

    template: Network
    subdivide_by_cabinet: bool = False
    group_networks_by_cabinet_type: bool = False
    include_bootstrap_dhcp: bool = False
    include_networking_hardware_subnet: bool = False
    include_uai_subnet: bool = False
    supernet_hack: bool = False
    cabinet_mask: int = defaults.DEFAULT_CABINET_MASK
    networking_hardware_mask: int = defaults.DEFAULT_NETWORKING_HARDWARE_MASK
    bootstrap_dhcp_mask: int = defaults.DEFAULT_BOOTSTRAP_DHCP_MASK
    base_vlan: int | None = None

    @property
    def name(self) -> str:
        return self.template.name

    @property
    def vlan(self) -> int:
        """The base VLAN, falling back to the template's first VLAN."""
        if self.base_vlan is not None:
            return self.base_vlan
        return self.template.base_vlan

    def is_valid(
        self,
        cabinet_groups: list[CabinetGroupDetail],
        switches: list[ManagementSwitch],
    ) -> None:
        """Raise InvalidInputError if the inputs cannot satisfy this layout."""
        if self.include_networking_hardware_subnet and not switches:
            raise InvalidInputError(
                f"{self.name}: a networking hardware subnet needs at least one management switch"
            )
        if self.subdivide_by_cabinet and not any(len(group) for group in cabinet_groups):
            raise InvalidInputError(
                f"{self.name}: cannot subdivide by cabinet without any cabinets"
            )


# ---------------------------------------------------------------------------
# Default layouts
# ---------------------------------------------------------------------------

def gen_default_bican_config(system_default_route: str = "") -> NetworkLayoutConfiguration:
    return NetworkLayoutConfiguration(template=defaults.default_bican(system_default_route))


def gen_default_hmn_config() -> NetworkLayoutConfiguration:
    return NetworkLayoutConfiguration(
        template=defaults.default_hmn(),
        group_networks_by_cabinet_type=True,
        include_bootstrap_dhcp=True,
        include_networking_hardware_subnet=True,
        supernet_hack=True,
    )


def gen_default_nmn_config() -> NetworkLayoutConfiguration:
    return NetworkLayoutConfiguration(
        template=defaults.default_nmn(),
        group_networks_by_cabinet_type=True,
        include_bootstrap_dhcp=True,
        include_networking_hardware_subnet=True,
        include_uai_subnet=True,
        supernet_hack=True,
    )


def gen_default_hsn_config() -> NetworkLayoutConfiguration:
    return NetworkLayoutConfiguration(template=defaults.default_hsn())


def gen_default_cmn_config(ncns: int, switches: int) -> NetworkLayoutConfiguration:
    """CMN subnets are sized to the number of NCNs and switches.

    >>> layout = gen_default_cmn_config(9, 4)
    >>> layout.bootstrap_dhcp_mask, layout.networking_hardware_mask
    (28, 29)
    """
    cmn = defaults.default_cmn()
    bootstrap = subnet_within(cmn.cidr, ncns)
    hardware = subnet_within(cmn.cidr, switches)
    return NetworkLayoutConfiguration(
        template=cmn,
        include_bootstrap_dhcp=True,
        include_networking_hardware_subnet=True,
        supernet_hack=True,
        networking_hardware_mask=hardware.prefixlen,
        bootstrap_dhcp_mask=bootstrap.prefixlen,
    )


def gen_default_can_config() -> NetworkLayoutConfiguration:
    return NetworkLayoutConfiguration(
        template=defaults.default_can(),
        include_bootstrap_dhcp=True,
    )


def gen_default_chn_config() -> NetworkLayoutConfiguration:
    return NetworkLayoutConfiguration(
        template=defaults.default_chn(),
        include_bootstrap_dhcp=True,
    )


def gen_default_mtl_config() -> NetworkLayoutConfiguration:
    return NetworkLayoutConfiguration(
        template=defaults.default_mtl(),
        include_bootstrap_dhcp=True,
        include_networking_hardware_subnet=True,
        supernet_hack=True,
    )


def _cabinet_layout(base, name, full_name, cidr, vlan_range) -> NetworkLayoutConfiguration:
    """Derive a per-cabinet-class network layout from an HMN/NMN layout."""
    base.template.name = name
    base.template.full_name = full_name
    base.template.cidr = parse_network(cidr)
    base.template.vlan_range = list(vlan_range)
    base.subdivide_by_cabinet = True
    base.include_bootstrap_dhcp = False
    base.include_networking_hardware_subnet = False
    base.include_uai_subnet = False
    base.supernet_hack = False
    return base


def _cabinet_counts(cabinet_groups: list[CabinetGroupDetail]) -> dict[CabinetClass, int]:
    counts = {cabinet_class: 0 for cabinet_class in CabinetClass}
    for group in cabinet_groups:
        counts[group.cabinet_class] += len(group)
    return counts


def override_int(overrides: dict[str, str], key: str) -> int | None:
    raw = overrides.get(key, "")
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidInputError(f"{key} must be an integer, not {raw!r}") from e


def normalized_name(name: str) -> str:
    """Return the override key prefix for a network name.

    >>> normalized_name('NMN_RVR')
    'nmn-rvr'
    """
    return name.lower().replace("_", "-")


def apply_layout_overrides(
    layout: NetworkLayoutConfiguration, overrides: dict[str, str],
) -> NetworkLayoutConfiguration:
    """Apply ``<net>-bootstrap-vlan`` and ``<net>-cidr`` to a layout in place."""
    prefix = normalized_name(layout.name)
    vlan = override_int(overrides, f"{prefix}-bootstrap-vlan")
    if vlan is not None:
        layout.base_vlan = vlan
        if layout.template.vlan_range:
            layout.template.vlan_range[0] = vlan
        else:
            layout.template.vlan_range = [vlan]
    else:
        layout.base_vlan = layout.template.base_vlan

    cidr = overrides.get(f"{prefix}-cidr", "")
    if cidr:
        layout.template.cidr = parse_network(cidr)
    return layout


def default_layouts(
    ncns: int,
    switches: list[ManagementSwitch],
    cabinet_groups: list[CabinetGroupDetail],
    overrides: dict[str, str] | None = None,
    bican_user_network: str = "CAN",
    retain_unused_user_network: bool = False,
) -> dict[str, NetworkLayoutConfiguration]:
    """Assemble the standard layouts for a system, keyed by network name."""
    overrides = overrides or {}
    user_network = bican_user_network.upper()
    if user_network not in USER_NETWORKS:
        raise InvalidInputError(
            f"bican user network must be one of {', '.join(USER_NETWORKS)}, not {bican_user_network!r}"
        )

    layouts = {
        "BICAN": gen_default_bican_config(user_network),
        "CMN": gen_default_cmn_config(ncns, len(switches)),
        "HMN": gen_default_hmn_config(),
        "HSN": gen_default_hsn_config(),
        "MTL": gen_default_mtl_config(),
        "NMN": gen_default_nmn_config(),
    }
    if user_network == "CAN" or retain_unused_user_network:
        layouts["CAN"] = gen_default_can_config()
    if user_network == "CHN" or retain_unused_user_network:
        layouts["CHN"] = gen_default_chn_config()

    counts = _cabinet_counts(cabinet_groups)
    has_mountain = counts[CabinetClass.MOUNTAIN] > 0 or counts[CabinetClass.HILL] > 0
    has_river = counts[CabinetClass.RIVER] > 0

    if layouts["HMN"].group_networks_by_cabinet_type:
        if has_mountain:
            layouts["HMN_MTN"] = _cabinet_layout(
                gen_default_hmn_config(), "HMN_MTN",
                "Mountain Compute Hardware Management Network",
                defaults.DEFAULT_HMN_MTN_CIDR, defaults.DEFAULT_HMN_MTN_VLAN_RANGE,
            )
        if has_river:
            layouts["HMN_RVR"] = _cabinet_layout(
                gen_default_hmn_config(), "HMN_RVR",
                "River Compute Hardware Management Network",
                defaults.DEFAULT_HMN_RVR_CIDR, defaults.DEFAULT_HMN_RVR_VLAN_RANGE,
            )
    if layouts["NMN"].group_networks_by_cabinet_type:
        if has_mountain:
            layouts["NMN_MTN"] = _cabinet_layout(
                gen_default_nmn_config(), "NMN_MTN",
                "Mountain Compute Node Management Network",
                defaults.DEFAULT_NMN_MTN_CIDR, defaults.DEFAULT_NMN_MTN_VLAN_RANGE,
            )
        if has_river:
            layouts["NMN_RVR"] = _cabinet_layout(
                gen_default_nmn_config(), "NMN_RVR",
                "River Compute Node Management Network",
                defaults.DEFAULT_NMN_RVR_CIDR, defaults.DEFAULT_NMN_RVR_VLAN_RANGE,
            )

    for layout in layouts.values():
        apply_layout_overrides(layout, overrides)
    return layouts
