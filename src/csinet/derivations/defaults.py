"""Built-in addressing defaults and network templates.

Template factories return a fresh Network on every call so callers can
mutate the result without affecting later builds.
"""

from __future__ import annotations

from csinet.models.network import Network

# Untagged
DEFAULT_MTL_VLAN = 0
DEFAULT_HMN_VLAN = 4
DEFAULT_NMN_VLAN = 2
DEFAULT_MACVLAN_VLAN = 2
DEFAULT_CMN_VLAN = 7
DEFAULT_CAN_VLAN = 6
DEFAULT_CHN_VLAN = 5
DEFAULT_BICAN_VLAN = 1
DEFAULT_HSN_VLAN_RANGE = (613, 868)
DEFAULT_NMN_RVR_VLAN_RANGE = (1770, 1999)
DEFAULT_NMN_MTN_VLAN_RANGE = (2000, 2999)
DEFAULT_HMN_RVR_VLAN_RANGE = (1513, 1769)
DEFAULT_HMN_MTN_VLAN_RANGE = (3000, 3999)

DEFAULT_HMN_CIDR = "10.254.0.0/17"
DEFAULT_HMN_MTN_CIDR = "10.104.0.0/17"
DEFAULT_HMN_RVR_CIDR = "10.107.0.0/17"
DEFAULT_NMN_CIDR = "10.252.0.0/17"
DEFAULT_NMN_MTN_CIDR = "10.100.0.0/17"
DEFAULT_NMN_RVR_CIDR = "10.106.0.0/17"
DEFAULT_NMNLB_CIDR = "10.92.100.0/24"
DEFAULT_HMNLB_CIDR = "10.94.100.0/24"
DEFAULT_MACVLAN_CIDR = "10.252.124.0/23"
DEFAULT_HSN_CIDR = "10.253.0.0/16"
DEFAULT_CMN_CIDR = "10.103.6.0/24"
DEFAULT_CAN_CIDR = "10.102.11.0/24"
DEFAULT_CHN_CIDR = "10.104.7.0/24"
DEFAULT_MTL_CIDR = "10.1.1.0/16"
DEFAULT_BICAN_CIDR = "0.0.0.0/0"

DEFAULT_CABINET_MASK = 22
DEFAULT_NETWORKING_HARDWARE_MASK = 24
DEFAULT_BOOTSTRAP_DHCP_MASK = 24
DEFAULT_UAI_MASK = 23
DEFAULT_LOAD_BALANCER_MASK = 24
DEFAULT_PARENT_DEVICE = "bond0"

# Main network names, in the order their DHCP ranges are finalized.
VALID_NET_NAMES = (
    "BICAN", "CAN", "CHN", "CMN", "HMN", "HMN_MTN", "HMN_RVR",
    "MTL", "NMN", "NMN_MTN", "NMN_RVR",
)

# Reservation name -> DNS aliases for the NMN UAI macvlan subnet.
DEFAULT_UAI_SUBNET_RESERVATIONS: dict[str, tuple[str, ...]] = {
    "uai_macvlan_bridge": ("uai-macvlan-bridge",),
    "slurmctld_service": ("slurmctld-service", "slurmctld-service-nmn"),
    "slurmdbd_service": ("slurmdbd-service", "slurmdbd-service-nmn"),
    "pbs_service": ("pbs-service", "pbs-service-nmn"),
    "pbs_comm_service": ("pbs-comm-service", "pbs-comm-service-nmn"),
}

# MetalLB reservations whose final octet must not move between releases.
# Reservation name -> (final octet, DNS aliases).
PINNED_METALLB_RESERVATIONS: dict[str, tuple[int, tuple[str, ...]]] = {
    "istio-ingressgateway": (71, (
        "api-gw-service", "api-gw-service-nmn.local", "packages", "registry",
        "spire.local", "api_gw_service", "registry.local", "packages",
        "packages.local", "spire",
    )),
    "istio-ingressgateway-local": (81, ("api-gw-service.local",)),
    "rsyslog-aggregator": (72, ("rsyslog-agg-service",)),
    "cray-tftp": (60, ("tftp-service",)),
    "unbound": (225, ("unbound",)),
    "docker-registry": (73, ("docker_registry_service",)),
}


def _ethernet(name, full_name, cidr, vlan_range, comment="", parent_device=DEFAULT_PARENT_DEVICE):
    return Network(
        name=name,
        full_name=full_name,
        cidr=cidr,
        vlan_range=list(vlan_range),
        comment=comment,
        parent_device=parent_device,
    )


def default_hmn() -> Network:
    return _ethernet("HMN", "Hardware Management Network", DEFAULT_HMN_CIDR, [DEFAULT_HMN_VLAN])


def default_nmn() -> Network:
    return _ethernet("NMN", "Node Management Network", DEFAULT_NMN_CIDR, [DEFAULT_NMN_VLAN])


def default_cmn() -> Network:
    return _ethernet("CMN", "Customer Management Network", DEFAULT_CMN_CIDR, [DEFAULT_CMN_VLAN])


def default_can() -> Network:
    return _ethernet("CAN", "Customer Access Network", DEFAULT_CAN_CIDR, [DEFAULT_CAN_VLAN])


def default_chn() -> Network:
    return _ethernet("CHN", "Customer High-Speed Network", DEFAULT_CHN_CIDR, [DEFAULT_CHN_VLAN])


def default_mtl() -> Network:
    return _ethernet(
        "MTL", "Provisioning Network (untagged)", DEFAULT_MTL_CIDR, [DEFAULT_MTL_VLAN],
        comment="This network is only valid for the NCNs",
    )


def default_hsn() -> Network:
    return Network(
        name="HSN",
        full_name="High Speed Network",
        cidr=DEFAULT_HSN_CIDR,
        vlan_range=list(DEFAULT_HSN_VLAN_RANGE),
        net_type="slingshot10",
    )


def default_bican(system_default_route: str = "") -> Network:
    """The BICAN toggle network; it only names the default-route network."""
    return Network(
        name="BICAN",
        full_name="SystemDefaultRoute points the network name of the default route",
        cidr=DEFAULT_BICAN_CIDR,
        vlan_range=[DEFAULT_BICAN_VLAN],
        system_default_route=system_default_route,
    )


def default_nmn_load_balancer() -> Network:
    return Network(
        name="NMNLB",
        full_name="Node Management Network LoadBalancers",
        cidr=DEFAULT_NMNLB_CIDR,
    )


def default_hmn_load_balancer() -> Network:
    return Network(
        name="HMNLB",
        full_name="Hardware Management Network LoadBalancers",
        cidr=DEFAULT_HMNLB_CIDR,
    )
