"""Shared test fixtures for csinet."""

import pytest

from csinet.derivations.layout import default_layouts
from csinet.derivations.network_builder import build_csm_networks
from csinet.models.hardware import (
    CabinetGroupDetail,
    CabinetKind,
    ManagementNode,
    ManagementSwitch,
    ManagementSwitchType,
)
from csinet.models.network import CompatibilityMode

CONFIG_TOML = """\
[system]
ncns = 3
bican_user_network = "CAN"
compatibility = "standard"

[overrides]
can-cidr = "10.102.5.0/24"
can-gateway = "10.102.5.1"
can-static-pool = "10.102.5.128/28"
can-dynamic-pool = "10.102.5.192/26"
cmn-cidr = "10.103.6.0/24"
cmn-static-pool = "10.103.6.112/28"
cmn-dynamic-pool = "10.103.6.128/25"
cmn-external-dns = "10.103.6.113"
nmn-cidr = "10.252.0.0/17"
hmn-cidr = "10.254.0.0/17"
mtl-cidr = "10.1.0.0/16"
nmn-mtn-cidr = "10.100.0.0/17"
nmn-rvr-cidr = "10.106.0.0/17"
hmn-mtn-cidr = "10.104.0.0/17"
hmn-rvr-cidr = "10.107.0.0/17"
bgp-asn = 65533
bgp-cmn-asn = 65532
bgp-nmn-asn = 65531

[[cabinets]]
kind = "river"
count = 1
starting_id = 3000

[[cabinets]]
kind = "mountain"
count = 2
starting_id = 1000

[[switches]]
xname = "x3000c0h33s1"
name = "sw-spine-001"
brand = "Aruba"
type = "Spine"

[[switches]]
xname = "x3000c0w14"
name = "sw-leaf-bmc-001"
brand = "Aruba"
type = "LeafBMC"

[[ncns]]
xname = "x3000c0s1b0n0"
hostname = "ncn-m001"
subrole = "Master"

[[ncns]]
xname = "x3000c0s3b0n0"
hostname = "ncn-w001"
subrole = "Worker"

[[ncns]]
xname = "x3000c0s5b0n0"
hostname = "ncn-s001"
subrole = "Storage"
"""


@pytest.fixture
def overrides():
    """Site overrides for a small system with CAN as the user network."""
    return {
        "can-cidr": "10.102.5.0/24",
        "can-gateway": "10.102.5.1",
        "can-static-pool": "10.102.5.128/28",
        "can-dynamic-pool": "10.102.5.192/26",
        "cmn-cidr": "10.103.6.0/24",
        "cmn-static-pool": "10.103.6.112/28",
        "cmn-dynamic-pool": "10.103.6.128/25",
        "cmn-external-dns": "10.103.6.113",
        "nmn-cidr": "10.252.0.0/17",
        "hmn-cidr": "10.254.0.0/17",
        "mtl-cidr": "10.1.0.0/16",
        "nmn-mtn-cidr": "10.100.0.0/17",
        "nmn-rvr-cidr": "10.106.0.0/17",
        "hmn-mtn-cidr": "10.104.0.0/17",
        "hmn-rvr-cidr": "10.107.0.0/17",
        "bgp-asn": "65533",
        "bgp-cmn-asn": "65532",
        "bgp-nmn-asn": "65531",
    }


@pytest.fixture
def switches():
    return [
        ManagementSwitch("x3000c0h33s1", ManagementSwitchType.SPINE, name="sw-spine-001"),
        ManagementSwitch("x3000c0w14", ManagementSwitchType.LEAF_BMC, name="sw-leaf-bmc-001"),
    ]


@pytest.fixture
def cabinet_groups():
    return [
        CabinetGroupDetail(CabinetKind.RIVER, cabinets=1, starting_cabinet=3000),
        CabinetGroupDetail(CabinetKind.MOUNTAIN, cabinets=2, starting_cabinet=1000),
    ]


@pytest.fixture
def ncns():
    return [
        ManagementNode("x3000c0s1b0n0", hostname="ncn-m001", subrole="Master"),
        ManagementNode("x3000c0s3b0n0", hostname="ncn-w001", subrole="Worker"),
        ManagementNode("x3000c0s5b0n0", hostname="ncn-s001", subrole="Storage"),
    ]


@pytest.fixture
def build(overrides, switches, cabinet_groups):
    """Return a function that builds the networks for the fixture system."""
    def _build(mode=CompatibilityMode.STANDARD, **layout_kwargs):
        layouts = default_layouts(3, switches, cabinet_groups, overrides, **layout_kwargs)
        return build_csm_networks(layouts, cabinet_groups, switches, overrides, mode)
    return _build


@pytest.fixture
def networks(build):
    """Networks for the fixture system in standard mode, before NCN allocation."""
    return build()


@pytest.fixture
def config_file(tmp_path):
    """Write the fixture system's csinet.toml and return its path."""
    path = tmp_path / "csinet.toml"
    path.write_text(CONFIG_TOML)
    return path
