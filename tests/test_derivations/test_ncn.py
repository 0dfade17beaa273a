"""Tests for NCN address allocation and DHCP range finalization."""

import ipaddress

from csinet.derivations.ncn import (
    allocate_ncn_ips,
    bootstrap_subnets,
    finalize_dhcp_ranges,
    update_ncn_reservations,
    update_reservations,
)
from csinet.models.hardware import ManagementNode
from csinet.models.network import CompatibilityMode, Subnet

IP = ipaddress.ip_address


class TestAllocateNcnIps:
    def test_bootstrap_subnets(self, networks):
        assert sorted(bootstrap_subnets(networks)) == ["CAN", "CMN", "HMN", "MTL", "NMN"]

    def test_reserves_after_vips(self, networks, ncns):
        allocate_ncn_ips(networks, ncns)
        nmn = networks["NMN"].look_up_subnet("bootstrap_dhcp")
        assert [str(ip) for ip in nmn.reserved_ips()] == [
            "10.252.1.2", "10.252.1.3", "10.252.1.4", "10.252.1.5", "10.252.1.6",
        ]
        assert ncns[0].ip_addresses["NMN"] == IP("10.252.1.4")
        assert ncns[0].ip_addresses["MTL"] == IP("10.1.1.2")

    def test_hmn_reserves_bmc_first(self, networks, ncns):
        allocate_ncn_ips(networks, ncns)
        hmn = networks["HMN"].look_up_subnet("bootstrap_dhcp")
        bmc = hmn.lookup_reservation("x3000c0s1b0")
        assert bmc.ipv4 == IP("10.254.1.3")
        assert bmc.comment == "x3000c0s1b0n0-mgmt"
        assert hmn.lookup_reservation("x3000c0s1b0n0").ipv4 == IP("10.254.1.4")
        assert ncns[0].bmc_ip == IP("10.254.1.3")

    def test_idempotent(self, networks, ncns):
        allocate_ncn_ips(networks, ncns)
        allocate_ncn_ips(networks, ncns)
        assert len(networks["NMN"].look_up_subnet("bootstrap_dhcp").reservations) == 5


class TestUpdateReservations:
    def test_nmn_aliases(self, networks, ncns):
        allocate_ncn_ips(networks, ncns)
        update_ncn_reservations(networks, ncns)
        nmn = networks["NMN"].look_up_subnet("bootstrap_dhcp")
        master = nmn.lookup_reservation("ncn-m001")
        assert master.aliases == [
            "ncn-m001-nmn", "time-nmn", "time-nmn.local", "x3000c0s1b0n0", "ncn-m001.local",
        ]
        assert nmn.lookup_reservation("kubeapi-vip").aliases == ["kubeapi-vip.local"]

    def test_hmn_bmc(self, networks, ncns):
        allocate_ncn_ips(networks, ncns)
        update_ncn_reservations(networks, ncns)
        hmn = networks["HMN"].look_up_subnet("bootstrap_dhcp")
        bmc = hmn.lookup_reservation("x3000c0s1b0")
        assert bmc.comment == "x3000c0s1b0"
        assert bmc.aliases == ["ncn-m001-mgmt"]
        assert hmn.lookup_reservation("ncn-m001").aliases == [
            "ncn-m001-hmn", "time-hmn", "time-hmn.local",
        ]

    def test_storage_rgw_alias(self, networks, ncns):
        allocate_ncn_ips(networks, ncns)
        update_ncn_reservations(networks, ncns)
        hmn = networks["HMN"].look_up_subnet("bootstrap_dhcp")
        assert "rgw-vip.hmn" in hmn.lookup_reservation("ncn-s001").aliases
        assert "rgw-vip.hmn" not in hmn.lookup_reservation("ncn-w001").aliases

    def test_uai_gets_local_aliases(self, networks, ncns):
        update_ncn_reservations(networks, ncns)
        uai = networks["NMN"].look_up_subnet("uai_macvlan")
        assert uai.lookup_reservation("pbs_service").aliases == [
            "pbs-service", "pbs-service-nmn", "pbs_service.local",
        ]

    def test_unnamed_ncn_untouched(self):
        subnet = Subnet(name="bootstrap_dhcp", cidr="10.1.1.0/24", net_name="MTL")
        subnet.add_reservation("x3000c0s7b0n0", "x3000c0s7b0n0")
        update_reservations(subnet, [ManagementNode("x3000c0s7b0n0")])
        assert subnet.reservations[0].name == "x3000c0s7b0n0"
        assert subnet.reservations[0].aliases == []


class TestFinalizeDhcpRanges:
    def _finalize(self, networks, ncns, overrides, mode=CompatibilityMode.STANDARD):
        allocate_ncn_ips(networks, ncns)
        update_ncn_reservations(networks, ncns)
        finalize_dhcp_ranges(networks, overrides, mode)

    def test_ends_before_metallb_pools(self, networks, ncns, overrides):
        self._finalize(networks, ncns, overrides)
        can = networks["CAN"].look_up_subnet("bootstrap_dhcp")
        assert can.dhcp_start == IP("10.102.5.10")
        assert can.dhcp_end == IP("10.102.5.127")

    def test_small_bootstrap_keeps_its_end(self, networks, ncns, overrides):
        self._finalize(networks, ncns, overrides)
        cmn = networks["CMN"].look_up_subnet("bootstrap_dhcp")
        assert cmn.dhcp_start == IP("10.103.6.42")
        assert cmn.dhcp_end == IP("10.103.6.62")

    def test_gateway_before_pool(self, networks, ncns, overrides):
        allocate_ncn_ips(networks, ncns)
        can = networks["CAN"].look_up_subnet("bootstrap_dhcp")
        can.gateway = IP("10.102.5.127")
        finalize_dhcp_ranges(networks, overrides)
        assert can.dhcp_end == IP("10.102.5.126")

    def test_no_pools_uses_broadcast(self, networks, ncns, overrides):
        del overrides["can-static-pool"]
        del overrides["can-dynamic-pool"]
        self._finalize(networks, ncns, overrides)
        can = networks["CAN"].look_up_subnet("bootstrap_dhcp")
        assert can.dhcp_end == IP("10.102.5.254")

    def test_standard_management_networks(self, networks, ncns, overrides):
        self._finalize(networks, ncns, overrides)
        nmn = networks["NMN"].look_up_subnet("bootstrap_dhcp")
        assert nmn.dhcp_start == IP("10.252.1.10")
        assert nmn.dhcp_end == IP("10.252.1.254")
        uai = networks["NMN"].look_up_subnet("uai_macvlan")
        assert uai.dhcp_start is None
        assert uai.reservation_end == IP("10.252.3.254")

    def test_supernet(self, build, ncns, overrides):
        networks = build(CompatibilityMode.SUPERNET)
        self._finalize(networks, ncns, overrides, CompatibilityMode.SUPERNET)
        nmn = networks["NMN"].look_up_subnet("bootstrap_dhcp")
        assert nmn.dhcp_end == IP("10.252.1.210")
        cmn = networks["CMN"].look_up_subnet("bootstrap_dhcp")
        assert cmn.dhcp_end == IP("10.103.6.111")

    def test_many_ncns_push_start(self, networks, overrides):
        ncns = [ManagementNode(f"x3000c0s{n}b0n0", hostname=f"ncn-w{n:03d}") for n in range(1, 13)]
        self._finalize(networks, ncns, overrides)
        nmn = networks["NMN"].look_up_subnet("bootstrap_dhcp")
        assert nmn.dhcp_start == IP("10.252.1.16")
        assert max(nmn.reserved_ips()) < nmn.dhcp_start
