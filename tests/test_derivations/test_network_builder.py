"""Tests for building networks from layouts."""

import ipaddress
import logging

import pytest

from csinet.constraints.errors import BuildError
from csinet.derivations.layout import default_layouts
from csinet.derivations.network_builder import (
    build_csm_networks,
    load_balancer_networks,
    resolve_gateway,
)
from csinet.models.hardware import ManagementSwitch, ManagementSwitchType
from csinet.models.network import CompatibilityMode
from csinet.models.vlan import VLANRegistry

IP = ipaddress.ip_address


def _names(subnet):
    return [r.name for r in subnet.reservations]


class TestResolveGateway:
    def test_gateway(self):
        assert resolve_gateway("CAN", {"can-gateway": "10.102.5.1"}) == IP("10.102.5.1")

    def test_gateway4_preferred(self):
        overrides = {"can-gateway4": "10.102.5.2", "can-gateway": "10.102.5.1"}
        assert resolve_gateway("CAN", overrides) == IP("10.102.5.2")

    def test_gateway6(self):
        overrides = {"nmn-gateway6": "fd00::1", "nmn-gateway": "10.252.0.1"}
        assert resolve_gateway("NMN", overrides, 6) == IP("fd00::1")

    def test_missing(self):
        assert resolve_gateway("NMN", {}) is None

    def test_invalid_is_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="csinet"):
            assert resolve_gateway("CAN", {"can-gateway": "not-an-ip"}) is None
        assert "invalid value" in caplog.text

    def test_wrong_family_is_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="csinet"):
            assert resolve_gateway("CAN", {"can-gateway": "fd00::1"}) is None
        assert "is not IPv4" in caplog.text


class TestBuildCsmNetworks:
    def test_network_names(self, networks):
        assert sorted(networks) == [
            "BICAN", "CAN", "CMN", "HMN", "HMNLB", "HMN_MTN", "HMN_RVR",
            "HSN", "MTL", "NMN", "NMNLB", "NMN_MTN", "NMN_RVR",
        ]

    def test_can(self, networks):
        can = networks["CAN"]
        bootstrap = can.look_up_subnet("bootstrap_dhcp")
        assert str(bootstrap.cidr) == "10.102.5.0/24"
        assert bootstrap.gateway == IP("10.102.5.1")
        assert _names(bootstrap) == ["can-switch-1", "can-switch-2", "kubeapi-vip"]
        static = can.look_up_subnet("can_metallb_static_pool")
        assert static.metallb_pool_name == "customer-access-static"
        assert can.look_up_subnet("can_metallb_address_pool").metallb_pool_name == "customer-access"

    def test_cmn(self, networks):
        cmn = networks["CMN"]
        hardware = cmn.look_up_subnet("network_hardware")
        assert str(hardware.cidr) == "10.103.6.0/29"
        assert _names(hardware) == ["sw-spine-001", "sw-leaf-bmc-001"]
        assert hardware.reservations[0].comment == "x3000c0h33s1"

        bootstrap = cmn.look_up_subnet("bootstrap_dhcp")
        assert str(bootstrap.cidr) == "10.103.6.32/27"
        assert bootstrap.vlan_id == 7

        static = cmn.look_up_subnet("cmn_metallb_static_pool")
        dns = static.lookup_reservation("external-dns")
        assert dns.ipv4 == IP("10.103.6.113")
        assert dns.comment == "site to system lookups"

        assert cmn.peer_asn == 65533
        assert cmn.my_asn == 65532

    def test_nmn(self, networks):
        nmn = networks["NMN"]
        assert [s.name for s in nmn.subnets] == ["network_hardware", "bootstrap_dhcp", "uai_macvlan"]
        bootstrap = nmn.look_up_subnet("bootstrap_dhcp")
        assert _names(bootstrap) == ["kubeapi-vip", "rgw-vip"]
        assert bootstrap.parent_device == "bond0"

        uai = nmn.look_up_subnet("uai_macvlan")
        assert str(uai.cidr) == "10.252.2.0/23"
        assert uai.gateway == IP("10.252.0.1")
        assert _names(uai) == [
            "pbs_comm_service", "pbs_service", "slurmctld_service",
            "slurmdbd_service", "uai_macvlan_bridge",
        ]
        assert uai.lookup_reservation("slurmctld_service").aliases == [
            "slurmctld-service", "slurmctld-service-nmn",
        ]
        assert uai.reservation_start == IP("10.252.2.10")

    def test_mtl_has_no_vips(self, networks):
        bootstrap = networks["MTL"].look_up_subnet("bootstrap_dhcp")
        assert bootstrap.reservations == []
        assert bootstrap.vlan_id == 0

    def test_cabinet_networks(self, networks):
        river = networks["NMN_RVR"]
        assert [(s.name, str(s.cidr), s.vlan_id) for s in river.subnets] == [
            ("cabinet_3000", "10.106.0.0/22", 1770),
        ]
        mountain = networks["HMN_MTN"]
        assert [(s.name, s.vlan_id) for s in mountain.subnets] == [
            ("cabinet_1000", 3000), ("cabinet_1001", 3001),
        ]
        assert mountain.vlan_range == [3000, 3001]

    def test_load_balancers(self, networks):
        pool = networks["NMNLB"].look_up_subnet("nmn_metallb_address_pool")
        assert pool.metallb_pool_name == "node-management"
        pins = {r.name: r.ipv4 for r in pool.reservations}
        assert pins["istio-ingressgateway"] == IP("10.92.100.71")
        assert pins["istio-ingressgateway-local"] == IP("10.92.100.81")
        assert pins["cray-tftp"] == IP("10.92.100.60")
        assert pins["unbound"] == IP("10.92.100.225")

    def test_hmn_load_balancer(self):
        hmnlb = load_balancer_networks({})["HMNLB"]
        pool = hmnlb.look_up_subnet("hmn_metallb_address_pool")
        assert pool.vlan_id == 4
        assert pool.lookup_reservation("istio-ingressgateway-local") is None
        assert pool.lookup_reservation("istio-ingressgateway").aliases == []
        assert pool.lookup_reservation("rsyslog-aggregator").ipv4 == IP("10.94.100.72")

    def test_net_names_set(self, networks):
        for name, network in networks.items():
            for subnet in network.subnets:
                assert subnet.net_name == name

    def test_records_vlans(self, overrides, switches, cabinet_groups):
        vlans = VLANRegistry()
        layouts = default_layouts(3, switches, cabinet_groups, overrides)
        build_csm_networks(layouts, cabinet_groups, switches, overrides, vlans=vlans)
        for vlan_id in (1, 2, 4, 6, 7, 613, 1513, 1770, 2000, 3000):
            assert vlan_id in vlans
        assert 0 not in vlans

    def test_vlan_conflict(self, overrides, switches, cabinet_groups):
        overrides["can-bootstrap-vlan"] = "7"
        layouts = default_layouts(3, switches, cabinet_groups, overrides)
        with pytest.raises(BuildError, match="couldn't add CMN network because VLAN already used"):
            build_csm_networks(layouts, cabinet_groups, switches, overrides)

    def test_deterministic(self, build):
        def _shape(networks):
            return [
                (name, s.name, str(s.cidr), [str(r.ipv4) for r in s.reservations])
                for name, network in networks.items()
                for s in network.subnets
            ]
        assert _shape(build()) == _shape(build())


class TestOverrides:
    def test_chn_skipped_without_cidr(self, build):
        networks = build(bican_user_network="CHN")
        assert "CHN" not in networks
        assert "CAN" not in networks

    def test_chn(self, overrides, switches, cabinet_groups):
        overrides.update({
            "chn-cidr": "10.104.7.0/24",
            "chn-gateway": "10.104.7.1",
            "chn-static-pool": "10.104.7.128/28",
        })
        switches.append(ManagementSwitch("x3000c0h12s1", ManagementSwitchType.EDGE))
        layouts = default_layouts(3, switches, cabinet_groups, overrides, bican_user_network="CHN")
        networks = build_csm_networks(layouts, cabinet_groups, switches, overrides)

        chn = networks["CHN"]
        bootstrap = chn.look_up_subnet("bootstrap_dhcp")
        assert str(bootstrap.cidr) == "10.104.7.0/24"
        assert _names(bootstrap) == ["chn-switch-1", "kubeapi-vip"]
        assert bootstrap.reservations[0].comment == "x3000c0h12s1"
        static = chn.look_up_subnet("chn_metallb_static_pool")
        assert static.metallb_pool_name == "customer-high-speed-static"

    def test_invalid_pool_is_skipped(self, overrides, build, caplog):
        overrides["can-static-pool"] = "bogus"
        with caplog.at_level(logging.WARNING, logger="csinet"):
            networks = build()
        assert "can_metallb_static_pool" not in [s.name for s in networks["CAN"].subnets]
        assert "can-static-pool" in caplog.text

    def test_pool_outside_network(self, overrides, build):
        overrides["can-static-pool"] = "10.102.6.0/28"
        with pytest.raises(BuildError, match="couldn't add MetalLB static pool"):
            build()

    def test_hsn_base_subnet(self, overrides, build):
        overrides["hsn-cidr"] = "10.253.0.0/16"
        hsn = build()["HSN"]
        subnet = hsn.look_up_subnet("hsn_base_subnet")
        assert str(subnet.cidr) == "10.253.0.0/16"
        assert subnet.vlan_id == 613
        assert hsn.net_type == "slingshot10"

    def test_bootstrap_needs_cidr_override(self, overrides, build):
        del overrides["mtl-cidr"]
        mtl = build()["MTL"]
        assert [s.name for s in mtl.subnets] == ["network_hardware"]


class TestSupernet:
    def test_hack_subnets_widened(self, build):
        networks = build(CompatibilityMode.SUPERNET)
        bootstrap = networks["NMN"].look_up_subnet("bootstrap_dhcp")
        assert str(bootstrap.cidr) == "10.252.1.0/17"
        assert bootstrap.gateway == IP("10.252.0.1")
        assert bootstrap.dhcp_end == IP("10.252.1.210")

    def test_user_networks_untouched(self, build):
        bootstrap = build(CompatibilityMode.SUPERNET)["CAN"].look_up_subnet("bootstrap_dhcp")
        assert str(bootstrap.cidr) == "10.102.5.0/24"

    def test_cabinet_subnets_untouched(self, build):
        cabinet = build(CompatibilityMode.SUPERNET)["NMN_RVR"].look_up_subnet("cabinet_3000")
        assert str(cabinet.cidr) == "10.106.0.0/22"

    def test_gateway_override_wins(self, overrides, build):
        overrides["nmn-gateway"] = "10.252.0.254"
        bootstrap = build(CompatibilityMode.SUPERNET)["NMN"].look_up_subnet("bootstrap_dhcp")
        assert bootstrap.gateway == IP("10.252.0.254")
