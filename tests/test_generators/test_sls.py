"""Tests for the SLS network JSON generator and reader."""

import ipaddress
import json

import pytest

from csinet.constraints.errors import InvalidInputError
from csinet.generators.sls import (
    generate_sls_json,
    load_sls_json,
    network_from_dict,
    network_to_dict,
    reservation_to_dict,
    subnet_to_dict,
)
from csinet.models.network import CompatibilityMode, IPReservation, Network, Subnet


class TestToDict:
    def test_reservation_omits_empty_fields(self):
        data = reservation_to_dict(IPReservation(name="kubeapi-vip", ipv4=ipaddress.ip_address("10.252.1.2")))
        assert data == {"Name": "kubeapi-vip", "IPAddress": "10.252.1.2"}

    def test_reservation_full(self):
        reservation = IPReservation(
            name="ncn-m001",
            ipv4=ipaddress.ip_address("10.252.1.4"),
            ipv6=ipaddress.ip_address("fd00::4"),
            comment="x3000c0s1b0n0",
            aliases=["ncn-m001-nmn"],
        )
        assert reservation_to_dict(reservation) == {
            "Name": "ncn-m001",
            "IPAddress": "10.252.1.4",
            "IPAddress6": "fd00::4",
            "Comment": "x3000c0s1b0n0",
            "Aliases": ["ncn-m001-nmn"],
        }

    def test_subnet(self, networks):
        data = subnet_to_dict(networks["NMN"].look_up_subnet("bootstrap_dhcp"))
        assert data["CIDR"] == "10.252.1.0/24"
        assert data["Gateway"] == "10.252.1.1"
        assert data["DHCPStart"] == "10.252.1.10"
        assert data["DHCPEnd"] == "10.252.1.254"
        assert data["VlanID"] == 2
        assert data["FullName"] == "NMN Bootstrap DHCP Subnet"
        assert [r["Name"] for r in data["IPReservations"]] == ["kubeapi-vip", "rgw-vip"]
        assert "CIDR6" not in data
        assert "MetalLBPoolName" not in data

    def test_untagged_vlan_kept(self, networks):
        data = subnet_to_dict(networks["MTL"].look_up_subnet("bootstrap_dhcp"))
        assert data["VlanID"] == 0
        assert "IPReservations" not in data

    def test_metallb_pool(self, networks):
        data = subnet_to_dict(networks["CAN"].look_up_subnet("can_metallb_address_pool"))
        assert data["MetalLBPoolName"] == "customer-access"

    def test_network(self, networks):
        data = network_to_dict(networks["NMN"])
        assert data["Name"] == "NMN"
        assert data["FullName"] == "Node Management Network"
        assert data["IPRanges"] == ["10.252.0.0/17"]
        assert data["Type"] == "ethernet"
        extra = data["ExtraProperties"]
        assert extra["CIDR"] == "10.252.0.0/17"
        assert extra["VlanRange"] == [2]
        assert extra["MTU"] == 9000
        assert extra["PeerASN"] == 65533
        assert extra["MyASN"] == 65531
        assert [s["Name"] for s in extra["Subnets"]] == [
            "network_hardware", "bootstrap_dhcp", "uai_macvlan",
        ]

    def test_bican(self, networks):
        data = network_to_dict(networks["BICAN"])
        extra = data["ExtraProperties"]
        assert extra["SystemDefaultRoute"] == "CAN"
        assert extra["Subnets"] == []
        assert "PeerASN" not in extra

    def test_dual_stack_ranges(self):
        network = Network(name="NMN", cidr="10.252.0.0/17", cidr6="fd00::/64")
        assert network_to_dict(network)["IPRanges"] == ["10.252.0.0/17", "fd00::/64"]


class TestGenerateSlsJson:
    def test_sorted_and_indented(self, networks):
        text = generate_sls_json(networks)
        assert text.startswith('{\n  "BICAN": {\n')
        assert text.endswith("}\n")
        assert list(json.loads(text)) == sorted(networks)

    def test_addresses_are_strings(self, networks):
        data = json.loads(generate_sls_json(networks))
        pool = data["NMNLB"]["ExtraProperties"]["Subnets"][0]
        pins = {r["Name"]: r["IPAddress"] for r in pool["IPReservations"]}
        assert pins["istio-ingressgateway"] == "10.92.100.71"


class TestLoadSlsJson:
    def test_reload(self, networks):
        loaded = load_sls_json(generate_sls_json(networks))
        assert sorted(loaded) == sorted(networks)
        nmn = loaded["NMN"]
        assert nmn.peer_asn == 65533
        uai = nmn.look_up_subnet("uai_macvlan")
        assert uai.net_name == "NMN"
        assert uai.reservation_start == ipaddress.ip_address("10.252.2.10")
        assert uai.lookup_reservation("pbs_service").aliases == ["pbs-service", "pbs-service-nmn"]
        assert generate_sls_json(loaded) == generate_sls_json(networks)

    def test_supernet_cidr_survives(self, build):
        loaded = load_sls_json(generate_sls_json(build(CompatibilityMode.SUPERNET)))
        bootstrap = loaded["NMN"].look_up_subnet("bootstrap_dhcp")
        assert str(bootstrap.cidr) == "10.252.1.0/17"

    def test_invalid_json(self):
        with pytest.raises(InvalidInputError, match="invalid SLS JSON"):
            load_sls_json("{not json")

    def test_missing_name(self):
        with pytest.raises(InvalidInputError, match="has no Name"):
            network_from_dict({"ExtraProperties": {}})

    def test_bad_cidr(self):
        with pytest.raises(InvalidInputError, match="invalid CIDR"):
            network_from_dict({"Name": "NMN", "ExtraProperties": {"CIDR": "10.252.0.0/40"}})

    def test_bad_vlan(self):
        data = {
            "Name": "NMN",
            "ExtraProperties": {"Subnets": [{"Name": "bootstrap_dhcp", "VlanID": "two"}]},
        }
        with pytest.raises(InvalidInputError, match="malformed network NMN"):
            network_from_dict(data)

    def test_defaults(self):
        network = network_from_dict({"Name": "HSN"})
        assert network.cidr is None
        assert network.mtu == 9000
        assert network.net_type == "ethernet"
        assert network.subnets == []

    def test_subnet_net_name(self):
        network = network_from_dict({
            "Name": "CMN",
            "ExtraProperties": {"Subnets": [{"Name": "bootstrap_dhcp", "CIDR": "10.103.6.32/27"}]},
        })
        subnet = network.subnets[0]
        assert isinstance(subnet, Subnet)
        assert subnet.net_name == "CMN"
        assert subnet.vlan_id == 0
