"""SLS network JSON generator and reader.

Converts built networks to and from the JSON-friendly structure the
System Layout Service stores: Name, FullName, IPRanges, Type and an
ExtraProperties block holding the subnets and their reservations.
Addresses are always strings. Empty optional fields are omitted.
"""

from __future__ import annotations

import json

from csinet.constraints.errors import InvalidInputError
from csinet.models.addressing import parse_address
from csinet.models.network import (
    DEFAULT_MTU,
    DEFAULT_NET_TYPE,
    IPReservation,
    Network,
    Subnet,
)


def _str(value) -> str:
    return "" if value is None else str(value)


def _compact(data: dict) -> dict:
    """Drop empty optional values, keeping required keys and zeros."""
    return {k: v for k, v in data.items() if v not in ("", None, [])}


def _address(raw):
    return parse_address(raw) if raw else None


# ---------------------------------------------------------------------------
# Model -> dict
# ---------------------------------------------------------------------------

def reservation_to_dict(reservation: IPReservation) -> dict:
    return _compact({
        "Name": reservation.name,
        "IPAddress": _str(reservation.ipv4),
        "IPAddress6": _str(reservation.ipv6),
        "Comment": reservation.comment,
        "Aliases": list(reservation.aliases),
    })


def subnet_to_dict(subnet: Subnet) -> dict:
    data = _compact({
        "Name": subnet.name,
        "FullName": subnet.full_name,
        "CIDR": _str(subnet.cidr),
        "CIDR6": _str(subnet.cidr6),
        "Comment": subnet.comment,
        "Gateway": _str(subnet.gateway),
        "Gateway6": _str(subnet.gateway6),
        "DNSServer": _str(subnet.dns_server),
        "DHCPStart": _str(subnet.dhcp_start),
        "DHCPEnd": _str(subnet.dhcp_end),
        "ReservationStart": _str(subnet.reservation_start),
        "ReservationEnd": _str(subnet.reservation_end),
        "MetalLBPoolName": subnet.metallb_pool_name,
        "IPReservations": [reservation_to_dict(r) for r in subnet.reservations],
    })
    data["VlanID"] = subnet.vlan_id
    return data


def network_to_dict(network: Network) -> dict:
    """Serialize one network.

    >>> network_to_dict(Network('HSN', cidr='10.253.0.0/16'))['IPRanges']
    ['10.253.0.0/16']
    """
    ip_ranges = [str(c) for c in (network.cidr, network.cidr6) if c is not None]
    extra = _compact({
        "CIDR": _str(network.cidr),
        "CIDR6": _str(network.cidr6),
        "VlanRange": list(network.vlan_range),
        "Comment": network.comment,
        "SystemDefaultRoute": network.system_default_route,
    })
    extra["MTU"] = network.mtu
    extra["Subnets"] = [subnet_to_dict(s) for s in network.subnets]
    if network.peer_asn:
        extra["PeerASN"] = network.peer_asn
    if network.my_asn:
        extra["MyASN"] = network.my_asn
    return {
        "Name": network.name,
        "FullName": network.full_name,
        "IPRanges": ip_ranges,
        "Type": network.net_type,
        "ExtraProperties": extra,
    }


def networks_to_dict(networks: dict[str, Network]) -> dict[str, dict]:
    return {name: network_to_dict(networks[name]) for name in sorted(networks)}


def generate_sls_json(networks: dict[str, Network]) -> str:
    """Render the networks as SLS network JSON."""
    return json.dumps(networks_to_dict(networks), indent="  ", sort_keys=True) + "\n"


# ---------------------------------------------------------------------------
# dict -> Model
# ---------------------------------------------------------------------------

def reservation_from_dict(data: dict) -> IPReservation:
    return IPReservation(
        name=data["Name"],
        ipv4=_address(data.get("IPAddress")),
        ipv6=_address(data.get("IPAddress6")),
        comment=data.get("Comment", ""),
        aliases=list(data.get("Aliases") or []),
    )


def subnet_from_dict(data: dict, net_name: str = "") -> Subnet:
    return Subnet(
        name=data["Name"],
        cidr=data.get("CIDR") or None,
        cidr6=data.get("CIDR6") or None,
        full_name=data.get("FullName", ""),
        net_name=net_name,
        vlan_id=int(data.get("VlanID", 0)),
        comment=data.get("Comment", ""),
        gateway=_address(data.get("Gateway")),
        gateway6=_address(data.get("Gateway6")),
        dns_server=_address(data.get("DNSServer")),
        dhcp_start=_address(data.get("DHCPStart")),
        dhcp_end=_address(data.get("DHCPEnd")),
        reservation_start=_address(data.get("ReservationStart")),
        reservation_end=_address(data.get("ReservationEnd")),
        metallb_pool_name=data.get("MetalLBPoolName", ""),
        reservations=[reservation_from_dict(r) for r in data.get("IPReservations") or []],
    )


def network_from_dict(data: dict) -> Network:
    """Parse one serialized network back into the model."""
    try:
        name = data["Name"]
    except KeyError as e:
        raise InvalidInputError("network entry has no Name") from e
    extra = data.get("ExtraProperties") or {}
    try:
        return Network(
            name=name,
            full_name=data.get("FullName", ""),
            cidr=extra.get("CIDR") or None,
            cidr6=extra.get("CIDR6") or None,
            subnets=[subnet_from_dict(s, name) for s in extra.get("Subnets") or []],
            vlan_range=[int(v) for v in extra.get("VlanRange") or []],
            mtu=int(extra.get("MTU", DEFAULT_MTU)),
            net_type=data.get("Type", DEFAULT_NET_TYPE),
            comment=extra.get("Comment", ""),
            peer_asn=int(extra.get("PeerASN", 0)),
            my_asn=int(extra.get("MyASN", 0)),
            system_default_route=extra.get("SystemDefaultRoute", ""),
        )
    except InvalidInputError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidInputError(f"malformed network {name}: {e}") from e


def networks_from_dict(data: dict[str, dict]) -> dict[str, Network]:
    networks = {}
    for key, entry in data.items():
        network = network_from_dict(entry)
        networks[network.name or key] = network
    return networks


def load_sls_json(text: str) -> dict[str, Network]:
    """Parse SLS network JSON produced by generate_sls_json()."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"invalid SLS JSON: {e}") from e
    return networks_from_dict(data)
