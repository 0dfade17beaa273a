"""Plain-text summary of built networks.

One block per network listing its subnets, VLANs, gateways, DHCP
ranges and reservations, for reviewing a generated topology by eye.
"""

from __future__ import annotations

import jinja2

from csinet.models.network import Network
from csinet.utils.ip import ip_sort_key, network_sort_key

_NETWORK_TEMPLATE = jinja2.Template("""\
{{ name }}{{ " (%s)"|format(full_name) if full_name else "" }}
  CIDR:  {{ cidr or "-" }}{{ "  CIDR6: %s"|format(cidr6) if cidr6 else "" }}
  VLANs: {{ vlans or "-" }}  MTU: {{ mtu }}
{% for s in subnets %}
  {{ "%-24s"|format(s.name) }} {{ "%-18s"|format(s.cidr) }} vlan {{ "%-4s"|format(s.vlan) }} gw {{ s.gateway or "-" }}
{% if s.cidr6 %}
    cidr6 {{ s.cidr6 }} gw {{ s.gateway6 or "-" }}
{% endif %}
{% if s.dhcp %}
    dhcp {{ s.dhcp }}
{% endif %}
{% for r in s.reservations %}
    {{ "%-16s"|format(r.ip) }} {{ r.name }}{{ " (%s)"|format(r.aliases) if r.aliases else "" }}
{% endfor %}
{% endfor %}
""", trim_blocks=True)


def _subnet_row(subnet) -> dict:
    dhcp = ""
    if subnet.dhcp_start is not None:
        dhcp = f"{subnet.dhcp_start}-{subnet.dhcp_end}"
    elif subnet.reservation_start is not None:
        dhcp = f"{subnet.reservation_start}-{subnet.reservation_end} (reservations)"
    reservations = sorted(
        (r for r in subnet.reservations if r.ipv4 is not None or r.ipv6 is not None),
        key=lambda r: ip_sort_key(r.ipv4 if r.ipv4 is not None else r.ipv6),
    )
    return {
        "name": subnet.name,
        "cidr": str(subnet.cidr) if subnet.cidr is not None else "-",
        "cidr6": str(subnet.cidr6) if subnet.cidr6 is not None else "",
        "vlan": subnet.vlan_id,
        "gateway": subnet.gateway,
        "gateway6": subnet.gateway6,
        "dhcp": dhcp,
        "reservations": [
            {
                "ip": str(r.ipv4 if r.ipv4 is not None else r.ipv6),
                "name": r.name,
                "aliases": ", ".join(r.aliases),
            }
            for r in reservations
        ],
    }


def generate_summary(networks: dict[str, Network]) -> str:
    """Render a summary of every network, in name order."""
    output: list[str] = []
    for name in sorted(networks):
        network = networks[name]
        subnets = sorted(
            network.subnets,
            key=lambda s: network_sort_key(s.cidr.network) if s.cidr is not None else (7, 0, 0),
        )
        output.append(
            _NETWORK_TEMPLATE.render(
                name=network.name,
                full_name=network.full_name,
                cidr=network.cidr,
                cidr6=network.cidr6,
                vlans="-".join(str(v) for v in network.vlan_range),
                mtu=network.mtu,
                subnets=[_subnet_row(s) for s in subnets],
            )
        )
    return "\n".join(output)
