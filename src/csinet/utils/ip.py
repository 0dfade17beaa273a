"""IP sort keys shared across the package."""

from __future__ import annotations

import ipaddress


def ip_sort_key(ip) -> tuple[int, int]:
    """Return a sort key for an IPv4 or IPv6 address.

    Sorts numerically, IPv4 before IPv6, rather than lexicographically.

    >>> ip_sort_key('10.1.10.104')
    (4, 167840360)
    >>> sorted(['10.1.10.104', '10.1.2.2'], key=ip_sort_key)
    ['10.1.2.2', '10.1.10.104']
    """
    address = ipaddress.ip_address(str(ip))
    return (address.version, int(address))


def network_sort_key(network) -> tuple[int, int, int]:
    """Return a sort key ordering networks by start address, then size.

    >>> sorted(['10.0.1.0/24', '10.0.0.0/16'], key=network_sort_key)
    ['10.0.0.0/16', '10.0.1.0/24']
    """
    net = ipaddress.ip_network(str(network), strict=False)
    return (net.version, int(net.network_address), net.prefixlen)
