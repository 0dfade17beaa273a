"""Network topology models: logical networks, subnets and IP reservations.

A Network owns an ordered list of Subnets carved out of its CIDR; a
Subnet owns an ordered list of IPReservations. Objects returned by the
``add_*`` methods are the live entries and may be mutated; lookups
(``subnet_by_name``, ``lookup_reservation``, ``reservations_by_name``)
return copies.
"""

from __future__ import annotations

import copy
import ipaddress
from dataclasses import dataclass, field, replace
from enum import Enum

from csinet.constraints.errors import (
    AddressExhaustedError,
    AllocationError,
    DuplicateReservationError,
    DuplicateSubnetError,
    InvalidInputError,
    SubnetNotFoundError,
)
from csinet.ipam.allocator import free
from csinet.models.addressing import (
    add,
    broadcast,
    contains,
    find_gateway_ip,
    mask_prefix_length,
    parse_address,
    parse_network,
    parse_prefix,
    subtract,
    total_addresses,
    usable_host_addresses,
)
from csinet.models.hardware import CabinetFilter, CabinetGroupDetail
from csinet.models.vlan import UNTAGGED_VLAN

DEFAULT_MTU = 9000
DEFAULT_NET_TYPE = "ethernet"

UAI_MACVLAN_SUBNET = "uai_macvlan"

# Subnets that take the parent network's mask and gateway in supernet mode.
SUPERNET_HACK_SUBNETS = (
    "bootstrap_dhcp",
    "network_hardware",
    "can_metallb_static_pool",
    "can_metallb_address_pool",
)

# Smallest subnet add_biggest_subnet will fall back to.
BIGGEST_SUBNET_FLOOR = 28

MAX_INTERFACE_NET_NAME = 15

# Subnet address fields and the IP version each must hold.
_SUBNET_ADDRESS_FIELDS = (
    ("gateway", 4),
    ("gateway6", 6),
    ("dns_server", 4),
    ("dhcp_start", 4),
    ("dhcp_end", 4),
    ("reservation_start", 4),
    ("reservation_end", 4),
)


class CompatibilityMode(Enum):
    """How subnet masks, gateways and DHCP ranges are derived.

    STANDARD: every subnet keeps its own mask and gateway.
    SUPERNET: the subnets in SUPERNET_HACK_SUBNETS take the parent
        network's mask and gateway, so existing switch configurations
        keep working. This deliberately overlaps broadcast domains.
    """

    STANDARD = "standard"
    SUPERNET = "supernet"

    @classmethod
    def parse(cls, raw) -> CompatibilityMode:
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, bool):
            return cls.SUPERNET if raw else cls.STANDARD
        try:
            return cls(str(raw).strip().lower())
        except ValueError as e:
            raise InvalidInputError(f"unknown compatibility mode {raw!r}") from e


@dataclass
class IPReservation:
    """A named address binding inside a subnet.

    Attributes:
        name: Reservation name, used as the DNS hostname.
        ipv4: Reserved IPv4 address, if any.
        ipv6: Reserved IPv6 address, if any.
        comment: Free-form note (often the hardware xname).
        aliases: Additional DNS names for the same address.
    """

    name: str
    ipv4: ipaddress.IPv4Address | None = None
    ipv6: ipaddress.IPv6Address | None = None
    comment: str = ""
    aliases: list[str] = field(default_factory=list)

    def add_alias(self, alias: str) -> None:
        """Add a DNS alias unless it is already present."""
        if alias not in self.aliases:
            self.aliases.append(alias)

    def copy(self) -> IPReservation:
        return replace(self, aliases=list(self.aliases))


@dataclass
class Subnet:
    """A named CIDR block owned by one Network.

    ``cidr`` is an interface rather than a network so that, in supernet
    mode, it can carry the subnet's own address with the parent's mask
    (e.g. 10.252.1.0/17).

    Attributes:
        name: Subnet key (e.g. 'bootstrap_dhcp', 'cabinet_3000').
        cidr: IPv4 CIDR, or None for an IPv6-only subnet.
        cidr6: IPv6 CIDR, if dual-stack.
        full_name: Human-readable name.
        net_name: Name of the owning network.
        vlan_id: 802.1Q tag, 0 for untagged.
        gateway / gateway6: Default gateway per family.
        dns_server: Optional DNS/NTP/PIT server address.
        dhcp_start / dhcp_end: Dynamic DHCP pool.
        reservation_start / reservation_end: Floating-address pool
            (used instead of the DHCP range on the UAI macvlan subnet).
        metallb_pool_name: MetalLB address pool name, when applicable.
        parent_device: Host device the interface hangs off (e.g. 'bond0').
        interface_name: Generated interface name (see gen_interface_name).
        reservations: Ordered IP reservations.
    """

    name: str
    cidr: ipaddress.IPv4Interface | None = None
    cidr6: ipaddress.IPv6Interface | None = None
    full_name: str = ""
    net_name: str = ""
    vlan_id: int = 0
    comment: str = ""
    gateway: ipaddress.IPv4Address | None = None
    gateway6: ipaddress.IPv6Address | None = None
    dns_server: ipaddress.IPv4Address | None = None
    dhcp_start: ipaddress.IPv4Address | None = None
    dhcp_end: ipaddress.IPv4Address | None = None
    reservation_start: ipaddress.IPv4Address | None = None
    reservation_end: ipaddress.IPv4Address | None = None
    metallb_pool_name: str = ""
    parent_device: str = ""
    interface_name: str = ""
    reservations: list[IPReservation] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.cidr is not None:
            self.cidr = parse_prefix(self.cidr)
            if self.cidr.version != 4:
                raise InvalidInputError(f"{self.name}: cidr {self.cidr} is not IPv4")
        if self.cidr6 is not None:
            self.cidr6 = parse_prefix(self.cidr6)
            if self.cidr6.version != 6:
                raise InvalidInputError(f"{self.name}: cidr6 {self.cidr6} is not IPv6")
        for attr, version in _SUBNET_ADDRESS_FIELDS:
            value = getattr(self, attr)
            if value is None:
                continue
            address = parse_address(value)
            if address.version != version:
                raise InvalidInputError(f"{self.name}: {attr} {address} is not IPv{version}")
            setattr(self, attr, address)

    def copy(self) -> Subnet:
        return copy.deepcopy(self)

    def _require_cidr(self) -> ipaddress.IPv4Interface:
        if self.cidr is None:
            raise InvalidInputError(f"{self.name} subnet has no IPv4 CIDR")
        return self.cidr

    def _find(self, name: str) -> IPReservation | None:
        for reservation in self.reservations:
            if reservation.name == name:
                return reservation
        return None

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def reserved_ips(self) -> list[ipaddress.IPv4Address]:
        return [r.ipv4 for r in self.reservations if r.ipv4 is not None]

    def reserved_ips6(self) -> list[ipaddress.IPv6Address]:
        return [r.ipv6 for r in self.reservations if r.ipv6 is not None]

    def reservations_by_name(self) -> dict[str, IPReservation]:
        return {r.name: r.copy() for r in self.reservations}

    def lookup_reservation(self, name: str) -> IPReservation | None:
        reservation = self._find(name)
        return reservation.copy() if reservation is not None else None

    def total_ip_addresses(self) -> int:
        return total_addresses(self._require_cidr())

    def usable_host_addresses(self) -> int:
        return usable_host_addresses(self._require_cidr())

    # -----------------------------------------------------------------------
    # Free address search
    # -----------------------------------------------------------------------

    def _exhausted(self, family: str) -> AddressExhaustedError:
        return AddressExhaustedError(
            f"{self.net_name} {self.name} subnet has exhausted its available "
            f"{family} addresses, failed to find a free address"
        )

    def _next_reservable_ipv4(self) -> ipaddress.IPv4Address:
        # Counting starts past the root and the conventional gateway.
        cidr = self._require_cidr()
        taken = set(self.reserved_ips())
        if self.gateway is not None:
            taken.add(self.gateway)
        last = int(cidr.network.broadcast_address) - 1
        candidate = int(cidr.ip) + 2
        while candidate <= last:
            address = ipaddress.IPv4Address(candidate)
            if address not in taken:
                return address
            candidate += 1
        raise self._exhausted("IPv4")

    def find_free_ipv4(self) -> ipaddress.IPv4Address:
        """Return the lowest IPv4 address not used by root, gateway, broadcast or reservations."""
        cidr = self._require_cidr()
        network = cidr.network
        skip = {network.network_address, network.broadcast_address, *self.reserved_ips()}
        if self.gateway is not None:
            skip.add(self.gateway)
        candidate = int(cidr.ip)
        last = int(network.broadcast_address)
        while candidate <= last:
            address = ipaddress.IPv4Address(candidate)
            if address not in skip:
                return address
            candidate += 1
        raise self._exhausted("IPv4")

    def find_free_ipv6(self) -> ipaddress.IPv6Address:
        """Return the lowest IPv6 address not used by root, gateway or reservations."""
        if self.cidr6 is None:
            raise InvalidInputError(f"{self.name} subnet has no IPv6 CIDR")
        network = self.cidr6.network
        skip = {network.network_address, *self.reserved_ips6()}
        if self.gateway6 is not None:
            skip.add(self.gateway6)
        candidate = int(self.cidr6.ip)
        last = int(network.broadcast_address)
        while candidate <= last:
            address = ipaddress.IPv6Address(candidate)
            if address not in skip:
                return address
            candidate += 1
        raise self._exhausted("IPv6")

    def find_free_ip_address(
        self,
    ) -> tuple[ipaddress.IPv4Address | None, ipaddress.IPv6Address | None]:
        """Return the next free address per family, None where the family is absent."""
        ipv4 = self.find_free_ipv4() if self.cidr is not None else None
        ipv6 = self.find_free_ipv6() if self.cidr6 is not None else None
        return ipv4, ipv6

    # -----------------------------------------------------------------------
    # Reservations
    # -----------------------------------------------------------------------

    def add_reservation(self, name: str, comment: str = "") -> IPReservation:
        """Reserve the next free address under name.

        If name is already reserved, the existing reservation is returned
        unchanged.
        """
        existing = self._find(name)
        if existing is not None:
            return existing
        if self.cidr is None and self.cidr6 is None:
            raise InvalidInputError(f"{self.name} subnet has no CIDR to reserve from")
        reservation = IPReservation(name=name, comment=comment)
        if self.cidr is not None:
            reservation.ipv4 = self._next_reservable_ipv4()
        if self.cidr6 is not None:
            reservation.ipv6 = self.find_free_ipv6()
        self.reservations.append(reservation)
        return reservation

    def add_reservation_with_ip(self, name: str, address, comment: str = "") -> IPReservation:
        """Reserve a specific address under name."""
        addr = parse_address(address)
        cidr = self.cidr if addr.version == 4 else self.cidr6
        if cidr is None or addr not in cidr.network:
            raise InvalidInputError(
                f'cannot add "{name}" to {self.name} subnet as {addr}. '
                f"{addr} is not part of {cidr}"
            )
        for existing in self.reservations:
            held = existing.ipv4 if addr.version == 4 else existing.ipv6
            if held == addr:
                raise DuplicateReservationError(
                    f"failed to reserve IPv{addr.version} address for {name}, "
                    f"address already reserved for {existing.name}"
                )
        reservation = IPReservation(name=name, comment=comment)
        if addr.version == 4:
            reservation.ipv4 = addr
        else:
            reservation.ipv6 = addr
        self.reservations.append(reservation)
        return reservation

    def add_reservation_with_pin(self, name: str, comment: str, pin: int) -> IPReservation:
        """Reserve the address whose last octet is pin.

        Existing reservations are not consulted; pinned addresses must
        stay fixed across upgrades. A non-empty comment is also split on
        commas into aliases.

        >>> pool = Subnet(name='nmn_metallb_address_pool', cidr='10.92.100.0/24')
        >>> pool.add_reservation_with_pin('istio-ingressgateway', 'api-gw-service', 71).ipv4
        IPv4Address('10.92.100.71')
        """
        if not 0 <= pin <= 255:
            raise InvalidInputError(f"pinned octet {pin} is not a byte")
        cidr = self._require_cidr()
        address = ipaddress.IPv4Address((int(cidr.ip) & ~0xFF) | pin)
        reservation = IPReservation(name=name, ipv4=address)
        if comment:
            reservation.comment = comment
            reservation.aliases = comment.split(",")
        self.reservations.append(reservation)
        return reservation

    def update_reservation(self, reservation: IPReservation, ipv6_only: bool = False) -> None:
        """Assign fresh free addresses to an existing reservation."""
        if not ipv6_only and self.cidr is not None:
            reservation.ipv4 = None
            reservation.ipv4 = self._next_reservable_ipv4()
        if self.cidr6 is not None:
            reservation.ipv6 = None
            reservation.ipv6 = self.find_free_ipv6()

    def reserve_net_mgmt_ips(
        self,
        spines: list[str],
        leafs: list[str],
        leaf_bmcs: list[str],
        cdus: list[str],
    ) -> None:
        """Reserve sw-<role>-NNN addresses, commented with each switch xname."""
        for prefix, xnames in (
            ("sw-spine", spines),
            ("sw-leaf", leafs),
            ("sw-leaf-bmc", leaf_bmcs),
            ("sw-cdu", cdus),
        ):
            for index, xname in enumerate(xnames, start=1):
                self.add_reservation(f"{prefix}-{index:03d}", xname)

    def reserve_edge_switch_ips(self, edges: list[str]) -> None:
        for index, xname in enumerate(edges, start=1):
            self.add_reservation(f"chn-switch-{index}", xname)

    # -----------------------------------------------------------------------
    # Derived ranges and names
    # -----------------------------------------------------------------------

    def update_dhcp_range(self, mode: CompatibilityMode = CompatibilityMode.STANDARD) -> None:
        """Place the DHCP (or UAI reservation) pool after the reservations.

        The pool starts at the later of root+10 and past every
        reservation. It ends just before the broadcast address, or 200
        addresses after the start in supernet mode where the broadcast
        address belongs to the parent network. AddressExhaustedError is
        raised when the pool does not fit between the root and broadcast.
        """
        cidr = self._require_cidr()
        usable = self.usable_host_addresses()
        count = len(self.reservations)
        if count > usable:
            raise AddressExhaustedError(
                f"could not create {self.full_name or self.name} subnet in {self.net_name}. "
                f"There are {count} reservations and only {usable} usable ip addresses "
                f"in the subnet {cidr}"
            )
        block = cidr.network
        start = add(cidr, max(10, count + 2))
        if mode is CompatibilityMode.SUPERNET:
            end = add(ipaddress.IPv4Interface((start, block.prefixlen)), 200)
        else:
            end = subtract(ipaddress.IPv4Interface((broadcast(block), block.prefixlen)), 1)
        # The range holds host addresses only: never the root or the broadcast.
        if not block.network_address < start <= end < block.broadcast_address:
            raise AddressExhaustedError(
                f"could not fit a DHCP range in the {self.full_name or self.name} subnet "
                f"{cidr} of {self.net_name}"
            )

        if self.name == UAI_MACVLAN_SUBNET:
            self.reservation_start, self.reservation_end = start, end
        else:
            self.dhcp_start, self.dhcp_end = start, end

    def gen_interface_name(self, native_vlans: tuple[int, ...] = (UNTAGGED_VLAN,)) -> str:
        """Set and return the host interface name for this subnet.

        Untagged subnets use the parent device directly; tagged ones get
        a '<parent>.<net>0' VLAN interface.

        >>> Subnet(name='bootstrap_dhcp', net_name='NMN', vlan_id=2,
        ...        parent_device='bond0').gen_interface_name()
        'bond0.nmn0'
        """
        if not self.net_name:
            raise InvalidInputError(f"network name [{self.net_name}] is empty")
        if len(self.net_name) > MAX_INTERFACE_NET_NAME:
            raise InvalidInputError(
                f"network name [{self.net_name}] is greater than {MAX_INTERFACE_NET_NAME} bytes"
            )
        if self.vlan_id in native_vlans:
            self.interface_name = self.parent_device
        else:
            self.interface_name = f"{self.parent_device}.{self.net_name.lower()}0"
        return self.interface_name


@dataclass
class Network:
    """A named, VLAN-tagged logical network and its subnets.

    Attributes:
        name: Short key (e.g. 'NMN').
        full_name: Human-readable name.
        cidr: Top-level IPv4 block.
        cidr6: Optional top-level IPv6 block.
        subnets: Ordered subnets carved out of cidr.
        vlan_range: [base] or [first, last] VLAN hint.
        mtu: Link MTU.
        net_type: Link/media type ('ethernet', 'slingshot10').
        peer_asn / my_asn: BGP peering ASNs, 0 when unset.
        system_default_route: For BICAN, the name of the network that
            carries the system default route.
        parent_device: Host device subnets hang off (e.g. 'bond0').
    """

    name: str
    full_name: str = ""
    cidr: ipaddress.IPv4Network | None = None
    cidr6: ipaddress.IPv6Network | None = None
    subnets: list[Subnet] = field(default_factory=list)
    vlan_range: list[int] = field(default_factory=list)
    mtu: int = DEFAULT_MTU
    net_type: str = DEFAULT_NET_TYPE
    comment: str = ""
    peer_asn: int = 0
    my_asn: int = 0
    system_default_route: str = ""
    parent_device: str = ""

    def __post_init__(self) -> None:
        if self.cidr is not None:
            self.cidr = parse_network(self.cidr)
            if self.cidr.version != 4:
                raise InvalidInputError(f"{self.name}: cidr {self.cidr} is not IPv4")
        if self.cidr6 is not None:
            self.cidr6 = parse_network(self.cidr6)
            if self.cidr6.version != 6:
                raise InvalidInputError(f"{self.name}: cidr6 {self.cidr6} is not IPv6")

    @property
    def base_vlan(self) -> int:
        return self.vlan_range[0] if self.vlan_range else UNTAGGED_VLAN

    def _require_cidr(self) -> ipaddress.IPv4Network:
        if self.cidr is None:
            raise InvalidInputError(f"{self.name} network has no IPv4 CIDR")
        return self.cidr

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def allocated_subnets(self) -> list[ipaddress.IPv4Network]:
        return [s.cidr.network for s in self.subnets if s.cidr is not None]

    def allocated_subnets6(self) -> list[ipaddress.IPv6Network]:
        return [s.cidr6.network for s in self.subnets if s.cidr6 is not None]

    def allocated_vlans(self) -> list[int]:
        return [s.vlan_id for s in self.subnets if s.vlan_id > 0]

    def look_up_subnet(self, name: str) -> Subnet:
        """Return the live subnet with exactly this name."""
        found = [s for s in self.subnets if s.name == name]
        if not found:
            raise SubnetNotFoundError(f'subnet not found "{name}"')
        if len(found) > 1:
            raise DuplicateSubnetError(f"found {len(found)} subnets instead of just one")
        return found[0]

    def subnet_by_name(self, name: str) -> Subnet | None:
        """Return a copy of the subnet, matching the name case-insensitively."""
        for subnet in self.subnets:
            if subnet.name.lower() == name.lower():
                return subnet.copy()
        return None

    # -----------------------------------------------------------------------
    # Allocation
    # -----------------------------------------------------------------------

    def _append(self, block: ipaddress.IPv4Network, name: str, vlan_id: int) -> Subnet:
        subnet = Subnet(
            name=name,
            cidr=ipaddress.IPv4Interface(block.with_prefixlen),
            net_name=self.name,
            vlan_id=vlan_id,
            gateway=find_gateway_ip(block),
        )
        self.subnets.append(subnet)
        return subnet

    def add_subnet_by_cidr(self, cidr, name: str, vlan_id: int) -> Subnet:
        """Add a subnet at an explicit CIDR inside this network."""
        network = self._require_cidr()
        block = parse_network(cidr)
        if not contains(network, block):
            raise InvalidInputError(f"subnet {block} is not part of {network}")
        for existing in self.allocated_subnets():
            if existing.overlaps(block):
                raise AllocationError(
                    f"subnet {block} overlaps {existing} already allocated in {self.name}"
                )
        return self._append(block, name, vlan_id)

    def add_subnet(self, mask, name: str, vlan_id: int) -> Subnet:
        """Add a subnet of the given mask at the first free aligned block."""
        network = self._require_cidr()
        block = free(network, mask, self.allocated_subnets())
        return self._append(block, name, vlan_id)

    def add_biggest_subnet(self, mask, name: str, vlan_id: int) -> Subnet:
        """Add the largest subnet that fits, from mask down to /28."""
        network = self._require_cidr()
        prefixlen = mask_prefix_length(mask, network.max_prefixlen)
        for length in range(prefixlen, BIGGEST_SUBNET_FLOOR + 1):
            try:
                return self.add_subnet(length, name, vlan_id)
            except AllocationError:
                continue
        raise AddressExhaustedError(
            f"no room for /{prefixlen} subnet within {self.name} "
            f"(tried from /{prefixlen} to /{BIGGEST_SUBNET_FLOOR + 1})"
        )

    def gen_subnets(
        self,
        cabinet_groups: list[CabinetGroupDetail],
        mask,
        cabinet_filter: CabinetFilter,
    ) -> list[Subnet]:
        """Add one cabinet_<id> subnet per cabinet matching cabinet_filter.

        A cabinet's pre-assigned subnet and VLAN for this network (NMN or
        HMN, by name prefix) are honored; otherwise the next free block
        is allocated and VLANs count up from the network's base VLAN.
        The VLANs used are written back as the network's vlan_range.
        """
        base_vlan = self.base_vlan
        prefix = self.name[:3].upper()
        created: list[Subnet] = []
        index = 0
        for group in cabinet_groups:
            for detail in group.cabinet_details:
                if not cabinet_filter(group, detail):
                    continue
                if prefix == "NMN":
                    preset_subnet, vlan_id = detail.nmn_subnet, detail.nmn_vlan
                elif prefix == "HMN":
                    preset_subnet, vlan_id = detail.hmn_subnet, detail.hmn_vlan
                else:
                    preset_subnet, vlan_id = "", 0
                if not vlan_id:
                    vlan_id = base_vlan + index
                index += 1

                name = f"cabinet_{detail.id}"
                if preset_subnet:
                    subnet = self.add_subnet_by_cidr(preset_subnet, name, vlan_id)
                else:
                    subnet = self.add_subnet(mask, name, vlan_id)
                subnet.update_dhcp_range(CompatibilityMode.STANDARD)
                created.append(subnet)

        if created:
            vlans = [s.vlan_id for s in created]
            self.vlan_range = [min(vlans), max(vlans)]
        return created

    def apply_supernet_hack(self) -> None:
        """Give the supernet-mode subnets this network's mask and gateway."""
        network = self._require_cidr()
        gateway = find_gateway_ip(network)
        for name in SUPERNET_HACK_SUBNETS:
            try:
                subnet = self.look_up_subnet(name)
            except (SubnetNotFoundError, DuplicateSubnetError):
                continue
            if subnet.cidr is None:
                continue
            subnet.gateway = gateway
            subnet.cidr = ipaddress.IPv4Interface((subnet.cidr.ip, network.prefixlen))
            if subnet.dhcp_start is not None:
                subnet.update_dhcp_range(CompatibilityMode.SUPERNET)
