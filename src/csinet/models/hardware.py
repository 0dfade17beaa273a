"""Manufacturing inputs: cabinet groups, management switches and nodes.

These are read-only facts handed to the topology builder. Cabinets drive
per-cabinet subnet generation; switches drive the reservation names in
the networking hardware and bootstrap subnets.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from csinet.constraints.errors import InvalidInputError


# ---------------------------------------------------------------------------
# Cabinets
# ---------------------------------------------------------------------------

class CabinetClass(Enum):
    """Cooling/packaging class a cabinet belongs to."""

    RIVER = "River"
    HILL = "Hill"
    MOUNTAIN = "Mountain"


class CabinetKind(Enum):
    """A generic cabinet type or a concrete cabinet model."""

    RIVER = "river"
    HILL = "hill"
    MOUNTAIN = "mountain"
    EX2000 = "EX2000"
    EX2500 = "EX2500"
    EX3000 = "EX3000"
    EX4000 = "EX4000"

    @classmethod
    def parse(cls, raw: str) -> CabinetKind:
        """Parse a cabinet kind case-insensitively.

        >>> CabinetKind.parse('Mountain')
        <CabinetKind.MOUNTAIN: 'mountain'>
        >>> CabinetKind.parse('ex2500')
        <CabinetKind.EX2500: 'EX2500'>
        """
        text = raw.strip().lower()
        for kind in cls:
            if kind.value.lower() == text:
                return kind
        raise InvalidInputError(f"unknown cabinet kind ({raw})")

    @property
    def is_model(self) -> bool:
        """True for concrete models (EXnnnn) rather than generic classes."""
        return self not in (CabinetKind.RIVER, CabinetKind.HILL, CabinetKind.MOUNTAIN)

    @property
    def cabinet_class(self) -> CabinetClass:
        return _KIND_CLASSES[self]


_KIND_CLASSES = {
    CabinetKind.RIVER: CabinetClass.RIVER,
    CabinetKind.HILL: CabinetClass.HILL,
    CabinetKind.EX2000: CabinetClass.HILL,
    CabinetKind.EX2500: CabinetClass.HILL,
    CabinetKind.MOUNTAIN: CabinetClass.MOUNTAIN,
    CabinetKind.EX3000: CabinetClass.MOUNTAIN,
    CabinetKind.EX4000: CabinetClass.MOUNTAIN,
}


@dataclass(frozen=True)
class ChassisCount:
    """Chassis composition, only meaningful for EX2500 cabinets."""

    liquid_cooled: int = 0
    air_cooled: int = 0


@dataclass
class CabinetDetail:
    """A single cabinet and its optional pre-assigned addressing.

    Attributes:
        id: Cabinet number (e.g. 3000 for x3000).
        chassis_count: Optional chassis composition.
        nmn_subnet: Pre-assigned NMN subnet CIDR, or '' to allocate one.
        nmn_vlan: Pre-assigned NMN VLAN, or 0 to assign sequentially.
        hmn_subnet: Pre-assigned HMN subnet CIDR, or ''.
        hmn_vlan: Pre-assigned HMN VLAN, or 0.
    """

    id: int = 0
    chassis_count: ChassisCount | None = None
    nmn_subnet: str = ""
    nmn_vlan: int = 0
    hmn_subnet: str = ""
    hmn_vlan: int = 0


@dataclass
class CabinetGroupDetail:
    """A group of cabinets of one kind.

    Either give ``cabinets`` and ``starting_cabinet`` and call
    populate_ids(), or list the cabinets explicitly in ``cabinet_details``.
    """

    kind: CabinetKind
    cabinets: int = 0
    starting_cabinet: int = 0
    cabinet_details: list[CabinetDetail] = field(default_factory=list)

    @property
    def cabinet_class(self) -> CabinetClass:
        return self.kind.cabinet_class

    def populate_ids(self) -> None:
        """Fill in missing cabinets and ids as starting_cabinet + index.

        >>> group = CabinetGroupDetail(CabinetKind.RIVER, cabinets=3, starting_cabinet=3000)
        >>> group.populate_ids()
        >>> group.cabinet_ids()
        [3000, 3001, 3002]
        """
        if len(self.cabinet_details) >= self.cabinets:
            return
        for index in range(self.cabinets):
            if index >= len(self.cabinet_details):
                self.cabinet_details.append(CabinetDetail())
            detail = self.cabinet_details[index]
            if detail.id == 0:
                detail.id = self.starting_cabinet + index

    def cabinet_ids(self) -> list[int]:
        return [detail.id for detail in self.cabinet_details]

    def details_by_id(self) -> dict[int, CabinetDetail]:
        return {detail.id: detail for detail in self.cabinet_details}

    def __len__(self) -> int:
        if not self.cabinet_details:
            return self.cabinets
        return len(self.cabinet_details)


CabinetFilter = Callable[[CabinetGroupDetail, CabinetDetail], bool]


def cabinet_kind_filter(kind: CabinetKind) -> CabinetFilter:
    return lambda group, detail: group.kind == kind


def cabinet_class_filter(cabinet_class: CabinetClass) -> CabinetFilter:
    return lambda group, detail: group.cabinet_class == cabinet_class


def cabinet_air_cooled_chassis_count_filter(count: int) -> CabinetFilter:
    def _filter(group: CabinetGroupDetail, detail: CabinetDetail) -> bool:
        return detail.chassis_count is not None and detail.chassis_count.air_cooled == count
    return _filter


def cabinet_liquid_cooled_chassis_count_filter(count: int) -> CabinetFilter:
    def _filter(group: CabinetGroupDetail, detail: CabinetDetail) -> bool:
        return detail.chassis_count is not None and detail.chassis_count.liquid_cooled == count
    return _filter


def and_cabinet_filter(*filters: CabinetFilter) -> CabinetFilter:
    """Match only when every filter matches."""
    return lambda group, detail: all(f(group, detail) for f in filters)


def or_cabinet_filter(*filters: CabinetFilter) -> CabinetFilter:
    """Match when any filter matches."""
    return lambda group, detail: any(f(group, detail) for f in filters)


# ---------------------------------------------------------------------------
# Management switches
# ---------------------------------------------------------------------------

class ManagementSwitchType(Enum):
    CDU = "CDU"
    LEAF = "Leaf"
    LEAF_BMC = "LeafBMC"
    SPINE = "Spine"
    AGGREGATION = "Aggregation"
    EDGE = "Edge"


class ManagementSwitchBrand(Enum):
    ARUBA = "Aruba"
    DELL = "Dell"
    MELLANOX = "Mellanox"


# xXcCwW: a switch mounted in a rack slot
_MGMT_SWITCH_RE = re.compile(r'^x\d+c\d+w\d+$')
# xXcChHsS: a high-level switch in a switch chassis
_MGMT_HL_SWITCH_RE = re.compile(r'^x\d+c\d+h\d+s\d+$')
# dDwW: a switch in a coolant distribution unit
_CDU_SWITCH_RE = re.compile(r'^d\d+w\d+$')

_XNAME_FORMATS = {
    ManagementSwitchType.LEAF: ((_MGMT_SWITCH_RE,), "xXcCwW"),
    ManagementSwitchType.LEAF_BMC: ((_MGMT_SWITCH_RE,), "xXcCwW"),
    ManagementSwitchType.SPINE: ((_MGMT_HL_SWITCH_RE,), "xXcChHsS"),
    ManagementSwitchType.AGGREGATION: ((_MGMT_HL_SWITCH_RE,), "xXcChHsS"),
    ManagementSwitchType.EDGE: ((_MGMT_HL_SWITCH_RE,), "xXcChHsS"),
    ManagementSwitchType.CDU: ((_CDU_SWITCH_RE, _MGMT_HL_SWITCH_RE), "dDwW or xXcChHsS"),
}


def normalize_xname(xname: str) -> str:
    """Lowercase an xname and strip leading zeros from each number.

    >>> normalize_xname('X3000C0W014')
    'x3000c0w14'
    """
    return re.sub(r'(?<=[a-z])0+(?=\d)', '', xname.strip().lower())


@dataclass
class ManagementSwitch:
    """A management network switch.

    Attributes:
        xname: Hardware location (e.g. 'x3000c0w14').
        switch_type: Role of the switch in the management network.
        name: Hostname (e.g. 'sw-leaf-bmc-001').
        brand: Vendor.
        model: Vendor model string.
        management_interface: Address of its management interface, if known.
    """

    xname: str
    switch_type: ManagementSwitchType
    name: str = ""
    brand: ManagementSwitchBrand | None = None
    model: str = ""
    management_interface: str = ""

    def __post_init__(self) -> None:
        self.xname = normalize_xname(self.xname)

    def validate(self) -> None:
        """Check the xname has the right shape for the switch type."""
        patterns, shape = _XNAME_FORMATS[self.switch_type]
        if not any(p.match(self.xname) for p in patterns):
            raise InvalidInputError(
                f"invalid xname used for {self.switch_type.value} switch: "
                f"{self.xname}, should use {shape} format"
            )


def switch_xnames_by_type(
    switches: list[ManagementSwitch], switch_type: ManagementSwitchType,
) -> list[str]:
    """Return the xnames of switches of one type, in input order."""
    return [s.xname for s in switches if s.switch_type == switch_type]


# ---------------------------------------------------------------------------
# Management nodes
# ---------------------------------------------------------------------------

@dataclass
class ManagementNode:
    """A management non-compute node (NCN).

    Attributes:
        xname: Node location (e.g. 'x3000c0s1b0n0').
        hostname: Hostname (e.g. 'ncn-m001').
        role: Node role, normally 'Management'.
        subrole: 'Master', 'Worker' or 'Storage'.
        ip_addresses: Network name to reserved bootstrap IPv4 address.
        bmc_ip: Reserved HMN address of the node's BMC.
    """

    xname: str
    hostname: str = ""
    role: str = "Management"
    subrole: str = ""
    ip_addresses: dict[str, ipaddress.IPv4Address] = field(default_factory=dict)
    bmc_ip: ipaddress.IPv4Address | None = None

    def __post_init__(self) -> None:
        self.xname = normalize_xname(self.xname)

    @property
    def bmc_xname(self) -> str:
        """The BMC xname: the node xname without its 'n0' suffix.

        >>> ManagementNode('x3000c0s9b0n0').bmc_xname
        'x3000c0s9b0'
        """
        return self.xname.removesuffix("n0")
