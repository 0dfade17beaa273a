"""Load system configuration from csinet.toml."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from csinet.constraints.errors import InvalidInputError
from csinet.models.hardware import (
    CabinetDetail,
    CabinetGroupDetail,
    CabinetKind,
    ChassisCount,
    ManagementNode,
    ManagementSwitch,
    ManagementSwitchBrand,
    ManagementSwitchType,
)
from csinet.models.network import CompatibilityMode

DEFAULT_CONFIG_PATH = "csinet.toml"
OUTPUT_FORMATS = ("json", "summary")


@dataclass
class SystemConfig:
    """System-wide settings from the [system] section.

    ``ncns`` sizes the CMN layout; when it is zero the number of
    [[ncns]] entries is used instead.
    """

    ncns: int = 0
    bican_user_network: str = "CAN"
    retain_unused_user_network: bool = False
    compatibility: CompatibilityMode = CompatibilityMode.STANDARD


@dataclass
class OutputConfig:
    """Where and how `csinet generate` writes its result."""

    path: str = ""
    format: str = "json"


@dataclass
class CsinetConfig:
    """Full configuration loaded from csinet.toml."""

    system: SystemConfig = field(default_factory=SystemConfig)
    overrides: dict[str, str] = field(default_factory=dict)
    cabinets: list[CabinetGroupDetail] = field(default_factory=list)
    switches: list[ManagementSwitch] = field(default_factory=list)
    ncns: list[ManagementNode] = field(default_factory=list)
    output: OutputConfig = field(default_factory=OutputConfig)

    @property
    def ncn_count(self) -> int:
        return self.system.ncns or len(self.ncns)


def _int(section: dict, key: str, default: int = 0) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int):
        try:
            return int(str(raw))
        except ValueError as e:
            raise InvalidInputError(f"{key} must be an integer, not {raw!r}") from e
    return raw


def _enum_by_value(enum_cls, raw: str, what: str):
    text = str(raw).strip().lower()
    for member in enum_cls:
        if member.value.lower() == text:
            return member
    choices = ", ".join(m.value for m in enum_cls)
    raise InvalidInputError(f"unknown {what} {raw!r} (expected one of: {choices})")


def _build_system(data: dict) -> SystemConfig:
    section = data.get("system", {})
    user_network = str(section.get("bican_user_network", "CAN")).upper()
    return SystemConfig(
        ncns=_int(section, "ncns"),
        bican_user_network=user_network,
        retain_unused_user_network=bool(section.get("retain_unused_user_network", False)),
        compatibility=CompatibilityMode.parse(section.get("compatibility", "standard")),
    )


def _build_overrides(data: dict) -> dict[str, str]:
    """Flatten [overrides] into strings; TOML numbers and booleans are stringified."""
    overrides = {}
    for key, value in data.get("overrides", {}).items():
        if isinstance(value, bool):
            value = str(value).lower()
        overrides[key.lower()] = str(value)
    return overrides


def _build_cabinet_detail(section: dict) -> CabinetDetail:
    chassis = None
    if "liquid_cooled" in section or "air_cooled" in section:
        chassis = ChassisCount(
            liquid_cooled=_int(section, "liquid_cooled"),
            air_cooled=_int(section, "air_cooled"),
        )
    return CabinetDetail(
        id=_int(section, "id"),
        chassis_count=chassis,
        nmn_subnet=section.get("nmn_subnet", ""),
        nmn_vlan=_int(section, "nmn_vlan"),
        hmn_subnet=section.get("hmn_subnet", ""),
        hmn_vlan=_int(section, "hmn_vlan"),
    )


def _build_cabinets(data: dict) -> list[CabinetGroupDetail]:
    groups = []
    for section in data.get("cabinets", []):
        if "kind" not in section:
            raise InvalidInputError("every [[cabinets]] entry needs a kind")
        groups.append(CabinetGroupDetail(
            kind=CabinetKind.parse(section["kind"]),
            cabinets=_int(section, "count"),
            starting_cabinet=_int(section, "starting_id"),
            cabinet_details=[
                _build_cabinet_detail(d) for d in section.get("details", [])
            ],
        ))
    return groups


def _build_switches(data: dict) -> list[ManagementSwitch]:
    switches = []
    for section in data.get("switches", []):
        if "xname" not in section or "type" not in section:
            raise InvalidInputError("every [[switches]] entry needs an xname and a type")
        brand = section.get("brand", "")
        switch = ManagementSwitch(
            xname=section["xname"],
            switch_type=_enum_by_value(ManagementSwitchType, section["type"], "switch type"),
            name=section.get("name", ""),
            brand=_enum_by_value(ManagementSwitchBrand, brand, "switch brand") if brand else None,
            model=section.get("model", ""),
            management_interface=section.get("management_interface", ""),
        )
        switch.validate()
        switches.append(switch)
    return switches


def _build_ncns(data: dict) -> list[ManagementNode]:
    ncns = []
    for section in data.get("ncns", []):
        if "xname" not in section:
            raise InvalidInputError("every [[ncns]] entry needs an xname")
        ncns.append(ManagementNode(
            xname=section["xname"],
            hostname=section.get("hostname", ""),
            role=section.get("role", "Management"),
            subrole=section.get("subrole", ""),
        ))
    return ncns


def _build_output(data: dict) -> OutputConfig:
    section = data.get("output", {})
    fmt = section.get("format", "json")
    if fmt not in OUTPUT_FORMATS:
        raise InvalidInputError(
            f"unknown output format {fmt!r} (expected one of: {', '.join(OUTPUT_FORMATS)})"
        )
    return OutputConfig(path=section.get("path", ""), format=fmt)


def load_config(config_path: Path | str | None = None) -> CsinetConfig:
    """Load configuration from a TOML file.

    If config_path is None, looks for csinet.toml in the current
    directory. A missing file raises FileNotFoundError; malformed
    values raise InvalidInputError.
    """
    if config_path is None:
        config_path = Path(DEFAULT_CONFIG_PATH)
    else:
        config_path = Path(config_path)

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise InvalidInputError(f"{config_path}: {e}") from e

    return CsinetConfig(
        system=_build_system(data),
        overrides=_build_overrides(data),
        cabinets=_build_cabinets(data),
        switches=_build_switches(data),
        ncns=_build_ncns(data),
        output=_build_output(data),
    )
