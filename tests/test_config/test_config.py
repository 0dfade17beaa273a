"""Tests for loading csinet.toml."""

import textwrap

import pytest

from csinet.config import load_config
from csinet.constraints.errors import InvalidInputError
from csinet.models.hardware import (
    CabinetKind,
    ChassisCount,
    ManagementSwitchBrand,
    ManagementSwitchType,
)
from csinet.models.network import CompatibilityMode


def _write(tmp_path, text):
    path = tmp_path / "csinet.toml"
    path.write_text(textwrap.dedent(text))
    return path


class TestLoadConfig:
    def test_fixture_system(self, config_file):
        config = load_config(config_file)
        assert config.system.ncns == 3
        assert config.system.bican_user_network == "CAN"
        assert config.system.compatibility is CompatibilityMode.STANDARD
        assert config.overrides["bgp-asn"] == "65533"
        assert [g.kind for g in config.cabinets] == [CabinetKind.RIVER, CabinetKind.MOUNTAIN]
        assert config.cabinets[1].starting_cabinet == 1000
        assert [s.switch_type for s in config.switches] == [
            ManagementSwitchType.SPINE, ManagementSwitchType.LEAF_BMC,
        ]
        assert config.switches[0].brand is ManagementSwitchBrand.ARUBA
        assert [n.hostname for n in config.ncns] == ["ncn-m001", "ncn-w001", "ncn-s001"]
        assert config.output.format == "json"

    def test_empty_file(self, tmp_path):
        config = load_config(_write(tmp_path, ""))
        assert config.system.compatibility is CompatibilityMode.STANDARD
        assert config.overrides == {}
        assert config.output.path == ""
        assert config.ncn_count == 0

    def test_default_path(self, config_file, monkeypatch):
        monkeypatch.chdir(config_file.parent)
        assert load_config().system.ncns == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path):
        with pytest.raises(InvalidInputError):
            load_config(_write(tmp_path, "[system\n"))

    def test_ncn_count_falls_back_to_entries(self, tmp_path):
        config = load_config(_write(tmp_path, """\
            [[ncns]]
            xname = "x3000c0s1b0n0"
        """))
        assert config.ncn_count == 1
        assert config.ncns[0].hostname == ""


class TestSystem:
    def test_supernet(self, tmp_path):
        config = load_config(_write(tmp_path, """\
            [system]
            compatibility = "supernet"
            bican_user_network = "chn"
            retain_unused_user_network = true
        """))
        assert config.system.compatibility is CompatibilityMode.SUPERNET
        assert config.system.bican_user_network == "CHN"
        assert config.system.retain_unused_user_network

    def test_unknown_compatibility(self, tmp_path):
        with pytest.raises(InvalidInputError, match="unknown compatibility mode"):
            load_config(_write(tmp_path, '[system]\ncompatibility = "legacy"\n'))

    def test_bad_ncns(self, tmp_path):
        with pytest.raises(InvalidInputError, match="ncns must be an integer"):
            load_config(_write(tmp_path, '[system]\nncns = "three"\n'))


class TestOverrides:
    def test_values_stringified(self, tmp_path):
        config = load_config(_write(tmp_path, """\
            [overrides]
            NMN-Bootstrap-VLAN = 12
            chn-enabled = true
        """))
        assert config.overrides == {"nmn-bootstrap-vlan": "12", "chn-enabled": "true"}


class TestHardware:
    def test_cabinet_details(self, tmp_path):
        config = load_config(_write(tmp_path, """\
            [[cabinets]]
            kind = "EX2500"
            count = 1
            starting_id = 9000

            [[cabinets.details]]
            id = 9000
            liquid_cooled = 0
            air_cooled = 1
            nmn_subnet = "10.100.4.0/22"
            nmn_vlan = 2100
        """))
        group = config.cabinets[0]
        assert group.kind is CabinetKind.EX2500
        detail = group.cabinet_details[0]
        assert detail.chassis_count == ChassisCount(liquid_cooled=0, air_cooled=1)
        assert detail.nmn_subnet == "10.100.4.0/22"
        assert detail.nmn_vlan == 2100
        assert detail.hmn_vlan == 0

    def test_cabinet_needs_kind(self, tmp_path):
        with pytest.raises(InvalidInputError, match="needs a kind"):
            load_config(_write(tmp_path, "[[cabinets]]\ncount = 1\n"))

    def test_unknown_cabinet_kind(self, tmp_path):
        with pytest.raises(InvalidInputError, match="unknown cabinet kind"):
            load_config(_write(tmp_path, '[[cabinets]]\nkind = "lake"\n'))

    def test_switch_type_case_insensitive(self, tmp_path):
        config = load_config(_write(tmp_path, """\
            [[switches]]
            xname = "X3000C0W014"
            type = "leafbmc"
        """))
        switch = config.switches[0]
        assert switch.switch_type is ManagementSwitchType.LEAF_BMC
        assert switch.xname == "x3000c0w14"
        assert switch.brand is None

    def test_switch_bad_xname(self, tmp_path):
        with pytest.raises(InvalidInputError, match="invalid xname used for Spine switch"):
            load_config(_write(tmp_path, """\
                [[switches]]
                xname = "x3000c0w14"
                type = "Spine"
            """))

    def test_switch_unknown_type(self, tmp_path):
        with pytest.raises(InvalidInputError, match="unknown switch type"):
            load_config(_write(tmp_path, """\
                [[switches]]
                xname = "x3000c0w14"
                type = "Router"
            """))

    def test_switch_needs_type(self, tmp_path):
        with pytest.raises(InvalidInputError, match="needs an xname and a type"):
            load_config(_write(tmp_path, '[[switches]]\nxname = "x3000c0w14"\n'))

    def test_ncn_needs_xname(self, tmp_path):
        with pytest.raises(InvalidInputError, match="needs an xname"):
            load_config(_write(tmp_path, '[[ncns]]\nhostname = "ncn-m001"\n'))


class TestOutput:
    def test_summary(self, tmp_path):
        config = load_config(_write(tmp_path, '[output]\npath = "out.txt"\nformat = "summary"\n'))
        assert config.output.path == "out.txt"
        assert config.output.format == "summary"

    def test_unknown_format(self, tmp_path):
        with pytest.raises(InvalidInputError, match="unknown output format"):
            load_config(_write(tmp_path, '[output]\nformat = "yaml"\n'))
