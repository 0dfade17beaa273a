"""CLI entry point for csinet.

Subcommands:
    generate   Build the networks from config and write SLS JSON or a summary.
    validate   Build the networks and report constraint violations.
    info       Show the loaded configuration.
    free       Print the next free subnet of a given size.
    split      Split a network into equal subnets.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def _load_config(args: argparse.Namespace):
    """Load config, handling errors."""
    from csinet.config import DEFAULT_CONFIG_PATH, load_config
    from csinet.constraints.errors import IPAMError

    config_path = getattr(args, "config", None)
    try:
        return load_config(config_path)
    except FileNotFoundError:
        path = config_path or DEFAULT_CONFIG_PATH
        print(f"Error: config file not found: {path}", file=sys.stderr)
        sys.exit(1)
    except IPAMError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _build_pipeline(config):
    """Run the full build: layouts -> networks -> NCNs -> DHCP -> IPv6 -> validate.

    Returns (networks, validation_result).
    """
    from csinet.constraints.validators import validate_networks
    from csinet.derivations.ipv6 import add_ipv6_networks
    from csinet.derivations.layout import default_layouts
    from csinet.derivations.ncn import (
        allocate_ncn_ips,
        finalize_dhcp_ranges,
        update_ncn_reservations,
    )
    from csinet.derivations.network_builder import build_csm_networks

    mode = config.system.compatibility
    layouts = default_layouts(
        config.ncn_count,
        config.switches,
        config.cabinets,
        config.overrides,
        bican_user_network=config.system.bican_user_network,
        retain_unused_user_network=config.system.retain_unused_user_network,
    )
    networks = build_csm_networks(
        layouts, config.cabinets, config.switches, config.overrides, mode,
    )

    # NCN reservations go in before the DHCP ranges are final.
    allocate_ncn_ips(networks, config.ncns)
    update_ncn_reservations(networks, config.ncns)
    finalize_dhcp_ranges(networks, config.overrides, mode)

    for name in add_ipv6_networks(networks, config.overrides, mode):
        logger.info("Added IPv6 to %s", name)

    return networks, validate_networks(networks)


def _get_generator(name: str):
    """Get a generator function by name."""
    from csinet.generators.base import Generator

    generators = {
        "json": ("csinet.generators.sls", "generate_sls_json"),
        "summary": ("csinet.generators.summary", "generate_summary"),
    }
    if name not in generators:
        return None
    module_path, func_name = generators[name]
    import importlib
    mod = importlib.import_module(module_path)
    gen: Generator = getattr(mod, func_name)
    return gen


# ---------------------------------------------------------------------------
# Subcommand: generate
# ---------------------------------------------------------------------------

def cmd_generate(args: argparse.Namespace) -> int:
    """Build the networks and write them out."""
    from csinet.constraints.errors import IPAMError

    config = _load_config(args)
    try:
        networks, validation = _build_pipeline(config)
    except IPAMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if validation.has_errors:
        print("Validation errors found:", file=sys.stderr)
        print(validation.report(), file=sys.stderr)
        if not args.force:
            print("Use --force to generate despite errors.", file=sys.stderr)
            return 1

    if validation.warnings:
        print(f"Validation: {len(validation.warnings)} warning(s)", file=sys.stderr)

    fmt = args.format or config.output.format
    gen_func = _get_generator(fmt)
    if gen_func is None:
        print(f"Error: unknown output format {fmt!r}", file=sys.stderr)
        return 1
    output = gen_func(networks)

    output_path = config.output.path
    if output_path and not args.stdout:
        Path(output_path).write_text(output, encoding="utf-8")
        print(f"  {fmt}: wrote {output_path} ({len(output)} bytes)")
    else:
        print(output, end="" if output.endswith("\n") else "\n")
    return 0


# ---------------------------------------------------------------------------
# Subcommand: validate
# ---------------------------------------------------------------------------

def cmd_validate(args: argparse.Namespace) -> int:
    """Build the networks and report constraint violations."""
    from csinet.constraints.errors import IPAMError

    config = _load_config(args)
    try:
        networks, result = _build_pipeline(config)
    except IPAMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    subnets = sum(len(n.subnets) for n in networks.values())
    print(f"Networks: {len(networks)}")
    print(f"Subnets:  {subnets}")
    print()
    print(result.report())

    return 1 if result.has_errors else 0


# ---------------------------------------------------------------------------
# Subcommand: info
# ---------------------------------------------------------------------------

def cmd_info(args: argparse.Namespace) -> int:
    """Show the loaded configuration."""
    config = _load_config(args)

    print(f"Compatibility:      {config.system.compatibility.value}")
    print(f"BICAN user network: {config.system.bican_user_network}")
    print(f"NCNs:               {config.ncn_count}")
    print()

    print("Cabinets:")
    for group in config.cabinets:
        print(f"  {group.kind.value}: {len(group)} from {group.starting_cabinet}")
    print()

    print("Switches:")
    for switch in config.switches:
        print(f"  {switch.xname}: {switch.switch_type.value} {switch.name}".rstrip())
    print()

    print("Overrides:")
    for key, value in sorted(config.overrides.items()):
        print(f"  {key} = {value}")

    return 0


# ---------------------------------------------------------------------------
# Subcommands: free, split
# ---------------------------------------------------------------------------

def cmd_free(args: argparse.Namespace) -> int:
    """Print the first free subnet of the requested size."""
    from csinet.constraints.errors import IPAMError
    from csinet.ipam.allocator import free

    try:
        print(free(args.network, args.mask, args.subnets))
    except IPAMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_split(args: argparse.Namespace) -> int:
    """Print the network split into N equal subnets."""
    from csinet.constraints.errors import IPAMError
    from csinet.ipam.allocator import split

    try:
        subnets = split(args.network, args.count)
    except IPAMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    for subnet in subnets:
        print(subnet)
    return 0


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    from csinet.logging import setup_logging

    parser = argparse.ArgumentParser(
        prog="csinet",
        description="Generate system network topology and IP allocations.",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to csinet.toml (default: ./csinet.toml)",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Log more (-v for info, -vv for debug)",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true",
        help="Do not log to stderr",
    )
    parser.add_argument(
        "--log-file",
        help="Also write the log to this file (rotated at 5 MB)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # generate
    gen_parser = subparsers.add_parser("generate", help="Build networks and write output")
    gen_parser.add_argument(
        "--format", choices=("json", "summary"),
        help="Output format (default: [output] format, else json)",
    )
    gen_parser.add_argument(
        "--stdout", action="store_true",
        help="Print output to stdout instead of writing [output] path",
    )
    gen_parser.add_argument(
        "--force", action="store_true",
        help="Generate even if validation errors exist",
    )

    # validate
    subparsers.add_parser("validate", help="Run constraint validation")

    # info
    subparsers.add_parser("info", help="Show configuration")

    # free
    free_parser = subparsers.add_parser("free", help="Find the next free subnet")
    free_parser.add_argument("network", help="Parent network CIDR")
    free_parser.add_argument("mask", help="Prefix length or netmask of the new subnet")
    free_parser.add_argument("subnets", nargs="*", help="Subnets already in use")

    # split
    split_parser = subparsers.add_parser("split", help="Split a network into equal subnets")
    split_parser.add_argument("network", help="Network CIDR")
    split_parser.add_argument("count", type=int, help="Number of subnets")

    args = parser.parse_args(argv)

    level = ("WARNING", "INFO", "DEBUG")[min(args.verbose, 2)]
    setup_logging(level=level, quiet=args.quiet, log_file=args.log_file)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "generate": cmd_generate,
        "validate": cmd_validate,
        "info": cmd_info,
        "free": cmd_free,
        "split": cmd_split,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
