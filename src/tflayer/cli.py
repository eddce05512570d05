"""
CLI entry point for tflayer.

Usage:
    tflayer scan <root>                       Show modules, roles and edges
    tflayer check <root>                      Report convention violations
    tflayer generate <module-path>            Print an interface module for a producer
    tflayer parse <file>                      Parse a .tf file and list its blocks
    tflayer config                            Show or initialize configuration

Exit codes:
    0   success / no violations
    1   violations found (check) or a file failed to parse (parse)
    2   fatal error (unreadable path, dependency cycle, unknown output, bad config)
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml

from tflayer import __version__
from tflayer.config import PROJECT_CONFIG_NAME, ConfigError, load_config, write_default_config
from tflayer.parser import LexerError, ParseError
from tflayer.project.graph import CycleError
from tflayer.project.scanner import ScanError
from tflayer.tools.generate import InterfaceExistsError, UnknownOutputError

logger = logging.getLogger(__name__)

FATAL_ERRORS = (ScanError, CycleError, UnknownOutputError, InterfaceExistsError, ConfigError)


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )


def _load(args, root: Path):
    return load_config(config_path=args.config, root=root)


def cmd_scan(args):
    """Scan a project and print the graph summary."""
    from tflayer.project import build_graph, scan_project
    from tflayer.tools.report import ScanReporter

    root = Path(args.root)
    scan = scan_project(root, _load(args, root))
    graph = build_graph(scan)

    reporter = ScanReporter(graph, scan.warnings)
    print(reporter.render_json() if args.json else reporter.render_human())
    return 0


def cmd_check(args):
    """Check a project against the interface convention."""
    from tflayer.project import build_graph, scan_project
    from tflayer.tools.check import check_graph
    from tflayer.tools.report import ViolationReporter

    root = Path(args.root)
    scan = scan_project(root, _load(args, root))
    for warning in scan.warnings:
        print(f"warning: {warning}", file=sys.stderr)

    violations = check_graph(build_graph(scan))

    reporter = ViolationReporter(violations)
    print(reporter.render_json() if args.json else reporter.render_human())
    return 1 if violations else 0


def cmd_generate(args):
    """Generate an interface module for a producer."""
    from tflayer.project import scan_module
    from tflayer.tools.generate import generate_interface, write_interface

    root = Path(args.root) if args.root else Path.cwd()
    config = _load(args, root)
    producer = scan_module(args.module_path, root, config)

    outputs = args.outputs.split(",") if args.outputs is not None else None
    generated = generate_interface(producer, outputs, config)

    if args.write:
        target = write_interface(generated, root, force=args.force)
        print(f"Wrote {target}", file=sys.stderr)

    sys.stdout.write(generated.render())
    return 0


def cmd_parse(args):
    """Parse a file and list its top-level blocks."""
    from tflayer.parser import AttributeNode, BlockNode, parse_file

    try:
        ast = parse_file(args.file)
    except (LexerError, ParseError) as e:
        print(f"Parse error: {args.file}:{e.line}:{e.column}: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        raise ScanError(f"Cannot read {args.file}: {e.strerror or e}", args.file) from e

    print(f"Parsed: {args.file}")
    print(f"Top-level entries: {len(ast.children)}")
    for child in ast.children:
        if isinstance(child, BlockNode):
            header = " ".join([child.type] + [f'"{label}"' for label in child.labels])
            print(f"  {header} (line {child.line})")
            if args.show_attributes:
                for key, attr in child.attributes.items():
                    print(f"      {key} = {attr.value.text}")
        elif isinstance(child, AttributeNode):
            print(f"  {child.key} = {child.value.text} (line {child.line})")

    return 0


def cmd_config(args):
    """Show the effective configuration or write a default config file."""
    root = Path(args.root)

    if args.init:
        target = Path(args.config) if args.config else root / PROJECT_CONFIG_NAME
        if target.exists() and not args.force:
            raise ConfigError(f"{target} already exists (use --force to overwrite)")
        write_default_config(target)
        print(f"Wrote {target}")
        return 0

    config = _load(args, root)
    print(yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=True), end="")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tflayer",
        description="Interface-convention linter and generator for layered Terraform projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    tflayer scan infra/
    tflayer check infra/ --json
    tflayer generate k8s/control-plane --outputs cluster_id,cluster_host --root infra/
    tflayer generate k8s/control-plane --root infra/ --write
"""
    )
    parser.add_argument('--version', action='version', version=f'tflayer {__version__}')
    parser.add_argument('--config', help='Config file (default: <root>/.tflayer.yaml)')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='More logging (-v info, -vv debug)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # scan
    scan_p = subparsers.add_parser('scan', help='Scan a project and show its module graph')
    scan_p.add_argument('root', help='Project root directory')
    scan_p.add_argument('--json', action='store_true', help='JSON output')
    scan_p.set_defaults(func=cmd_scan)

    # check
    check_p = subparsers.add_parser('check', help='Check the interface convention')
    check_p.add_argument('root', help='Project root directory')
    check_p.add_argument('--json', action='store_true', help='JSON output')
    check_p.set_defaults(func=cmd_check)

    # generate
    gen_p = subparsers.add_parser('generate', help='Generate an interface module for a producer')
    gen_p.add_argument('module_path', help='Producer module directory (relative to --root)')
    gen_p.add_argument('--outputs', help='Comma-separated output names (default: all)')
    gen_p.add_argument('--root', help='Project root (default: current directory)')
    gen_p.add_argument('--write', action='store_true', help='Also write main.tf into the interface directory')
    gen_p.add_argument('--force', action='store_true', help='Overwrite an existing main.tf')
    gen_p.set_defaults(func=cmd_generate)

    # parse
    parse_p = subparsers.add_parser('parse', help='Parse a .tf file')
    parse_p.add_argument('file', help='File to parse')
    parse_p.add_argument('-v', '--verbose', dest='show_attributes', action='store_true',
                         help='Also list block attributes')
    parse_p.set_defaults(func=cmd_parse)

    # config
    config_p = subparsers.add_parser('config', help='Show or initialize configuration')
    config_p.add_argument('root', nargs='?', default='.', help='Project root (default: .)')
    config_p.add_argument('--init', action='store_true', help='Write a default config file')
    config_p.add_argument('--force', action='store_true', help='Overwrite an existing config file')
    config_p.set_defaults(func=cmd_config)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(args.verbose)

    try:
        return args.func(args)
    except FATAL_ERRORS as e:
        logger.debug("Fatal error", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
