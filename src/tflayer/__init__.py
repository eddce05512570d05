"""
tflayer - Interface-convention linter and generator for layered Terraform projects

Infrastructure layers never read each other's remote state directly. Each
producer gets an interface module that reads its state and re-exports a
narrow set of outputs; consumers call the interface module.

Modules:
    parser: HCL lexer/parser and reference extraction
    project: Scanner, data model and dependency graph
    tools: Convention checker, interface generator, reporting
    config: YAML configuration with environment overrides
"""

__version__ = "0.1.0"

from tflayer.config import ConfigError, TflayerConfig, load_config
from tflayer.project import CycleError, ScanError, build_graph, scan_module, scan_project
from tflayer.tools import UnknownOutputError, check_graph, generate_interface

__all__ = [
    "__version__",
    "ConfigError",
    "TflayerConfig",
    "load_config",
    "CycleError",
    "ScanError",
    "build_graph",
    "scan_module",
    "scan_project",
    "UnknownOutputError",
    "check_graph",
    "generate_interface",
]
