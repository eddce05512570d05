"""
tflayer.tools - Checker, generator and reporting
"""

from tflayer.tools.check import (
    ConventionChecker,
    Violation,
    ViolationKind,
    check_graph,
)
from tflayer.tools.generate import (
    GeneratedInterface,
    InterfaceExistsError,
    UnknownOutputError,
    generate_interface,
    write_interface,
)
from tflayer.tools.report import ScanReporter, ViolationReporter

__all__ = [
    "ConventionChecker",
    "Violation",
    "ViolationKind",
    "check_graph",
    "GeneratedInterface",
    "InterfaceExistsError",
    "UnknownOutputError",
    "generate_interface",
    "write_interface",
    "ScanReporter",
    "ViolationReporter",
]
