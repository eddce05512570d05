"""
tflayer.project - Terraform project model

Scanning a project tree into Module records and linking them into a
ProjectGraph.
"""

from tflayer.project.models import (
    BackendConfig,
    Edge,
    EdgeKind,
    InterfaceModule,
    Module,
    ModuleCall,
    ProjectScan,
    RemoteState,
    ScanWarning,
)
from tflayer.project.scanner import ScanError, scan_module, scan_project
from tflayer.project.graph import CycleError, ProjectGraph, build_graph

__all__ = [
    # Models
    "BackendConfig",
    "Edge",
    "EdgeKind",
    "InterfaceModule",
    "Module",
    "ModuleCall",
    "ProjectScan",
    "RemoteState",
    "ScanWarning",
    # Scanner
    "ScanError",
    "scan_module",
    "scan_project",
    # Graph
    "CycleError",
    "ProjectGraph",
    "build_graph",
]
