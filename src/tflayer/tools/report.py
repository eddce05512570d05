"""
Reporting and output formatting.

Handles:
- Scan summaries (modules, roles, outputs, edges, warnings)
- Violation reports
- Human-readable and JSON output for both
"""

import json
from typing import Dict, List

from tflayer.project.graph import ProjectGraph
from tflayer.project.models import ScanWarning
from tflayer.tools.check import Violation, ViolationKind


class ScanReporter:
    """Formats a scanned ProjectGraph."""

    def __init__(self, graph: ProjectGraph, warnings: List[ScanWarning] = None):
        self.graph = graph
        self.warnings = list(warnings or [])

    def to_dict(self) -> Dict:
        layers = self.graph.layers()
        modules = []
        for path, module in self.graph.modules.items():
            data = module.to_dict()
            data["layer"] = layers.get(path, 0)
            modules.append(data)
        return {
            **self.graph.summary(),
            "module_list": modules,
            "edge_list": [
                {"source": e.source, "target": e.target, "kind": e.kind.value} for e in self.graph.edges
            ],
            "warnings": [w.to_dict() for w in self.warnings],
        }

    def render_human(self) -> str:
        graph = self.graph
        summary = graph.summary()
        layers = graph.layers()

        lines = [
            f"Project: {graph.root}",
            f"Modules: {summary['modules']}  Interfaces: {summary['interfaces']}  "
            f"Edges: {len(graph.edges)}  Warnings: {len(self.warnings)}",
            "",
        ]

        for path, module in graph.modules.items():
            lines.append(f"{path} [{module.role}, layer {layers.get(path, 0)}]")
            if module.outputs:
                lines.append(f"    outputs: {', '.join(module.outputs)}")
            producer = getattr(module, "producer", None)
            if module.is_interface:
                lines.append(f"    producer: {producer or '(unresolved)'}")
            for edge in graph.edges_from(path):
                lines.append(f"    --{edge.kind.value}--> {edge.target}")

        if self.warnings:
            lines.append("")
            lines.append("Warnings:")
            for warning in self.warnings:
                lines.append(f"  {warning}")

        return "\n".join(lines)

    def render_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


class ViolationReporter:
    """Formats checker output."""

    def __init__(self, violations: List[Violation]):
        self.violations = list(violations)

    def counts(self) -> Dict[str, int]:
        counts = {kind.value: 0 for kind in ViolationKind}
        for v in self.violations:
            counts[v.kind.value] += 1
        return counts

    def render_human(self) -> str:
        if not self.violations:
            return "OK: no convention violations"

        counts = ", ".join(f"{kind}: {n}" for kind, n in self.counts().items() if n)
        lines = [str(v) for v in self.violations]
        lines.append("")
        lines.append(f"{len(self.violations)} violation(s) ({counts})")
        return "\n".join(lines)

    def render_json(self) -> str:
        return json.dumps(
            {
                "violations": [v.to_dict() for v in self.violations],
                "counts": self.counts(),
            },
            indent=2,
        )
