"""
Dependency Graph Builder

Edges point from the module that depends to the module it depends on:
consumer -> interface module -> producer. The graph stays acyclic; every
insertion is checked against the current reachability before it is made.
"""

import logging
from collections import deque
from typing import Dict, List, Optional, Set, Union

from tflayer.project.models import (
    Edge,
    EdgeKind,
    InterfaceModule,
    Module,
    ProjectScan,
)

logger = logging.getLogger(__name__)

STATE_EDGES = (EdgeKind.READS_STATE, EdgeKind.DIRECT_STATE)


class CycleError(Exception):
    """Inserting an edge would make a module depend on itself."""
    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle: {' -> '.join(cycle)}")


class ProjectGraph:
    """Modules, interface modules and the edges between them."""

    def __init__(self, root: str, modules: Dict[str, Module]):
        self.root = root
        self.modules: Dict[str, Module] = {path: modules[path] for path in sorted(modules)}
        self.edges: List[Edge] = []
        self._out: Dict[str, List[Edge]] = {path: [] for path in self.modules}
        self._in: Dict[str, List[Edge]] = {path: [] for path in self.modules}
        self._edge_set: Set[Edge] = set()

    def __repr__(self):
        return f"ProjectGraph({self.root}, {len(self.modules)} modules, {len(self.edges)} edges)"

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def find_path(self, start: str, goal: str) -> Optional[List[str]]:
        """Shortest path of module paths from start to goal, or None."""
        if start == goal:
            return [start]
        parents: Dict[str, Optional[str]] = {start: None}
        queue = deque([start])
        while queue:
            node = queue.popleft()
            for edge in self._out.get(node, []):
                nxt = edge.target
                if nxt in parents:
                    continue
                parents[nxt] = node
                if nxt == goal:
                    path = [nxt]
                    while parents[path[-1]] is not None:
                        path.append(parents[path[-1]])
                    return list(reversed(path))
                queue.append(nxt)
        return None

    def reachable(self, start: str, goal: str) -> bool:
        return self.find_path(start, goal) is not None

    def add_edge(self, edge: Edge) -> bool:
        """
        Insert an edge. Returns False for a duplicate.

        Raises:
            CycleError: the target already reaches the source
        """
        if edge in self._edge_set:
            return False
        back = self.find_path(edge.target, edge.source)
        if back is not None:
            raise CycleError([edge.source] + back)
        self._edge_set.add(edge)
        self.edges.append(edge)
        self._out.setdefault(edge.source, []).append(edge)
        self._in.setdefault(edge.target, []).append(edge)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def edges_from(self, path: str, kind: Optional[EdgeKind] = None) -> List[Edge]:
        return [e for e in self._out.get(path, []) if kind is None or e.kind == kind]

    def edges_to(self, path: str, kind: Optional[EdgeKind] = None) -> List[Edge]:
        return [e for e in self._in.get(path, []) if kind is None or e.kind == kind]

    def consumers_of(self, interface_path: str) -> List[str]:
        return [e.source for e in self.edges_to(interface_path, EdgeKind.CONSUMES)]

    @property
    def interfaces(self) -> List[InterfaceModule]:
        return [m for m in self.modules.values() if m.is_interface]

    def is_producer(self, path: str) -> bool:
        """True if some module reads this module's remote state."""
        return any(e.kind in STATE_EDGES for e in self._in.get(path, []))

    def producer_of(self, interface_path: str) -> Optional[Module]:
        module = self.modules.get(interface_path)
        if not isinstance(module, InterfaceModule) or module.producer is None:
            return None
        return self.modules.get(module.producer)

    def layers(self) -> Dict[str, int]:
        """Depth of each module: 0 for modules that depend on nothing."""
        layer: Dict[str, int] = {}

        def visit(node: str) -> int:
            if node in layer:
                return layer[node]
            outs = [e.target for e in self._out.get(node, [])]
            layer[node] = 1 + max(visit(t) for t in outs) if outs else 0
            return layer[node]

        for node in self.modules:
            visit(node)
        return layer

    def summary(self) -> Dict:
        counts = {kind.value: 0 for kind in EdgeKind}
        for edge in self.edges:
            counts[edge.kind.value] += 1
        return {
            "root": self.root,
            "modules": len(self.modules),
            "interfaces": len(self.interfaces),
            "edges": counts,
        }


def build_graph(scan: Union[ProjectScan, Dict[str, Module]], root: str = ".") -> ProjectGraph:
    """
    Build the ProjectGraph from scanned modules.

    Raises:
        CycleError: the modules depend on each other in a loop
    """
    if isinstance(scan, ProjectScan):
        root, modules = scan.root, scan.modules
    else:
        modules = scan

    graph = ProjectGraph(root, modules)
    producers = {rs.producer for m in graph.modules.values() for rs in m.remote_states if rs.producer}

    for path, module in graph.modules.items():
        for call in module.module_calls:
            if not call.is_local:
                continue
            target = graph.modules.get(call.target)
            if target is None:
                logger.debug(f"{path}: module '{call.name}' source {call.source} is outside the scan")
                continue
            if target.is_interface:
                kind = EdgeKind.CONSUMES
            elif call.target in producers and not module.is_interface:
                # Calling a producer directly bypasses its interface
                kind = EdgeKind.DIRECT_STATE
            else:
                kind = EdgeKind.CALLS
            graph.add_edge(Edge(path, call.target, kind))

        for rs in module.remote_states:
            if rs.producer is None:
                continue
            kind = EdgeKind.READS_STATE if module.is_interface else EdgeKind.DIRECT_STATE
            graph.add_edge(Edge(path, rs.producer, kind))

    logger.info(f"Built graph: {len(graph.modules)} modules, {len(graph.edges)} edges")
    return graph
