"""
Interface Convention Checker

Validates a ProjectGraph against the interface-module convention:
- Only interface modules read remote state, and nothing sources a producer
  module directly (DirectStateAccess)
- Interface outputs exist on the producer, and consumers only use outputs
  the interface exposes (UndeclaredOutput)
- Every interface module has at least one consumer (OrphanInterface)

The checker never modifies the graph. Violations come back sorted by
(module, kind, message), so the same graph always yields the same report.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from tflayer.parser.expressions import Reference
from tflayer.project.graph import ProjectGraph
from tflayer.project.models import REMOTE_STATE_TYPE, InterfaceModule, Module


class ViolationKind(Enum):
    """Convention breaches."""
    DIRECT_STATE_ACCESS = "DirectStateAccess"
    UNDECLARED_OUTPUT = "UndeclaredOutput"
    ORPHAN_INTERFACE = "OrphanInterface"


@dataclass(frozen=True)
class Violation:
    """A single convention breach found in a module."""
    module: str
    kind: ViolationKind
    message: str
    file: str = ""
    line: int = 0

    def __str__(self):
        loc = self.file or self.module
        if self.line:
            loc += f":{self.line}"
        return f"[{self.kind.value}] {loc}: {self.message}"

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.module, self.kind.value, self.message)

    def to_dict(self) -> Dict:
        return {
            "module": self.module,
            "kind": self.kind.value,
            "message": self.message,
            "file": self.file,
            "line": self.line,
        }


# ============================================================================
# REFERENCE HELPERS
# ============================================================================

def remote_state_name(ref: Reference) -> Optional[str]:
    """`data.terraform_remote_state.<name>...` -> name."""
    if len(ref.parts) >= 3 and ref.parts[0] == "data" and ref.parts[1] == REMOTE_STATE_TYPE:
        return ref.parts[2]
    return None


def remote_state_output(ref: Reference) -> Optional[Tuple[str, str]]:
    """`data.terraform_remote_state.<name>.outputs.<y>` -> (name, y)."""
    name = remote_state_name(ref)
    if name is not None and len(ref.parts) >= 5 and ref.parts[3] == "outputs":
        return name, ref.parts[4]
    return None


def module_output(ref: Reference) -> Optional[Tuple[str, str]]:
    """`module.<call>.<attr>` -> (call, attr)."""
    if len(ref.parts) >= 3 and ref.parts[0] == "module":
        return ref.parts[1], ref.parts[2]
    return None


# ============================================================================
# RULES
# ============================================================================

class ConventionRule:
    """Base class for convention rules."""

    kind: ViolationKind

    def check(self, module: Module, graph: ProjectGraph) -> List[Violation]:
        """Check one module and return any violations found."""
        raise NotImplementedError


class DirectStateAccessRule(ConventionRule):
    """Non-interface modules must not read remote state."""

    kind = ViolationKind.DIRECT_STATE_ACCESS

    def check(self, module: Module, graph: ProjectGraph) -> List[Violation]:
        if module.is_interface:
            return []

        # name -> (file, line) of the first place it shows up
        seen: Dict[str, Tuple[str, int]] = {}
        for rs in module.remote_states:
            seen.setdefault(rs.name, (rs.file, rs.line))
        for ref in module.references:
            name = remote_state_name(ref)
            if name is not None:
                seen.setdefault(name, (ref.file, ref.line))

        violations = []
        for name, (file, line) in seen.items():
            rs = module.remote_state(name)
            if rs is not None and rs.producer:
                message = (f"reads remote state '{name}' of {rs.producer} directly; "
                           f"consume an interface module instead")
            else:
                message = f"reads remote state '{name}' directly; consume an interface module instead"
            violations.append(Violation(module.path, self.kind, message, file, line))

        flagged = set()
        for call in module.module_calls:
            if call.target is None or call.target in flagged:
                continue
            target = graph.modules.get(call.target)
            if target is None or target.is_interface or not graph.is_producer(call.target):
                continue
            flagged.add(call.target)
            message = (f"module '{call.name}' sources producer {call.target} directly; "
                       f"consume an interface module instead")
            violations.append(Violation(module.path, self.kind, message, call.file, call.line))
        return violations


class UndeclaredOutputRule(ConventionRule):
    """Interface outputs must exist on the producer; consumers must use exposed outputs only."""

    kind = ViolationKind.UNDECLARED_OUTPUT

    def check(self, module: Module, graph: ProjectGraph) -> List[Violation]:
        violations = []
        if isinstance(module, InterfaceModule):
            violations.extend(self._check_interface(module, graph))
        violations.extend(self._check_consumer(module, graph))
        return violations

    def _producer_for(self, module: Module, state_name: str, graph: ProjectGraph) -> Optional[Module]:
        rs = module.remote_state(state_name)
        if rs is None or rs.producer is None:
            return None
        return graph.modules.get(rs.producer)

    def _check_interface(self, module: InterfaceModule, graph: ProjectGraph) -> List[Violation]:
        violations = []
        for output in module.outputs:
            refs = module.refs_for_output(output)
            reads = _unique(r for r in (remote_state_output(ref) for ref in refs) if r)

            if not reads:
                producer = graph.producer_of(module.path)
                if producer is not None and not producer.declares_output(output):
                    violations.append(Violation(
                        module.path, self.kind,
                        f"output '{output}' is not declared by producer {producer.path}",
                        *_location(module, refs),
                    ))
                continue

            for state_name, name in reads:
                producer = self._producer_for(module, state_name, graph)
                if producer is None:
                    continue
                if not producer.declares_output(name):
                    violations.append(Violation(
                        module.path, self.kind,
                        f"output '{output}' reads '{name}', which producer {producer.path} does not declare",
                        *_location(module, refs),
                    ))
        return violations

    def _check_consumer(self, module: Module, graph: ProjectGraph) -> List[Violation]:
        violations = []
        seen = set()
        for ref in module.references:
            pair = module_output(ref)
            if pair is None or pair in seen:
                continue
            seen.add(pair)

            call_name, attr = pair
            call = module.module_call(call_name)
            if call is None or call.target is None:
                continue
            target = graph.modules.get(call.target)
            if target is None or not target.is_interface:
                continue
            if not target.declares_output(attr):
                violations.append(Violation(
                    module.path, self.kind,
                    f"module.{call_name}.{attr} is not exposed by interface {target.path}",
                    ref.file, ref.line,
                ))
        return violations


class OrphanInterfaceRule(ConventionRule):
    """Interface modules need at least one consumer."""

    kind = ViolationKind.ORPHAN_INTERFACE

    def check(self, module: Module, graph: ProjectGraph) -> List[Violation]:
        if not module.is_interface or graph.consumers_of(module.path):
            return []
        file = module.files[0] if module.files else ""
        return [Violation(module.path, self.kind, "interface module has no consumers", file, 0)]


def _unique(items: Iterable) -> List:
    result = []
    for item in items:
        if item not in result:
            result.append(item)
    return result


def _location(module: Module, refs: Iterable[Reference]) -> Tuple[str, int]:
    for ref in refs:
        return ref.file, ref.line
    return (module.files[0] if module.files else ""), 0


# ============================================================================
# CHECKER
# ============================================================================

DEFAULT_RULES = [DirectStateAccessRule, UndeclaredOutputRule, OrphanInterfaceRule]


class ConventionChecker:
    """Runs convention rules over every module of a graph."""

    def __init__(self, rules: List[ConventionRule] = None):
        self.rules = rules if rules is not None else [rule() for rule in DEFAULT_RULES]

    def check(self, graph: ProjectGraph) -> List[Violation]:
        violations = set()
        for module in graph.modules.values():
            for rule in self.rules:
                violations.update(rule.check(module, graph))
        return sorted(violations, key=lambda v: (v.sort_key(), v.file, v.line))


def check_graph(graph: ProjectGraph) -> List[Violation]:
    """Return every convention violation in the graph, sorted."""
    return ConventionChecker().check(graph)
