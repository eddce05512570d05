"""
Project data model.

Modules are identified by their normalized POSIX path relative to the scanned
root ("." for the root itself). All records are frozen; the scanner builds
them once and nothing downstream mutates them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from tflayer.parser.expressions import Reference
from tflayer.parser.parser import ParseDiagnostic

REMOTE_STATE_TYPE = "terraform_remote_state"


@dataclass(frozen=True)
class ModuleCall:
    """A ``module "<name>" { source = ... }`` block."""
    name: str
    source: str
    target: Optional[str] = None  # project-relative path for local sources
    file: str = ""
    line: int = 0

    @property
    def is_local(self) -> bool:
        return self.target is not None


@dataclass(frozen=True)
class RemoteState:
    """A ``data "terraform_remote_state" "<name>"`` block."""
    name: str
    backend: str
    config: Tuple[Tuple[str, str], ...] = ()
    producer: Optional[str] = None
    file: str = ""
    line: int = 0

    @property
    def settings(self) -> Dict[str, str]:
        return dict(self.config)

    @property
    def state_key(self) -> Optional[str]:
        settings = self.settings
        return settings.get("key") or settings.get("prefix")


@dataclass(frozen=True)
class BackendConfig:
    """A module's own ``terraform { backend "<type>" { ... } }`` declaration."""
    type: str
    settings: Tuple[Tuple[str, str], ...] = ()

    @property
    def state_key(self) -> Optional[str]:
        settings = dict(self.settings)
        return settings.get("key") or settings.get("prefix")


@dataclass(frozen=True)
class Module:
    """A directory of .tf files, identified by its project-relative path."""
    path: str
    outputs: Tuple[str, ...] = ()
    variables: Tuple[str, ...] = ()
    module_calls: Tuple[ModuleCall, ...] = ()
    remote_states: Tuple[RemoteState, ...] = ()
    backend: Optional[BackendConfig] = None
    output_refs: Tuple[Tuple[str, Tuple[Reference, ...]], ...] = ()
    references: Tuple[Reference, ...] = ()
    files: Tuple[str, ...] = ()

    is_interface = False

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def role(self) -> str:
        return "interface" if self.is_interface else "module"

    def declares_output(self, name: str) -> bool:
        return name in self.outputs

    def refs_for_output(self, name: str) -> Tuple[Reference, ...]:
        return dict(self.output_refs).get(name, ())

    def remote_state(self, name: str) -> Optional[RemoteState]:
        for rs in self.remote_states:
            if rs.name == name:
                return rs
        return None

    def module_call(self, name: str) -> Optional[ModuleCall]:
        for call in self.module_calls:
            if call.name == name:
                return call
        return None

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "role": self.role,
            "outputs": list(self.outputs),
            "variables": list(self.variables),
            "module_calls": [
                {"name": c.name, "source": c.source, "target": c.target} for c in self.module_calls
            ],
            "remote_states": [
                {"name": r.name, "backend": r.backend, "config": r.settings, "producer": r.producer}
                for r in self.remote_states
            ],
            "files": list(self.files),
        }


@dataclass(frozen=True)
class InterfaceModule(Module):
    """
    A module whose only job is re-exporting one producer's remote state.

    ``producer`` is the resolved producer path, or None when no remote state
    in the module could be matched to a scanned module.
    """
    producer: Optional[str] = None

    is_interface = True

    @property
    def exposed_outputs(self) -> Tuple[str, ...]:
        return self.outputs

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data["producer"] = self.producer
        return data


class EdgeKind(Enum):
    """Relationship kinds between modules."""
    CONSUMES = "consumes"           # consumer -> interface module
    READS_STATE = "reads_state"     # interface module -> producer
    DIRECT_STATE = "direct_state"   # non-interface module -> producer (breach)
    CALLS = "calls"                 # module -> plain local child module


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    kind: EdgeKind

    def __str__(self):
        return f"{self.source} --{self.kind.value}--> {self.target}"


@dataclass
class ScanWarning:
    """
    A malformed file skipped during the scan.

    Located at the first syntax error; ``diagnostics`` holds every error the
    recovering parser found in the file, the first one included.
    """
    file: str
    line: int
    column: int
    message: str
    diagnostics: List[ParseDiagnostic] = field(default_factory=list)

    def __str__(self):
        text = f"{self.file}:{self.line}:{self.column}: {self.message}"
        more = self.diagnostics[1:]
        if more:
            text += " (also: " + "; ".join(f"{d.line}:{d.column}: {d.message}" for d in more) + ")"
        return text

    def to_dict(self) -> Dict:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


@dataclass
class ProjectScan:
    """Result of scanning a project tree."""
    root: str
    modules: Dict[str, Module] = field(default_factory=dict)
    warnings: List[ScanWarning] = field(default_factory=list)
