"""
Interface Module Generator

Scaffolds an interface module for a producer: one terraform_remote_state
data source plus one passthrough output per requested name, and a consumer
example showing the matching `module` and `locals` blocks.

Output is a pure function of the producer module, the requested names and
the configuration, so generating twice gives byte-identical text.
"""

import logging
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from tflayer.config import TflayerConfig, load_config
from tflayer.project.models import REMOTE_STATE_TYPE, Module
from tflayer.project.scanner import resolve_relative

logger = logging.getLogger(__name__)

INDENT = "  "

_NON_IDENT = re.compile(r"[^A-Za-z0-9_]")


class UnknownOutputError(Exception):
    """Requested outputs are not declared by the producer."""
    def __init__(self, module: str, names: List[str], declared: Iterable[str] = ()):
        self.module = module
        self.names = names
        self.declared = list(declared)
        available = ", ".join(self.declared) or "none"
        super().__init__(
            f"{module} does not declare output(s): {', '.join(names)} (declared: {available})"
        )


class InterfaceExistsError(Exception):
    """The interface file already exists and overwriting was not forced."""
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"{path} already exists (use --force to overwrite)")


@dataclass(frozen=True)
class GeneratedInterface:
    """Generated interface module text for one producer."""
    producer: str
    interface_path: str
    data_source: str
    outputs: tuple
    main_tf: str
    example: str

    def render(self) -> str:
        """Interface text followed by the consumer example, commented out."""
        commented = "\n".join(f"# {line}" if line else "#" for line in self.example.splitlines())
        return f"{self.main_tf}\n# Consumer example:\n#\n{commented}\n"


# ============================================================================
# NAMING
# ============================================================================

def _path_parts(module_path: str) -> List[str]:
    parts = [p for p in module_path.split("/") if p and p != "."]
    return parts or ["root"]


def data_source_name(module_path: str) -> str:
    """k8s/control-plane -> k8s_control_plane"""
    name = _NON_IDENT.sub("_", "_".join(_path_parts(module_path)))
    if name[0].isdigit():
        name = f"_{name}"
    return name


def interface_path_for(module_path: str, config: TflayerConfig) -> str:
    """Project-relative directory where the producer's interface module belongs."""
    if config.interface_layout == "nested":
        return resolve_relative(module_path, config.interface_subdir_name)

    parent = posixpath.dirname(module_path) if module_path != "." else ""
    interfaces_dir = config.interfaces_dir_names[0] if config.interfaces_dir_names else "interfaces"
    name = "-".join(_path_parts(module_path))
    return resolve_relative(parent or ".", f"{interfaces_dir}/{name}")


def relative_source(from_dir: str, to_dir: str) -> str:
    """Module source pointing from one project directory to another."""
    rel = posixpath.relpath(to_dir, from_dir)
    return rel if rel.startswith("..") else f"./{rel}"


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "$${").replace("%{", "%%{")
    return f'"{escaped}"'


# ============================================================================
# RENDERING
# ============================================================================

def _backend_lines(producer: Module, interface_path: str, config: TflayerConfig) -> List[str]:
    backend = producer.backend
    if backend is not None:
        settings = dict(backend.settings)
        if backend.type == "local" and "path" in settings:
            state = resolve_relative(producer.path, settings["path"])
            settings["path"] = posixpath.relpath(state, interface_path)
        backend_type = backend.type
    else:
        state = resolve_relative(producer.path, config.state_filename)
        settings = {"path": posixpath.relpath(state, interface_path)}
        backend_type = "local"

    lines = [f"{INDENT}backend = {_quote(backend_type)}"]
    if settings:
        width = max(len(k) for k in settings)
        lines.append("")
        lines.append(f"{INDENT}config = {{")
        for key in sorted(settings):
            lines.append(f"{INDENT * 2}{key.ljust(width)} = {_quote(settings[key])}")
        lines.append(f"{INDENT}}}")
    return lines


def render_main_tf(producer: Module, interface_path: str, data_source: str,
                   outputs: List[str], config: TflayerConfig) -> str:
    lines = [
        f"# Interface module for {producer.path}.",
        "# Re-exports a stable set of the producer's outputs from its remote state.",
        "",
        f'data "{REMOTE_STATE_TYPE}" "{data_source}" {{',
        *_backend_lines(producer, interface_path, config),
        "}",
    ]
    for name in outputs:
        lines.extend([
            "",
            f'output "{name}" {{',
            f"{INDENT}value = data.{REMOTE_STATE_TYPE}.{data_source}.outputs.{name}",
            "}",
        ])
    return "\n".join(lines) + "\n"


def render_example(producer: Module, interface_path: str, call_name: str, outputs: List[str]) -> str:
    """Consumer-side snippet, written for a module next to the producer."""
    sibling = resolve_relative(producer.path, "../consumer") if producer.path != "." else "consumer"
    lines = [
        f'module "{call_name}" {{',
        f"{INDENT}source = {_quote(relative_source(sibling, interface_path))}",
        "}",
        "",
        "locals {",
    ]
    width = max((len(n) for n in outputs), default=0)
    for name in outputs:
        lines.append(f"{INDENT}{name.ljust(width)} = module.{call_name}.{name}")
    lines.append("}")
    return "\n".join(lines) + "\n"


# ============================================================================
# ENTRY POINTS
# ============================================================================

def generate_interface(producer: Module, outputs: Optional[Iterable[str]] = None,
                       config: Optional[TflayerConfig] = None) -> GeneratedInterface:
    """
    Generate the interface module for a producer.

    Args:
        producer: Scanned producer module
        outputs: Output names to expose (default: every declared output)
        config: Configuration (defaults if omitted)

    Raises:
        UnknownOutputError: any requested name is not declared by the producer
    """
    config = config or load_config()

    if outputs is None:
        requested = sorted(set(producer.outputs))
    else:
        requested = sorted({name.strip() for name in outputs if name.strip()})

    unknown = [name for name in requested if not producer.declares_output(name)]
    if unknown:
        raise UnknownOutputError(producer.path, unknown, producer.outputs)

    if not requested:
        logger.warning(f"{producer.path} declares no outputs; the interface will expose nothing")
    if producer.is_interface:
        logger.warning(f"{producer.path} is itself an interface module")

    interface_path = interface_path_for(producer.path, config)
    data_source = data_source_name(producer.path)

    return GeneratedInterface(
        producer=producer.path,
        interface_path=interface_path,
        data_source=data_source,
        outputs=tuple(requested),
        main_tf=render_main_tf(producer, interface_path, data_source, requested, config),
        example=render_example(producer, interface_path, data_source, requested),
    )


def write_interface(generated: GeneratedInterface, root, force: bool = False) -> Path:
    """
    Write main.tf into the interface directory under root.

    Raises:
        InterfaceExistsError: main.tf exists and force is False
    """
    target_dir = Path(root) / generated.interface_path
    target = target_dir / "main.tf"
    if target.exists() and not force:
        raise InterfaceExistsError(target)

    target_dir.mkdir(parents=True, exist_ok=True)
    with open(target, 'w', encoding='utf-8', newline='\n') as f:
        f.write(generated.render())

    logger.info(f"Wrote {target}")
    return target
