"""
Project Scanner

Walks a Terraform project tree and builds one Module record per directory
that contains .tf files. Files are parsed independently (optionally in a
thread pool) and merged in sorted path order, so the result does not depend
on the worker count.
"""

import logging
import os
import posixpath
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from tflayer.config import TflayerConfig, load_config
from tflayer.parser import (
    BlockNode,
    RootNode,
    extract_references,
    parse_source_recovering,
)
from tflayer.parser.lexer import read_source
from tflayer.project.models import (
    REMOTE_STATE_TYPE,
    BackendConfig,
    InterfaceModule,
    Module,
    ModuleCall,
    ProjectScan,
    RemoteState,
    ScanWarning,
)

logger = logging.getLogger(__name__)

STATE_SUFFIXES = ("/default.tfstate", "/terraform.tfstate", ".tfstate")


class ScanError(Exception):
    """A path could not be read; the scan cannot continue."""
    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(message)


@dataclass
class FileParse:
    """Outcome of parsing one .tf file."""
    relpath: str
    ast: Optional[RootNode] = None
    warning: Optional[ScanWarning] = None


# ============================================================================
# PATH HELPERS
# ============================================================================

def normalize_relpath(path: str) -> str:
    """Normalize a project-relative path to POSIX form ("." for the root)."""
    norm = posixpath.normpath(path.replace("\\", "/"))
    return "." if norm in ("", ".") else norm


def module_dir_of(relpath: str) -> str:
    return normalize_relpath(posixpath.dirname(relpath) or ".")


def is_local_source(source: str) -> bool:
    return source.startswith("./") or source.startswith("../")


def resolve_relative(module_path: str, relative: str) -> str:
    """Resolve a path written inside module_path against the project root."""
    base = "" if module_path == "." else module_path
    return normalize_relpath(posixpath.join(base, relative))


def strip_state_suffix(key: str) -> str:
    key = key.strip("/")
    for suffix in STATE_SUFFIXES:
        if key.endswith(suffix):
            return key[: -len(suffix)]
    return key


# ============================================================================
# DISCOVERY & PARSING
# ============================================================================

def discover_tf_files(root: Path, config: TflayerConfig) -> List[Path]:
    """Find all .tf files under root, skipping excluded and hidden directories."""
    excluded = set(config.exclude_dirs)
    found: List[Path] = []

    def on_error(err: OSError):
        raise ScanError(f"Cannot read directory {err.filename}: {err.strerror}", str(err.filename))

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded and not d.startswith("."))
        for filename in sorted(filenames):
            if filename.endswith(".tf"):
                found.append(Path(dirpath) / filename)

    return sorted(found)


def parse_tf_file(path: Path, root: Path) -> FileParse:
    """
    Parse one file. Malformed content becomes a warning carrying every syntax
    error in the file; an unreadable file raises ScanError.
    """
    relpath = normalize_relpath(path.relative_to(root).as_posix())
    try:
        source = read_source(str(path))
    except OSError as e:
        raise ScanError(f"Cannot read {relpath}: {e.strerror or e}", relpath) from e

    result = parse_source_recovering(source, relpath)
    if not result.success:
        first = result.errors[0]
        warning = ScanWarning(relpath, first.line, first.column, first.message, result.errors)
        return FileParse(relpath, warning=warning)

    return FileParse(relpath, ast=result.ast)


def parse_files(paths: List[Path], root: Path, workers: int = 1) -> List[FileParse]:
    """Parse files, in parallel when workers > 1. Results are sorted by path."""
    if workers > 1 and len(paths) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda p: parse_tf_file(p, root), paths))
    else:
        results = [parse_tf_file(p, root) for p in paths]
    return sorted(results, key=lambda r: r.relpath)


# ============================================================================
# EXTRACTION
# ============================================================================

def _literal_settings(block: BlockNode) -> Tuple[Tuple[str, str], ...]:
    """String/number/bool attributes of a block, sorted by key."""
    settings = {}
    for key, attr in block.attributes.items():
        value = attr.value.as_string()
        if value is None and len(attr.value.tokens) == 1:
            value = attr.value.tokens[0].value
        if value is not None:
            settings[key] = value
    return tuple(sorted(settings.items()))


def _remote_state_from_block(block: BlockNode, relpath: str) -> RemoteState:
    backend_expr = block.get_attribute("backend")
    backend = (backend_expr.as_string() if backend_expr else None) or "local"

    settings: Dict[str, str] = {}
    config_expr = block.get_attribute("config")
    if config_expr is not None:
        settings.update(config_expr.object_items())
    for config_block in block.get_blocks("config"):
        settings.update(dict(_literal_settings(config_block)))

    return RemoteState(
        name=block.labels[1],
        backend=backend,
        config=tuple(sorted(settings.items())),
        file=relpath,
        line=block.line,
    )


def build_module(module_path: str, parsed: List[FileParse], config: TflayerConfig) -> Module:
    """Build a Module (or InterfaceModule) from the parsed files of one directory."""
    outputs: List[str] = []
    output_refs: Dict[str, tuple] = {}
    variables: List[str] = []
    calls: List[ModuleCall] = []
    remote_states: List[RemoteState] = []
    backend: Optional[BackendConfig] = None
    references = []

    for fp in parsed:
        for node in fp.ast.children:
            if not isinstance(node, BlockNode):
                references.extend(extract_references(node.value.tokens, fp.relpath))
                continue

            for attr in node.iter_attributes():
                references.extend(extract_references(attr.value.tokens, fp.relpath))

            if node.type == "output" and node.labels:
                name = node.labels[0]
                if name not in outputs:
                    outputs.append(name)
                value = node.get_attribute("value")
                refs = extract_references(value.tokens, fp.relpath) if value else []
                output_refs[name] = tuple(refs)

            elif node.type == "variable" and node.labels:
                if node.labels[0] not in variables:
                    variables.append(node.labels[0])

            elif node.type == "module" and node.labels:
                source_expr = node.get_attribute("source")
                source = source_expr.as_string() if source_expr else None
                if source is None:
                    logger.warning(f"{fp.relpath}:{node.line}: module '{node.labels[0]}' has no literal source")
                    continue
                target = resolve_relative(module_path, source) if is_local_source(source) else None
                calls.append(ModuleCall(node.labels[0], source, target, fp.relpath, node.line))

            elif node.type == "data" and len(node.labels) >= 2 and node.labels[0] == REMOTE_STATE_TYPE:
                remote_states.append(_remote_state_from_block(node, fp.relpath))

            elif node.type == "terraform":
                for backend_block in node.get_blocks("backend"):
                    if backend_block.labels:
                        backend = BackendConfig(backend_block.labels[0], _literal_settings(backend_block))

    fields = dict(
        path=module_path,
        outputs=tuple(outputs),
        variables=tuple(variables),
        module_calls=tuple(calls),
        remote_states=tuple(remote_states),
        backend=backend,
        output_refs=tuple(output_refs.items()),
        references=tuple(references),
        files=tuple(fp.relpath for fp in parsed),
    )
    if config.is_interface_path(module_path):
        return InterfaceModule(**fields)
    return Module(**fields)


# ============================================================================
# PRODUCER RESOLUTION
# ============================================================================

def resolve_producer(module: Module, rs: RemoteState, modules: Dict[str, Module]) -> Optional[str]:
    """Match a remote-state data source to the scanned module that owns the state."""
    key = rs.state_key

    if key:
        for path, candidate in modules.items():
            if candidate.backend is not None and candidate.backend.state_key == key and path != module.path:
                return path

    if rs.backend == "local":
        state_path = rs.settings.get("path")
        if state_path:
            target = resolve_relative(module.path, state_path)
            for path, candidate in modules.items():
                own = candidate.backend
                if own is not None and own.type == "local" and path != module.path:
                    own_path = dict(own.settings).get("path")
                    if own_path and resolve_relative(path, own_path) == target:
                        return path
            producer = module_dir_of(target)
            if producer in modules:
                return producer

    if key:
        producer = normalize_relpath(strip_state_suffix(key))
        if producer in modules:
            return producer

    return None


def resolve_producers(modules: Dict[str, Module]) -> Dict[str, Module]:
    """Return modules with every remote state's producer filled in where possible."""
    resolved: Dict[str, Module] = {}
    for path, module in modules.items():
        states = []
        for rs in module.remote_states:
            producer = resolve_producer(module, rs, modules)
            if producer is None:
                logger.warning(
                    f"{rs.file}:{rs.line}: cannot resolve producer for remote state '{rs.name}' in {path}"
                )
            states.append(replace(rs, producer=producer))

        updated = replace(module, remote_states=tuple(states))
        if isinstance(updated, InterfaceModule):
            producers = [rs.producer for rs in states if rs.producer]
            updated = replace(updated, producer=producers[0] if producers else None)
        resolved[path] = updated
    return resolved


# ============================================================================
# ENTRY POINTS
# ============================================================================

def _check_root(root: Path) -> Path:
    if not root.exists():
        raise ScanError(f"Path does not exist: {root}", str(root))
    if not root.is_dir():
        raise ScanError(f"Not a directory: {root}", str(root))
    if not os.access(root, os.R_OK | os.X_OK):
        raise ScanError(f"Cannot read directory: {root}", str(root))
    return root.resolve()


def _group_by_module(results: List[FileParse], warnings: List[ScanWarning]) -> Dict[str, List[FileParse]]:
    grouped: Dict[str, List[FileParse]] = {}
    for fp in results:
        if fp.warning is not None:
            logger.warning(f"Skipping malformed file {fp.warning}")
            warnings.append(fp.warning)
            continue
        grouped.setdefault(module_dir_of(fp.relpath), []).append(fp)
    return grouped


def scan_project(root, config: Optional[TflayerConfig] = None) -> ProjectScan:
    """
    Scan a project tree.

    Args:
        root: Project root directory
        config: Configuration (loaded from the root if omitted)

    Returns:
        ProjectScan with modules sorted by path and any malformed-file warnings

    Raises:
        ScanError: root or a file cannot be read
    """
    root = _check_root(Path(root))
    config = config or load_config(root=root)

    paths = discover_tf_files(root, config)
    logger.info(f"Found {len(paths)} .tf files under {root}")

    results = parse_files(paths, root, config.workers)
    warnings: List[ScanWarning] = []
    grouped = _group_by_module(results, warnings)

    modules = {path: build_module(path, grouped[path], config) for path in sorted(grouped)}
    modules = resolve_producers(modules)

    logger.info(f"Scanned {len(modules)} modules ({len(warnings)} malformed files skipped)")
    return ProjectScan(root=root.as_posix(), modules=modules, warnings=warnings)


def scan_module(module_dir, root=None, config: Optional[TflayerConfig] = None) -> Module:
    """
    Scan a single module directory (non-recursive).

    The module path is made relative to root (default: the current
    directory). Remote-state producers are left unresolved.
    """
    root = _check_root(Path(root) if root is not None else Path.cwd())
    module_dir = Path(module_dir)
    if not module_dir.is_absolute():
        module_dir = root / module_dir
    module_dir = _check_root(module_dir)
    config = config or load_config(root=root)

    try:
        module_path = normalize_relpath(module_dir.relative_to(root).as_posix())
    except ValueError:
        raise ScanError(f"{module_dir} is not inside {root}", str(module_dir))

    paths = sorted(p for p in module_dir.iterdir() if p.is_file() and p.name.endswith(".tf"))
    if not paths:
        raise ScanError(f"No .tf files in {module_path}", module_path)

    warnings: List[ScanWarning] = []
    grouped = _group_by_module(parse_files(paths, root, config.workers), warnings)
    if module_path not in grouped:
        raise ScanError(f"No parseable .tf files in {module_path}", module_path)

    return build_module(module_path, grouped[module_path], config)
