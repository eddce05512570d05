"""
tflayer Configuration

Loads configuration from a YAML file, then applies environment variable
overrides. Search order: explicit path, <root>/.tflayer.yaml,
~/.tflayer/config.yaml.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Any

import yaml

logger = logging.getLogger(__name__)


PROJECT_CONFIG_NAME = ".tflayer.yaml"
USER_CONFIG_PATH = Path.home() / ".tflayer" / "config.yaml"

INTERFACE_LAYOUTS = ("shared", "nested")

DEFAULT_CONFIG = {
    # Directory names whose direct children are interface modules
    # (k8s/interfaces/k8s-control-plane)
    "interfaces_dir_names": ["interfaces"],
    # Subdirectory name of a producer that holds its co-located interface
    # (k8s/control-plane/interface)
    "interface_subdir_name": "interface",
    # Where `generate` places new interface modules
    "interface_layout": "shared",
    "state_filename": "terraform.tfstate",
    "exclude_dirs": [".terraform", ".git", "node_modules", ".terragrunt-cache"],
    # Parallel file parsing; 1 means parse in the calling thread
    "workers": 1,
}

ENV_OVERRIDES = {
    "TFLAYER_WORKERS": "workers",
    "TFLAYER_INTERFACE_LAYOUT": "interface_layout",
    "TFLAYER_STATE_FILENAME": "state_filename",
}


class ConfigError(Exception):
    """Invalid or unreadable configuration."""


class TflayerConfig:
    """Configuration for scanning, checking and generating."""

    def __init__(self, config_path: Optional[Path] = None, root: Optional[Path] = None,
                 overrides: Optional[Dict[str, Any]] = None):
        self._config: Dict[str, Any] = {k: (list(v) if isinstance(v, list) else v)
                                        for k, v in DEFAULT_CONFIG.items()}
        self._config_path: Optional[Path] = None

        self._load_config(config_path, root)
        self._apply_env_overrides()
        if overrides:
            self._config.update(overrides)
        self._validate()

    def _load_config(self, explicit_path: Optional[Path], root: Optional[Path]) -> None:
        """Load configuration from the first YAML file found."""
        if explicit_path is not None:
            if not Path(explicit_path).is_file():
                raise ConfigError(f"Config file not found: {explicit_path}")
            search_paths = [Path(explicit_path)]
        else:
            search_paths = []
            if root is not None:
                search_paths.append(Path(root) / PROJECT_CONFIG_NAME)
            search_paths.append(USER_CONFIG_PATH)

        for config_path in search_paths:
            if not config_path.is_file():
                continue
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    user_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Failed to load config from {config_path}: {e}") from e
            if not isinstance(user_config, dict):
                raise ConfigError(f"Config file {config_path} must contain a mapping")
            unknown = sorted(set(user_config) - set(DEFAULT_CONFIG))
            if unknown:
                logger.warning(f"Ignoring unknown config keys in {config_path}: {', '.join(unknown)}")
            self._config.update({k: v for k, v in user_config.items() if k in DEFAULT_CONFIG})
            self._config_path = config_path
            logger.debug(f"Loaded config from {config_path}")
            return

    def _apply_env_overrides(self) -> None:
        for env_var, config_key in ENV_OVERRIDES.items():
            if env_var in os.environ:
                self._config[config_key] = os.environ[env_var]

    def _validate(self) -> None:
        try:
            workers = int(self._config["workers"])
        except (TypeError, ValueError):
            raise ConfigError(f"workers must be an integer, got {self._config['workers']!r}")
        if workers < 1:
            raise ConfigError(f"workers must be at least 1, got {workers}")
        self._config["workers"] = workers

        if self._config["interface_layout"] not in INTERFACE_LAYOUTS:
            raise ConfigError(
                f"interface_layout must be one of {', '.join(INTERFACE_LAYOUTS)}, "
                f"got {self._config['interface_layout']!r}"
            )

        for key in ("interfaces_dir_names", "exclude_dirs"):
            value = self._config[key]
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{key} must be a list of directory names")
            self._config[key] = value

        for key in ("interface_subdir_name", "state_filename"):
            if not isinstance(self._config[key], str) or not self._config[key]:
                raise ConfigError(f"{key} must be a non-empty string")

    @property
    def config_path(self) -> Optional[Path]:
        """Path to loaded config file, or None if using defaults."""
        return self._config_path

    @property
    def interfaces_dir_names(self) -> List[str]:
        return list(self._config["interfaces_dir_names"])

    @property
    def interface_subdir_name(self) -> str:
        return self._config["interface_subdir_name"]

    @property
    def interface_layout(self) -> str:
        return self._config["interface_layout"]

    @property
    def state_filename(self) -> str:
        return self._config["state_filename"]

    @property
    def exclude_dirs(self) -> List[str]:
        return list(self._config["exclude_dirs"])

    @property
    def workers(self) -> int:
        return self._config["workers"]

    def is_interface_path(self, module_path: str) -> bool:
        """True if a project-relative module path is an interface module location."""
        parts = [p for p in module_path.split("/") if p and p != "."]
        if len(parts) >= 2 and parts[-2] in self.interfaces_dir_names:
            return True
        return len(parts) >= 2 and parts[-1] == self.interface_subdir_name

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dict."""
        return {
            **{k: (list(v) if isinstance(v, list) else v) for k, v in self._config.items()},
            "config_file": str(self._config_path) if self._config_path else None,
        }


def load_config(config_path: Optional[Path] = None, root: Optional[Path] = None,
                **overrides) -> TflayerConfig:
    """Load configuration for a project root."""
    return TflayerConfig(config_path=config_path, root=root, overrides=overrides or None)


def write_default_config(path: Path) -> Path:
    """Write a commented default configuration file and return its path."""
    path.parent.mkdir(parents=True, exist_ok=True)

    config_content = """# tflayer configuration
#
# Any setting can also be overridden with TFLAYER_WORKERS,
# TFLAYER_INTERFACE_LAYOUT or TFLAYER_STATE_FILENAME.

# Directories whose children are interface modules (k8s/interfaces/<name>)
interfaces_dir_names:
  - interfaces

# Co-located interface subdirectory (k8s/control-plane/interface)
interface_subdir_name: interface

# Where `tflayer generate --write` places new interface modules: shared | nested
interface_layout: shared

# State file name used for local-backend interface modules
state_filename: terraform.tfstate

exclude_dirs:
  - .terraform
  - .git
  - node_modules
  - .terragrunt-cache

# Parallel file parsing
workers: 1
"""

    with open(path, 'w', encoding='utf-8') as f:
        f.write(config_content)

    return path
