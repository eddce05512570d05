"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path
from textwrap import dedent

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import tflayer.config
from tflayer.config import load_config


# =============================================================================
# ENVIRONMENT ISOLATION
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Keep the user's ~/.tflayer config and TFLAYER_* variables out of tests."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setattr(tflayer.config, "USER_CONFIG_PATH", home / ".tflayer" / "config.yaml")
    for var in tflayer.config.ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config():
    """Default configuration (no config file)."""
    return load_config()


# =============================================================================
# TREE BUILDERS
# =============================================================================

def write_tree(root: Path, files: dict) -> Path:
    """Write {relative path: content} under root. Content is dedented."""
    for relpath, content in files.items():
        path = root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dedent(content).lstrip("\n"), encoding="utf-8")
    return root


@pytest.fixture
def make_tree(tmp_path):
    """Build a Terraform tree under tmp_path from a {path: content} mapping."""
    def _make(files: dict, root: Path = None) -> Path:
        return write_tree(root or tmp_path, files)
    return _make


# =============================================================================
# K8S SCENARIO
# =============================================================================

K8S_CONTROL_PLANE = """
    terraform {
      backend "local" {
        path = "terraform.tfstate"
      }
    }

    variable "cluster_name" {
      type    = string
      default = "main"
    }

    resource "null_resource" "cluster" {
      triggers = {
        name = var.cluster_name
      }
    }

    output "cluster_id" {
      value = null_resource.cluster.id
    }

    output "cluster_host" {
      value = "https://${var.cluster_name}.example.internal"
    }
"""

K8S_INTERFACE = """
    data "terraform_remote_state" "k8s_control_plane" {
      backend = "local"

      config = {
        path = "../../control-plane/terraform.tfstate"
      }
    }

    output "cluster_id" {
      value = data.terraform_remote_state.k8s_control_plane.outputs.cluster_id
    }

    output "cluster_host" {
      value = data.terraform_remote_state.k8s_control_plane.outputs.cluster_host
    }
"""

K8S_NODE_POOLS = """
    module "k8s_control_plane" {
      source = "../interfaces/k8s-control-plane"
    }

    locals {
      cluster_id   = module.k8s_control_plane.cluster_id
      cluster_host = module.k8s_control_plane.cluster_host
    }

    resource "null_resource" "pool" {
      triggers = {
        cluster = local.cluster_id
        host    = local.cluster_host
      }
    }
"""

K8S_FILES = {
    "k8s/control-plane/main.tf": K8S_CONTROL_PLANE,
    "k8s/interfaces/k8s-control-plane/main.tf": K8S_INTERFACE,
    "k8s/node-pools/main.tf": K8S_NODE_POOLS,
}


@pytest.fixture
def k8s_tree(make_tree):
    """control-plane producer, its shared interface, and node-pools consuming it."""
    return make_tree(K8S_FILES)
