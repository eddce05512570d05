"""
Tests for the project scanner.
"""

import logging
import os

import pytest

from tflayer.config import load_config
from tflayer.project import InterfaceModule, ScanError, scan_module, scan_project
from tflayer.project.scanner import (
    normalize_relpath,
    resolve_relative,
    strip_state_suffix,
)


class TestPathHelpers:
    """Test path normalization."""

    def test_normalize(self):
        """Backslashes, ./ and trailing slashes are normalized."""
        assert normalize_relpath("k8s\\node-pools/") == "k8s/node-pools"
        assert normalize_relpath("./") == "."
        assert normalize_relpath("") == "."

    def test_resolve_relative(self):
        """Sources resolve against the calling module."""
        assert resolve_relative("k8s/node-pools", "../interfaces/cp") == "k8s/interfaces/cp"
        assert resolve_relative(".", "./network") == "network"

    @pytest.mark.parametrize("key,expected", [
        ("k8s/control-plane/terraform.tfstate", "k8s/control-plane"),
        ("k8s/control-plane.tfstate", "k8s/control-plane"),
        ("k8s/control-plane/default.tfstate", "k8s/control-plane"),
        ("/k8s/control-plane/", "k8s/control-plane"),
    ])
    def test_strip_state_suffix(self, key, expected):
        """State file suffixes are removed from keys."""
        assert strip_state_suffix(key) == expected


class TestK8sScan:
    """Scan the k8s scenario tree."""

    def test_modules_found(self, k8s_tree):
        """One module per directory, sorted by path."""
        scan = scan_project(k8s_tree)
        assert list(scan.modules) == [
            "k8s/control-plane",
            "k8s/interfaces/k8s-control-plane",
            "k8s/node-pools",
        ]
        assert scan.warnings == []

    def test_outputs_and_variables(self, k8s_tree):
        """Outputs keep declaration order."""
        cp = scan_project(k8s_tree).modules["k8s/control-plane"]
        assert cp.outputs == ("cluster_id", "cluster_host")
        assert cp.variables == ("cluster_name",)
        assert cp.backend.type == "local"
        assert dict(cp.backend.settings) == {"path": "terraform.tfstate"}

    def test_interface_detected(self, k8s_tree):
        """A child of interfaces/ is an InterfaceModule with its producer resolved."""
        iface = scan_project(k8s_tree).modules["k8s/interfaces/k8s-control-plane"]
        assert isinstance(iface, InterfaceModule)
        assert iface.producer == "k8s/control-plane"
        rs = iface.remote_state("k8s_control_plane")
        assert rs.backend == "local"
        assert rs.settings == {"path": "../../control-plane/terraform.tfstate"}

    def test_module_call_resolved(self, k8s_tree):
        """Local module sources are resolved to project paths."""
        pools = scan_project(k8s_tree).modules["k8s/node-pools"]
        call = pools.module_call("k8s_control_plane")
        assert call.source == "../interfaces/k8s-control-plane"
        assert call.target == "k8s/interfaces/k8s-control-plane"
        assert not pools.is_interface

    def test_references_collected(self, k8s_tree):
        """References from every attribute of every block."""
        pools = scan_project(k8s_tree).modules["k8s/node-pools"]
        texts = {r.text for r in pools.references}
        assert "module.k8s_control_plane.cluster_id" in texts
        assert "local.cluster_host" in texts

    def test_output_refs(self, k8s_tree):
        """Per-output references are kept."""
        iface = scan_project(k8s_tree).modules["k8s/interfaces/k8s-control-plane"]
        refs = iface.refs_for_output("cluster_host")
        assert [r.text for r in refs] == ["data.terraform_remote_state.k8s_control_plane.outputs.cluster_host"]

    def test_parallel_matches_serial(self, k8s_tree):
        """Worker count does not change the result."""
        serial = scan_project(k8s_tree, load_config(workers=1))
        parallel = scan_project(k8s_tree, load_config(workers=4))
        assert serial.modules == parallel.modules


class TestDiscovery:
    """Test which files become modules."""

    def test_excluded_and_hidden_dirs(self, make_tree):
        """.terraform, hidden and excluded directories are skipped."""
        root = make_tree({
            "app/main.tf": 'output "a" { value = 1 }',
            "app/.terraform/modules/x/main.tf": 'output "b" { value = 1 }',
            ".hidden/main.tf": 'output "c" { value = 1 }',
            "vendor/main.tf": 'output "d" { value = 1 }',
        })
        scan = scan_project(root, load_config(exclude_dirs=["vendor", ".terraform"]))
        assert list(scan.modules) == ["app"]

    def test_root_module(self, make_tree):
        """.tf files at the root form the "." module."""
        root = make_tree({"main.tf": 'output "a" { value = 1 }'})
        assert list(scan_project(root).modules) == ["."]

    def test_files_merged(self, make_tree):
        """All .tf files of a directory form one module."""
        root = make_tree({
            "net/outputs.tf": 'output "vpc_id" { value = 1 }',
            "net/variables.tf": 'variable "cidr" {}',
            "net/README.md": "not terraform",
        })
        module = scan_project(root).modules["net"]
        assert module.files == ("net/outputs.tf", "net/variables.tf")
        assert module.outputs == ("vpc_id",)
        assert module.variables == ("cidr",)

    def test_registry_source_is_external(self, make_tree):
        """Registry and git sources have no target."""
        root = make_tree({
            "app/main.tf": '''
                module "vpc" {
                  source  = "terraform-aws-modules/vpc/aws"
                  version = "5.0.0"
                }
            ''',
        })
        call = scan_project(root).modules["app"].module_call("vpc")
        assert call.target is None
        assert not call.is_local

    def test_co_located_interface(self, make_tree):
        """<producer>/interface is an interface module."""
        root = make_tree({
            "db/main.tf": 'output "dsn" { value = 1 }',
            "db/interface/main.tf": '''
                data "terraform_remote_state" "db" {
                  backend = "local"
                  config = {
                    path = "../terraform.tfstate"
                  }
                }
            ''',
        })
        iface = scan_project(root).modules["db/interface"]
        assert iface.is_interface
        assert iface.producer == "db"


class TestProducerResolution:
    """Test matching remote states to producer modules."""

    def test_backend_key_match(self, make_tree):
        """A remote state key equal to a module's backend key."""
        root = make_tree({
            "network/main.tf": '''
                terraform {
                  backend "s3" {
                    bucket = "tf-state"
                    key    = "prod/network.tfstate"
                  }
                }
            ''',
            "interfaces/network/main.tf": '''
                data "terraform_remote_state" "net" {
                  backend = "s3"
                  config = {
                    bucket = "tf-state"
                    key    = "prod/network.tfstate"
                  }
                }
            ''',
        })
        assert scan_project(root).modules["interfaces/network"].producer == "network"

    def test_key_as_path(self, make_tree):
        """A key naming a scanned module path resolves after stripping the suffix."""
        root = make_tree({
            "network/main.tf": 'output "vpc_id" { value = 1 }',
            "interfaces/network/main.tf": '''
                data "terraform_remote_state" "net" {
                  backend = "gcs"
                  config = {
                    bucket = "tf-state"
                    prefix = "network"
                  }
                }
            ''',
        })
        assert scan_project(root).modules["interfaces/network"].producer == "network"

    def test_legacy_config_block(self, make_tree):
        """config { ... } block form is read like the attribute form."""
        root = make_tree({
            "network/main.tf": 'output "vpc_id" { value = 1 }',
            "interfaces/network/main.tf": '''
                data "terraform_remote_state" "net" {
                  backend = "local"
                  config {
                    path = "../../network/terraform.tfstate"
                  }
                }
            ''',
        })
        assert scan_project(root).modules["interfaces/network"].producer == "network"

    def test_unresolved_logged(self, make_tree, caplog):
        """An unknown producer stays None and is logged at warning level."""
        root = make_tree({
            "interfaces/ghost/main.tf": '''
                data "terraform_remote_state" "ghost" {
                  backend = "s3"
                  config = {
                    key = "nowhere/terraform.tfstate"
                  }
                }
            ''',
        })
        with caplog.at_level(logging.WARNING):
            scan = scan_project(root)
        assert scan.modules["interfaces/ghost"].producer is None
        assert "cannot resolve producer" in caplog.text


class TestScanErrors:
    """Test fatal and non-fatal failures."""

    def test_missing_root(self, tmp_path):
        """A missing root is fatal."""
        with pytest.raises(ScanError):
            scan_project(tmp_path / "missing")

    def test_root_is_file(self, tmp_path):
        """A file as root is fatal."""
        path = tmp_path / "main.tf"
        path.write_text("")
        with pytest.raises(ScanError):
            scan_project(path)

    @pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="needs POSIX permissions")
    def test_unreadable_file(self, make_tree):
        """An unreadable .tf file is fatal."""
        root = make_tree({"app/main.tf": 'output "a" { value = 1 }'})
        (root / "app" / "main.tf").chmod(0)
        try:
            with pytest.raises(ScanError):
                scan_project(root)
        finally:
            (root / "app" / "main.tf").chmod(0o644)

    def test_malformed_file_skipped(self, make_tree, caplog):
        """A malformed file becomes a warning; the rest of the module survives."""
        root = make_tree({
            "app/good.tf": 'output "a" { value = 1 }',
            "app/bad.tf": 'resource "x" "y" {\n  a = "unterminated\n}\n',
        })
        with caplog.at_level(logging.WARNING):
            scan = scan_project(root)
        assert scan.modules["app"].outputs == ("a",)
        assert len(scan.warnings) == 1
        assert scan.warnings[0].file == "app/bad.tf"
        assert scan.warnings[0].line == 2
        assert "Skipping malformed file" in caplog.text

    def test_malformed_file_lists_every_error(self, make_tree):
        """One warning per file, carrying each syntax error in order."""
        root = make_tree({
            "app/good.tf": 'output "a" { value = 1 }',
            "app/bad.tf": "a =\nb = 1\nc =\n",
        })
        scan = scan_project(root)
        assert len(scan.warnings) == 1
        warning = scan.warnings[0]
        assert warning.line == 1
        assert [d.line for d in warning.diagnostics] == [1, 3]
        assert str(warning).startswith("app/bad.tf:1:")
        assert "(also: 3:" in str(warning)
        assert scan.modules["app"].outputs == ("a",)

    def test_read_failure_is_fatal(self, make_tree, monkeypatch):
        """An OSError while reading a .tf file becomes ScanError."""
        import tflayer.project.scanner as scanner

        root = make_tree({"app/main.tf": 'output "a" { value = 1 }'})

        def deny(path):
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(scanner, "read_source", deny)
        with pytest.raises(ScanError) as exc:
            scan_project(root)
        assert exc.value.path == "app/main.tf"
        assert "Permission denied" in str(exc.value)


class TestScanModule:
    """Test single-module scanning."""

    def test_scan_module(self, k8s_tree):
        """Module path is relative to the given root."""
        module = scan_module("k8s/control-plane", root=k8s_tree)
        assert module.path == "k8s/control-plane"
        assert module.outputs == ("cluster_id", "cluster_host")

    def test_scan_module_no_tf(self, k8s_tree):
        """A directory without .tf files is an error."""
        with pytest.raises(ScanError):
            scan_module("k8s", root=k8s_tree)

    def test_scan_module_outside_root(self, k8s_tree, tmp_path_factory):
        """Modules must live under the root."""
        other = tmp_path_factory.mktemp("other")
        (other / "main.tf").write_text('output "a" { value = 1 }')
        with pytest.raises(ScanError):
            scan_module(other, root=k8s_tree)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
