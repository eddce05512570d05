"""
Tests for the HCL parser.
"""

import pytest

from tflayer.parser import (
    AttributeNode,
    BlockNode,
    ParseError,
    parse_file,
    parse_source,
    parse_source_recovering,
)


class TestBlocks:
    """Test block parsing."""

    def test_labeled_block(self):
        """Block type and labels are captured."""
        ast = parse_source('resource "null_resource" "cluster" {\n}\n')
        block = ast.children[0]
        assert isinstance(block, BlockNode)
        assert block.type == "resource"
        assert block.labels == ["null_resource", "cluster"]

    def test_single_line_block(self):
        """output "x" { value = 1 } on one line."""
        ast = parse_source('output "x" { value = 1 }')
        block = ast.children[0]
        assert block.get_attribute("value").text == "1"

    def test_nested_blocks(self):
        """terraform { backend "s3" { ... } }"""
        src = '''
terraform {
  backend "s3" {
    bucket = "state"
    key    = "k8s/control-plane/terraform.tfstate"
  }
}
'''
        ast = parse_source(src)
        backend = ast.children[0].get_blocks("backend")[0]
        assert backend.labels == ["s3"]
        assert backend.get_attribute("key").as_string() == "k8s/control-plane/terraform.tfstate"

    def test_get_blocks_by_labels(self):
        """RootNode.get_blocks filters by type and leading labels."""
        src = '''
data "terraform_remote_state" "a" {}
data "aws_ami" "b" {}
'''
        ast = parse_source(src)
        assert len(ast.get_blocks("data")) == 2
        assert [b.labels[1] for b in ast.get_blocks("data", "terraform_remote_state")] == ["a"]

    def test_top_level_attribute(self):
        """Top-level attributes (e.g. in .tfvars-like files) are allowed."""
        ast = parse_source('region = "eu-west-1"\n')
        assert isinstance(ast.children[0], AttributeNode)

    def test_iter_attributes_recurses(self):
        """iter_attributes walks nested blocks."""
        src = '''
resource "x" "y" {
  a = 1
  lifecycle {
    ignore_changes = [tags]
  }
}
'''
        block = parse_source(src).children[0]
        assert [a.key for a in block.iter_attributes()] == ["a", "ignore_changes"]


class TestExpressions:
    """Test expression capture."""

    def test_multiline_object(self):
        """Newlines inside braces do not end the attribute."""
        src = '''
locals {
  tags = {
    env  = "prod"
    team = "infra"
  }
  other = 1
}
'''
        block = parse_source(src).children[0]
        assert set(block.attributes) == {"tags", "other"}
        assert block.get_attribute("tags").object_items() == {"env": "prod", "team": "infra"}

    def test_object_items_commas(self):
        """Comma-separated object items."""
        ast = parse_source('x = { path = "a/b.tfstate", workspace = "dev" }\n')
        assert ast.children[0].value.object_items() == {"path": "a/b.tfstate", "workspace": "dev"}

    def test_object_items_skip_nested(self):
        """Nested values are not returned as settings."""
        ast = parse_source('x = { a = "1", b = { c = "2" } }\n')
        assert ast.children[0].value.object_items() == {"a": "1"}

    def test_as_string_rejects_templates(self):
        """Templated strings are not literals."""
        ast = parse_source('a = "plain"\nb = "${var.x}"\nc = "$${escaped}"\n')
        values = [child.value.as_string() for child in ast.children]
        assert values == ["plain", None, "${escaped}"]

    def test_heredoc_value(self):
        """A heredoc is a single-token expression."""
        ast = parse_source('policy = <<EOF\n{"a": 1}\nEOF\nnext = 2\n')
        assert [c.key for c in ast.children] == ["policy", "next"]
        assert ast.children[0].value.as_string() == '{"a": 1}'

    def test_to_dict(self):
        """AST serializes to plain dicts."""
        data = parse_source('output "x" { value = 1 }').to_dict()
        assert data["_type"] == "root"
        assert data["children"][0]["labels"] == ["x"]


class TestParseErrors:
    """Test error reporting and recovery."""

    def test_missing_brace(self):
        """Unclosed block raises ParseError."""
        with pytest.raises(ParseError):
            parse_source('resource "x" "y" {\n  a = 1\n')

    def test_unbalanced_close(self):
        """A stray } raises ParseError with its position."""
        with pytest.raises(ParseError) as exc:
            parse_source("a = 1\n}\n")
        assert exc.value.line == 2

    def test_missing_value(self):
        """a = <newline> is an error."""
        with pytest.raises(ParseError):
            parse_source("a =\nb = 1\n")

    def test_recovering_collects_errors(self):
        """Recovering mode keeps parsing after a bad line."""
        result = parse_source_recovering('a =\nb = 1\n')
        assert not result.success
        assert len(result.errors) == 1
        assert [c.key for c in result.ast.children] == ["b"]

    def test_recovering_lexer_error(self):
        """Lexer errors surface as a single diagnostic with no AST."""
        result = parse_source_recovering('a = "unterminated\n')
        assert result.ast is None
        assert result.diagnostics[0].code == "LEXER_ERROR"


class TestParseFile:
    """Test parsing from disk."""

    def test_parse_file(self, tmp_path):
        """parse_file reads and parses a .tf file."""
        path = tmp_path / "main.tf"
        path.write_text('variable "region" {\n  default = "eu"\n}\n', encoding="utf-8")
        ast = parse_file(str(path))
        assert ast.get_blocks("variable")[0].labels == ["region"]

    def test_parse_file_with_bom(self, tmp_path):
        """A UTF-8 BOM is stripped."""
        path = tmp_path / "main.tf"
        path.write_bytes(b'\xef\xbb\xbfa = 1\n')
        ast = parse_file(str(path))
        assert ast.children[0].key == "a"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
