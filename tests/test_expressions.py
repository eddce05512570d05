"""
Tests for reference extraction.
"""

import pytest

from tflayer.parser import parse_source
from tflayer.parser.expressions import extract_references, template_segments


def refs_of(expr: str):
    ast = parse_source(f"x = {expr}\n", "main.tf")
    return [r.text for r in extract_references(ast.children[0].value.tokens, "main.tf")]


class TestTraversals:
    """Test plain traversal references."""

    def test_module_output(self):
        """module.<name>.<attr>"""
        assert refs_of("module.k8s_control_plane.cluster_id") == ["module.k8s_control_plane.cluster_id"]

    def test_remote_state_output(self):
        """data.terraform_remote_state.<n>.outputs.<y>"""
        assert refs_of("data.terraform_remote_state.cp.outputs.cluster_id") == [
            "data.terraform_remote_state.cp.outputs.cluster_id"
        ]

    def test_index_steps_dropped(self):
        """[0] and [k] do not appear in the parts."""
        assert refs_of("module.pool[0].ids[k]") == ["module.pool.ids"]

    def test_string_index_is_a_step(self):
        """["name"] reads the same as .name."""
        assert refs_of('data.terraform_remote_state.cp.outputs["cluster_id"]') == [
            "data.terraform_remote_state.cp.outputs.cluster_id"
        ]
        assert refs_of('module.pool[0]["ids"]') == ["module.pool.ids"]

    def test_template_index_not_a_step(self):
        """An interpolated index key is dropped, not kept as a part."""
        assert refs_of('module.pool["${var.k}"].id') == ["module.pool.id"]

    def test_splat_dropped(self):
        """[*] and .* are dropped."""
        assert refs_of("module.pool[*].id") == ["module.pool.id"]
        assert refs_of("aws_instance.web.*.id") == ["aws_instance.web.id"]

    def test_keywords_are_not_references(self):
        """true/false/null are literals."""
        assert refs_of("true") == []
        assert refs_of("null") == []

    def test_function_calls_skipped(self):
        """Function names are not references; their arguments are."""
        assert refs_of("concat(var.a, local.b)") == ["var.a", "local.b"]

    def test_conditional(self):
        """References on both branches of a conditional."""
        assert refs_of("var.enabled ? module.a.id : null") == ["var.enabled", "module.a.id"]

    def test_for_expression(self):
        """for/in keywords are skipped."""
        refs = refs_of("[for s in var.subnets : s.id]")
        assert "var.subnets" in refs
        assert "for" not in refs

    def test_bare_object_keys(self):
        """A bare object key reads as a one-part reference; steps after a dot do not."""
        assert refs_of("{ id = module.a.id }") == ["id", "module.a.id"]


class TestTemplates:
    """Test references inside string templates."""

    def test_interpolation(self):
        """Interpolation sequences are re-lexed."""
        assert refs_of('"https://${module.cp.cluster_host}:443"') == ["module.cp.cluster_host"]

    def test_directive(self):
        """%{ if ... } directives."""
        assert refs_of('"%{ if var.on }yes%{ endif }"') == ["var.on"]

    def test_escaped_template_ignored(self):
        """$${...} is literal text."""
        assert refs_of('"$${module.fake.out}"') == []

    def test_template_segments(self):
        """Segments are yielded in order, ~ markers stripped."""
        assert list(template_segments("a ${x} b ${~ y ~} c")) == ["x", "y"]

    def test_reference_position(self):
        """References in templates carry the string token's position."""
        ast = parse_source('x = "${var.a}"\n', "vars.tf")
        ref = extract_references(ast.children[0].value.tokens, "vars.tf")[0]
        assert (ref.file, ref.line, ref.column) == ("vars.tf", 1, 5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
