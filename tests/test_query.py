"""Tests for the read-only query layer."""

from __future__ import annotations

import pytest

from pyrewrite.errors import StructureError
from pyrewrite.tree.builder import parse_source
from pyrewrite.tree.nodes import Attribute, Call, Name, OpaqueExpression
from pyrewrite.tree.query import (
    attribute_chain,
    collect_bound_names,
    collect_used_names,
    find_assignments,
    find_function_calls,
    find_imports,
    find_nodes,
    find_try_except_blocks,
    iter_statements,
    node_kind,
)
from pyrewrite.tree.types import ImportInfo, NodeKind


@pytest.fixture
def sample_module(sample_source):
    return parse_source(sample_source)


# ---------------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------------
class TestFindImports:
    def test_one_record_per_name(self, sample_module):
        imports = find_imports(sample_module)
        assert [str(i) for i in imports] == [
            "import os",
            "import json",
            "import csv",
            "from a.b import c as d",
            "from a.b import e",
        ]

    def test_from_import_fields(self, sample_module):
        record = find_imports(sample_module)[3]
        assert record.is_from_import
        assert record.module == "c"
        assert record.alias == "d"
        assert record.from_module == "a.b"
        assert record.bound_name == "d"
        assert record.location.line == 3

    def test_filter_matches_source_module(self, sample_module):
        assert len(find_imports(sample_module, "a.b")) == 2
        assert [i.module for i in find_imports(sample_module, "json")] == ["json"]
        assert find_imports(sample_module, "requests") == []

    def test_relative_import_module_path(self):
        module = parse_source("from ..core import models\n")
        record = find_imports(module)[0]
        assert record.module_path == "..core"
        assert str(record) == "from ..core import models"

    def test_imports_inside_functions_are_found(self):
        module = parse_source("def f():\n    import json\n    return json\n")
        assert find_imports(module) == [
            ImportInfo(module="json", alias=None, is_from_import=False)
        ]

    def test_dotted_plain_import_binds_root(self):
        record = find_imports(parse_source("import os.path\n"))[0]
        assert record.bound_name == "os"


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------
class TestFindNodes:
    def test_every_statement_visited(self, sample_module):
        assert len(find_nodes(sample_module)) == 17

    def test_function_paths(self, sample_module):
        refs = find_nodes(sample_module, NodeKind.FUNCTION_DEF)
        assert [r.path for r in refs] == [(3, 0), (3, 1), (4,), (5,)]
        assert [r.name for r in refs] == ["f", "run", "f", "helper"]

    def test_kind_accepts_plain_string(self, sample_module):
        refs = find_nodes(sample_module, "assign")
        assert [r.path for r in refs] == [(5, 0, 0), (5, 0, 1), (6,)]

    def test_paths_resolve_back_to_statements(self, sample_module):
        for path, stmt in iter_statements(sample_module):
            assert sample_module.resolve(path) is stmt

    def test_depth(self, sample_module):
        ref = find_nodes(sample_module, NodeKind.TRY_EXCEPT)[0]
        assert ref.path == (5, 0)
        assert ref.depth == 1

    def test_unknown_kind_rejected(self, sample_module):
        with pytest.raises(ValueError):
            find_nodes(sample_module, "while_loop")

    def test_foreign_statement_raises(self):
        with pytest.raises(StructureError):
            node_kind(object())


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------
class TestFindFunctionCalls:
    def test_plain_call(self, sample_module):
        sites = find_function_calls(sample_module, "get_distribution")
        assert len(sites) == 1
        assert not sites[0].is_method
        assert sites[0].statement.path == (6,)
        assert sites[0].argument_count == 1

    def test_method_call_keeps_chain(self, sample_module):
        (site,) = find_function_calls(sample_module, "fetch")
        assert site.is_method
        assert site.raw_name == "self.client.fetch"
        assert site.statement.path == (3, 1, 0)

    def test_module_attribute_call(self, sample_module):
        (site,) = find_function_calls(sample_module, "loads")
        assert site.raw_name == "json.loads"

    def test_calls_inside_arguments(self):
        module = parse_source("print(len(items), key=str(x))\n")
        assert len(find_function_calls(module, "len")) == 1
        assert len(find_function_calls(module, "str")) == 1

    def test_call_on_computed_receiver(self):
        module = parse_source("make().run()\n")
        (site,) = find_function_calls(module, "run")
        assert site.raw_name == "<expr>.run"

    def test_no_match(self, sample_module):
        assert find_function_calls(sample_module, "missing") == []


# ---------------------------------------------------------------------------
# Try/except
# ---------------------------------------------------------------------------
class TestFindTryExcept:
    def test_record(self, sample_module):
        (block,) = find_try_except_blocks(sample_module)
        assert block.exception_types == ("ValueError", "KeyError")
        assert block.handler_count == 1
        assert block.has_finally
        assert not block.has_else

    def test_filter_by_type(self, sample_module):
        assert len(find_try_except_blocks(sample_module, "KeyError")) == 1
        assert find_try_except_blocks(sample_module, "OSError") == []

    def test_dotted_and_bare_handlers_are_skipped(self):
        module = parse_source(
            "try:\n    pass\nexcept errors.Timeout:\n    pass\nexcept:\n    pass\n"
        )
        (block,) = find_try_except_blocks(module)
        assert block.exception_types == ()
        assert block.handler_count == 2


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------
class TestFindAssignments:
    def test_simple_targets(self, sample_module):
        assert [a.target for a in find_assignments(sample_module)] == ["value", "value", "x"]

    def test_filter(self, sample_module):
        (found,) = find_assignments(sample_module, "x")
        assert found.statement.path == (6,)
        assert isinstance(found.value, Attribute)

    def test_unpacking_and_attribute_targets_excluded(self):
        module = parse_source("a, b = pair\nself.x = 1\nitems[0] = 2\ny = 3\n")
        assert [a.target for a in find_assignments(module)] == ["y"]

    def test_chained_assignment_not_reported(self):
        module = parse_source("a = b = 1\nc = 2\n")
        assert [a.target for a in find_assignments(module)] == ["c"]


# ---------------------------------------------------------------------------
# Name usage
# ---------------------------------------------------------------------------
class TestCollectUsedNames:
    def test_import_bindings_are_not_uses(self):
        used = collect_used_names(parse_source("import os\nimport sys\nprint(os.sep)\n"))
        assert "os" in used
        assert "print" in used
        assert "sys" not in used

    def test_opaque_text_counts(self):
        used = collect_used_names(parse_source("for line in sys.stdin:\n    pass\n"))
        assert "sys" in used

    def test_dunder_all_strings_count(self):
        used = collect_used_names(parse_source("from .api import run\n__all__ = ['run']\n"))
        assert "run" in used

    def test_forward_reference_annotations_count(self):
        used = collect_used_names(parse_source("def f() -> 'Dict[str, int]':\n    pass\n"))
        assert {"Dict", "str", "int"} <= used


class TestCollectBoundNames:
    def test_binding_forms(self):
        module = parse_source(
            "import os.path\n"
            "from a import b as c\n"
            "def f(x, *rest):\n"
            "    y = x\n"
            "    return y\n"
            "class K:\n"
            "    pass\n"
            "try:\n"
            "    p, q = 1, 2\n"
            "except E as err:\n"
            "    pass\n"
        )
        bound = collect_bound_names(module)
        assert {"os", "c", "f", "x", "rest", "y", "K", "p", "q", "err"} <= bound
        assert "b" not in bound
        assert "E" not in bound

    def test_skip_one_import_alias(self):
        module = parse_source("from a import v\nfrom b import v\n")
        first = module.body[0].names[0]
        assert "v" in collect_bound_names(module, skip=first)
        module = parse_source("from a import v\n")
        assert "v" not in collect_bound_names(module, skip=module.body[0].names[0])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
class TestAttributeChain:
    def test_chain(self):
        expr = Attribute(Attribute(Name("a"), "b"), "c")
        assert attribute_chain(expr) == ["a", "b", "c"]

    def test_plain_name(self):
        assert attribute_chain(Name("foo")) == ["foo"]

    def test_not_rooted_in_name(self):
        expr = Attribute(Call(Name("make")), "run")
        assert attribute_chain(expr) is None
        assert attribute_chain(OpaqueExpression("Lambda", "lambda: 0")) is None
