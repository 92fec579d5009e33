import pytest

from slidebind.diagnostics import DiagnosticKind
from slidebind.expression_parser import (
    DataPath,
    DirectiveType,
    ExpressionSyntaxError,
    RangeBoundary,
    find_expression_spans,
    normalize_quotes,
    parse_directives,
    parse_expression,
    parse_expressions,
)


def test_parse_simple_and_formatted_expressions():
    expressions = parse_expressions("Hello ${Products[0].Name} total ${Total:C}")

    assert [str(e.path) for e in expressions] == ["Products[0].Name", "Total"]
    assert expressions[0].references == (("Products", 0),)
    assert expressions[0].format_spec is None
    assert expressions[1].format_spec == "C"
    assert expressions[1].references == ()


def test_parse_context_expression():
    expression = parse_expression("Categories>Products[1].Price:N2")

    assert expression.uses_context_operator
    assert expression.format_spec == "N2"
    assert expression.references == (("Categories>Products", 1),)
    assert len(expression.path.chunks()) == 2
    assert expression.text == "${Categories>Products[1].Price:N2}"


def test_parse_function_call_records_arguments():
    expression = parse_expression("Image(Products[0].Photo)")

    assert expression.is_function_call
    assert expression.function.name == "Image"
    assert [str(p) for p in expression.function.paths()] == ["Products[0].Photo"]
    assert expression.references == (("Products", 0),)


def test_parse_namespaced_function_with_string_literal():
    expression = parse_expression("ppt.Image('logo.png', Size)")

    assert expression.function.namespace == "ppt"
    assert expression.function.args[0] == "logo.png"
    assert isinstance(expression.function.args[1], DataPath)


def test_smart_quotes_inside_expression_are_normalized():
    expressions = parse_expressions("${Image(“logo.png”)}")

    assert expressions[0].function.args == ("logo.png",)


def test_normalize_quotes_leaves_text_outside_expressions():
    text = "“hi” ${A}"
    assert normalize_quotes(text) == text


@pytest.mark.parametrize("text", ["${Products[}", "${}", "${A..B}", "${A>}"])
def test_malformed_expression_is_reported_not_raised(text):
    diagnostics = []

    assert parse_expressions(text, diagnostics, slide_id=4) == []
    assert len(diagnostics) == 1
    assert diagnostics[0].kind == DiagnosticKind.PARSE
    assert diagnostics[0].slide_id == 4


def test_unclosed_expression_is_plain_text():
    diagnostics = []
    assert parse_expressions("Total: ${Amount", diagnostics) == []
    assert diagnostics == []


def test_parse_expression_raises_on_bad_path():
    with pytest.raises(ExpressionSyntaxError):
        parse_expression("Items[x]")


def test_find_expression_spans():
    assert find_expression_spans("ab ${X} c ${Y}") == [(3, 7), (10, 14)]
    assert find_expression_spans("no expressions") == []


def test_collection_key_marks_pinned_segments():
    path = DataPath.parse("Products[0].Items[1]")

    assert path.collection_key(0) == "Products"
    assert path.collection_key(1) == "Products[].Items"
    assert path.indexed_references() == [("Products", 0), ("Products[].Items", 1)]


def test_replace_root_moves_index_to_prefix():
    path = DataPath.parse("Engineers[2].Name")
    expanded = path.replace_root(DataPath.parse("Company.Eng.Staff"))

    assert str(expanded) == "Company.Eng.Staff[2].Name"


def test_parse_foreach_directive_with_options():
    directives = parse_directives("#foreach: Products, max: 3, offset: 1")

    assert len(directives) == 1
    assert directives[0].type == DirectiveType.FOREACH
    assert directives[0].collection_path == "Products"
    assert directives[0].max_items == 3
    assert directives[0].offset == 1


def test_parse_range_and_alias_directives():
    notes = "Presenter text\n#range-begin: Categories\n#alias: Company.Eng.Staff as Engineers\n#range-end: Categories"
    directives = parse_directives(notes)

    assert [d.type for d in directives] == [
        DirectiveType.RANGE,
        DirectiveType.ALIAS,
        DirectiveType.RANGE,
    ]
    assert directives[0].range_boundary == RangeBoundary.BEGIN
    assert directives[2].range_boundary == RangeBoundary.END
    assert directives[1].alias_name == "Engineers"
    assert directives[1].collection_path == "Company.Eng.Staff"


def test_several_directives_on_one_line():
    directives = parse_directives("#range-begin: Regions #foreach: Regions>Stores, max: 2")

    assert [d.type for d in directives] == [DirectiveType.RANGE, DirectiveType.FOREACH]
    assert directives[0].collection_path == "Regions"
    assert directives[1].collection_path == "Regions>Stores"
    assert directives[1].max_items == 2


def test_unknown_directive_is_skipped_with_diagnostic():
    diagnostics = []

    assert parse_directives("#repeat: Items", diagnostics) == []
    assert [d.kind for d in diagnostics] == [DiagnosticKind.PARSE]


@pytest.mark.parametrize("option", ["max: -2", "max: two", "offset: -1"])
def test_invalid_foreach_option_keeps_default(option):
    diagnostics = []
    directives = parse_directives(f"#foreach: Items, {option}", diagnostics)

    assert directives[0].max_items == 0
    assert directives[0].offset == 0
    assert len(diagnostics) == 1


def test_malformed_alias_is_skipped():
    diagnostics = []
    assert parse_directives("#alias: Company.Staff", diagnostics) == []
    assert len(diagnostics) == 1
