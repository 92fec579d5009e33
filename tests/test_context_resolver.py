import pytest

from slidebind import context_resolver
from slidebind.aliases import AliasTable
from slidebind.context_resolver import ContextResolver, DeferredFunctionResult, HideSignal
from slidebind.diagnostics import DiagnosticKind
from slidebind.expression_parser import parse_expression
from slidebind.slide_plan import ContextPath, ContextSegment, SlideInstance, generate_plan
from slidebind.template_analyzer import analyze_template


def _instance(*context, offset=0, collection=None, slide_id=1):
    path = ContextPath(tuple(ContextSegment(name, index) for name, index in context))
    return SlideInstance(slide_id, 0, context_path=path, offset=offset, collection=collection)


@pytest.fixture
def letters():
    return {"A": [{"Name": "x"}, {"Name": "y"}, {"Name": "z"}]}


def test_indexed_and_context_forms_are_equivalent(letters):
    resolver = ContextResolver(letters)
    instance = _instance(("A", 2))

    absolute = resolver.resolve(parse_expression("A[2].Name"), instance)
    relative = resolver.resolve(parse_expression("A>Name"), instance)

    assert absolute == relative == "z"


def test_index_beyond_bounds_hides():
    resolver = ContextResolver({"Items": [{"X": 1}, {"X": 2}, {"X": 3}]})

    outcome = resolver.resolve(parse_expression("Items[5].X"), _instance())

    assert isinstance(outcome, HideSignal)
    assert "out of range" in outcome.reason


def test_scenario_products_last_page(slide, products):
    slides = [slide(1, "${Products[0].Name}", "${Products[1].Name}")]
    plan = generate_plan(analyze_template(slides), products)
    resolver = ContextResolver(products, plan.aliases)
    last = plan.instances[2]

    assert last.offset == 4
    assert resolver.resolve_text("${Products[0].Name}", last).text == "P5"
    assert resolver.resolve_text("${Products[1].Name}", last).hidden


def test_context_foreach_page_reads_its_element(slide, products):
    notes = "#foreach: Products, max: 2"
    slides = [slide(1, "${Products>Name}", "${Products[1].Name}", notes=notes)]
    plan = generate_plan(analyze_template(slides), products)
    resolver = ContextResolver(products, plan.aliases)
    middle, last = plan.instances[1], plan.instances[2]

    assert resolver.resolve_text("${Products>Name}", middle).text == "P3"
    assert resolver.resolve_text("${Products[1].Name}", middle).text == "P4"
    assert resolver.resolve_text("${Products>Name}", last).text == "P5"
    assert resolver.resolve_text("${Products[1].Name}", last).hidden


def test_scenario_nested_child_page(categories):
    resolver = ContextResolver(categories)
    page = _instance(("Categories", 1), offset=2, collection="Categories>Products")

    assert resolver.resolve_text("${Categories>Products[0]}", page).text == "E"
    assert resolver.resolve_text("${Categories>Products[1]}", page).hidden
    assert resolver.resolve_text("${Categories>Name}", page).text == "Drinks"


def test_context_join_falls_back_to_offset(letters):
    resolver = ContextResolver(letters)
    instance = _instance(offset=1, collection="A")

    assert resolver.resolve(parse_expression("A>Name"), instance) == "y"


def test_context_join_without_context_hides(letters):
    resolver = ContextResolver(letters)

    assert isinstance(resolver.resolve(parse_expression("A>Name"), _instance()), HideSignal)


def test_alias_resolves_like_full_path():
    data = {"Company": {"Eng": {"Staff": [{"Name": "Ada"}, {"Name": "Linus"}]}}}
    resolver = ContextResolver(data, AliasTable.from_mapping({"Engineers": "Company.Eng.Staff"}))
    instance = _instance()

    assert resolver.resolve(parse_expression("Engineers[0].Name"), instance) == resolver.resolve(
        parse_expression("Company.Eng.Staff[0].Name"), instance
    ) == "Ada"


def test_missing_member_and_none_intermediate_hide():
    resolver = ContextResolver({"A": None, "B": {"C": 1}})
    instance = _instance()

    assert isinstance(resolver.resolve(parse_expression("A.X"), instance), HideSignal)
    assert isinstance(resolver.resolve(parse_expression("B.Missing"), instance), HideSignal)


def test_final_none_renders_empty():
    resolver = ContextResolver({"A": None})

    assert resolver.resolve(parse_expression("A"), _instance()) == ""


def test_format_spec_applied():
    resolver = ContextResolver({"Total": 1234.5, "Name": "widget"})
    instance = _instance()

    assert resolver.resolve(parse_expression("Total:C"), instance) == "$1,234.50"
    assert resolver.resolve(parse_expression("Name:U"), instance) == "WIDGET"


def test_function_call_is_deferred(products):
    products["Products"][0]["Photo"] = "p1.png"
    resolver = ContextResolver(products)
    resolution = resolver.resolve_text("${Image(Products[0].Photo)}", _instance())

    assert not resolution.hidden
    assert len(resolution.deferred) == 1
    deferred = resolution.deferred[0]
    assert isinstance(deferred, DeferredFunctionResult)
    assert deferred.name == "Image"
    assert deferred.args == ("p1.png",)
    assert resolution.text == deferred.token


def test_function_with_missing_argument_hides(products):
    resolver = ContextResolver(products)

    assert resolver.resolve_text("${Image(Products[9].Photo)}", _instance()).hidden


def test_resolve_text_records_value_spans():
    resolver = ContextResolver({"Name": "Bob"})
    resolution = resolver.resolve_text("Hi ${Name}!", _instance())

    assert resolution.text == "Hi Bob!"
    assert resolution.spans == [(3, 6)]


def test_malformed_and_unclosed_expressions_stay_literal():
    resolver = ContextResolver({"A": 1})

    assert resolver.resolve_text("a ${Products[} b", _instance()).text == "a ${Products[} b"
    assert resolver.resolve_text("a ${A", _instance()).text == "a ${A"
    assert [d.kind for d in resolver.diagnostics] == [DiagnosticKind.PARSE]


def test_context_items_are_cached_until_clear(letters):
    resolver = ContextResolver(letters)
    instance = _instance(("A", 1))

    resolver.resolve(parse_expression("A>Name"), instance)
    assert "A[1]" in resolver._context_cache

    resolver.clear()
    assert resolver._context_cache == {}


def test_failures_are_isolated_per_expression(monkeypatch):
    def _broken(value, spec=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(context_resolver, "format_value", _broken)
    resolver = ContextResolver({"A": 1})

    outcome = resolver.resolve(parse_expression("A"), _instance())

    assert isinstance(outcome, HideSignal)
    assert [d.kind for d in resolver.diagnostics] == [DiagnosticKind.RESOLUTION]
