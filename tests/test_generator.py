from slidebind.diagnostics import DiagnosticKind
from slidebind.generator import SlideOutput, apply_output, generate
from slidebind.slide_plan import SlideInstance


def _texts(output):
    """Resolved text of every shape of a SlideOutput (single-run shapes)."""
    return [
        output.text_patches.get((shape.index, 0, 0), shape.paragraphs[0][0])
        for shape in output.source.shapes
    ]


def test_generate_scenario_products(slide, products):
    outputs = generate(
        [slide(1, "Catalog"), slide(2, "${Products[0].Name}", "${Products[1].Name}")],
        products,
    )

    assert [o.instance.source_slide_id for o in outputs] == [1, 2, 2, 2]
    assert outputs[0].text_patches == {}
    assert _texts(outputs[1]) == ["P1", "P2"]
    assert _texts(outputs[2]) == ["P3", "P4"]
    assert _texts(outputs[3])[0] == "P5"
    assert outputs[3].hidden_shapes == [1]


def test_generate_scenario_nested(slide, categories):
    outputs = generate(
        [
            slide(1, "${Categories[0].Name}"),
            slide(2, "${Categories>Products[0]}", "${Categories>Products[1]}"),
        ],
        categories,
    )

    assert [_texts(o) for o in outputs] == [
        ["Food"],
        ["A", "B"],
        ["Drinks"],
        ["C", "D"],
        ["E", ""],
    ]
    assert [o.hidden_shapes for o in outputs] == [[], [], [], [], [1]]


def test_function_results_are_collected_per_shape(slide, products):
    products["Products"][0]["Photo"] = "p1.png"
    outputs = generate(
        [slide(1, "${Products[0].Name}", "${Image(Products[0].Photo)}")],
        products,
    )

    first = outputs[0]
    assert [(index, d.args) for index, d in first.deferred] == [(1, ("p1.png",))]
    # Second item has no Photo: the shape hides and its call is dropped
    assert outputs[1].deferred == []
    assert outputs[1].hidden_shapes == [1]


def test_diagnostics_are_collected(slide):
    diagnostics = []
    outputs = generate([slide(1, "${Bad[}"), slide(2, "${Missing[0]}")], {}, diagnostics=diagnostics)

    assert [o.instance.source_slide_id for o in outputs] == [1]
    kinds = {d.kind for d in diagnostics}
    assert DiagnosticKind.PARSE in kinds
    assert DiagnosticKind.PLANNING in kinds


class RecordingBackend:
    def __init__(self):
        self.calls = []

    def clone_slide(self, source, insert_position=None):
        self.calls.append(("clone", source.slide_id))
        return "clone"

    def set_run_text(self, slide, shape_index, paragraph_index, run_index, text):
        self.calls.append(("text", shape_index, text))

    def materialize_function_result(self, slide, shape_index, result):
        self.calls.append(("function", shape_index))

    def hide_or_remove_element(self, slide, shape_index):
        self.calls.append(("hide", shape_index))


def test_apply_output_hides_shapes_last_in_descending_order(slide):
    source = slide(7, "a", "b", "c")
    output = SlideOutput(
        source=source,
        instance=SlideInstance(7, 0),
        text_patches={(1, 0, 0): "B"},
        hidden_shapes=[0, 2],
    )
    backend = RecordingBackend()

    assert apply_output(backend, output) == "clone"
    assert backend.calls == [("clone", 7), ("text", 1, "B"), ("hide", 2), ("hide", 0)]
