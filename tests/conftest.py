from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from slidebind.template_analyzer import TemplateSlide


CATEGORIES = {
    "Categories": [
        {"Name": "Food", "Products": ["A", "B"]},
        {"Name": "Drinks", "Products": ["C", "D", "E"]},
    ]
}

PRODUCTS = {
    "Products": [
        {"Name": "P1", "Price": 10},
        {"Name": "P2", "Price": 20},
        {"Name": "P3", "Price": 30},
        {"Name": "P4", "Price": 40},
        {"Name": "P5", "Price": 50},
    ]
}


@pytest.fixture
def categories() -> dict:
    return {"Categories": [dict(c, Products=list(c["Products"])) for c in CATEGORIES["Categories"]]}


@pytest.fixture
def products() -> dict:
    return {"Products": [dict(p) for p in PRODUCTS["Products"]]}


@pytest.fixture
def slide() -> Callable[..., TemplateSlide]:
    """Build a backend-neutral slide: ``slide(1, "text", ..., notes="...")``."""

    def _slide(slide_id: int, *texts: str, notes: str = "") -> TemplateSlide:
        return TemplateSlide.from_texts(slide_id, texts, notes=notes)

    return _slide


def write_template(path: Path, slides: list[dict]) -> Path:
    """Write a .pptx template with one textbox per text.

    Each slide dict has ``texts`` (a string is one run, a list of strings is
    one paragraph split into runs) and optional ``notes``.
    """
    from pptx import Presentation
    from pptx.util import Inches

    prs = Presentation()
    blank = prs.slide_layouts[6]
    for spec in slides:
        slide = prs.slides.add_slide(blank)
        for i, text in enumerate(spec.get("texts", [])):
            box = slide.shapes.add_textbox(Inches(1), Inches(1 + i), Inches(6), Inches(0.8))
            box.name = f"Text {i}"
            if isinstance(text, str):
                box.text_frame.text = text
            else:
                paragraph = box.text_frame.paragraphs[0]
                for part in text:
                    run = paragraph.add_run()
                    run.text = part
        if spec.get("notes"):
            slide.notes_slide.notes_text_frame.text = spec["notes"]
    prs.save(str(path))
    return path


def slide_texts(path: Path) -> list[list[str]]:
    """Text of every text shape on every slide of a saved deck."""
    from pptx import Presentation

    prs = Presentation(str(path))
    return [
        [shape.text_frame.text for shape in s.shapes if getattr(shape, "has_text_frame", False)]
        for s in prs.slides
    ]
