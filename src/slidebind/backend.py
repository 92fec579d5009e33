"""Document backend: the only module that touches the .pptx container.

The planning and resolution core works on backend-neutral TemplateSlide
records. A DocumentBackend lists those records from a template and carries out
the resulting edits (clone, set run text, hide, materialize function results,
remove, save). PptxBackend implements the verbs with python-pptx.

Shapes are addressed by their index in the slide's shape tree, and paragraphs
by their index in the shape's flattened paragraph list (table cells are
flattened row by row). Removing a shape shifts the indices of the shapes after
it, so callers remove shapes in descending index order.
"""

from __future__ import annotations

import copy
import logging
import re
from pathlib import Path
from typing import Any, Protocol, Union

from PIL import Image
from pptx import Presentation
from pptx.oxml.ns import qn

from .context_resolver import DeferredFunctionResult
from .template_analyzer import TemplateSlide, TextShape

logger = logging.getLogger(__name__)

HIDE_MODES = ("remove", "blank")

# Notes paragraphs that hold nothing but a slide number
_SLIDE_NUMBER_LINE = re.compile(r"^\s*\d{1,3}\s*$")
_DIRECTIVE_LINE = re.compile(r"^\s*#(foreach|range-begin|range-end|alias)\s*:", re.IGNORECASE)

# Relationships a cloned slide gets on its own from add_slide()/notes_slide
_SKIPPED_RELTYPE_SUFFIXES = ("/slideLayout", "/notesSlide")
_RID_ATTRIBUTES = (qn("r:embed"), qn("r:link"), qn("r:id"))


class DocumentBackend(Protocol):
    """Verbs the generator needs from a document container."""

    def list_template_slides(self) -> list[TemplateSlide]: ...

    def clone_slide(self, source: TemplateSlide, insert_position: int | None = None) -> Any: ...

    def remove_slide(self, handle: Any) -> None: ...

    def hide_or_remove_element(self, slide: Any, shape_index: int) -> None: ...

    def set_run_text(
        self, slide: Any, shape_index: int, paragraph_index: int, run_index: int, text: str
    ) -> None: ...

    def materialize_function_result(
        self, slide: Any, shape_index: int, result: DeferredFunctionResult
    ) -> None: ...

    def save(self, path: Union[str, Path]) -> None: ...


def _paragraphs(shape) -> list:
    """Text paragraphs of a shape; table cells are flattened row-major."""
    if getattr(shape, "has_text_frame", False) and shape.has_text_frame:
        return list(shape.text_frame.paragraphs)
    if getattr(shape, "has_table", False) and shape.has_table:
        return [
            paragraph
            for row in shape.table.rows
            for cell in row.cells
            for paragraph in cell.text_frame.paragraphs
        ]
    return []


def notes_text(slide) -> str:
    """Notes text of a slide without bare slide-number paragraphs."""
    if not slide.has_notes_slide:
        return ""
    frame = slide.notes_slide.notes_text_frame
    if frame is None:
        return ""
    lines = [line for line in frame.text.splitlines() if not _SLIDE_NUMBER_LINE.match(line)]
    return "\n".join(lines)


def fit_within(
    image_size: tuple[int, int], left: int, top: int, width: int, height: int
) -> tuple[int, int, int, int]:
    """Scale an image into a box preserving aspect ratio, centered.

    Returns:
        ``(left, top, width, height)`` of the placed picture, in the box's units.
    """
    image_width, image_height = image_size
    if not image_width or not image_height or not width or not height:
        return left, top, width, height
    image_ratio = image_width / image_height
    box_ratio = width / height
    if image_ratio > box_ratio:
        # Wider than the box - constrain by width
        final_width = width
        final_height = int(width / image_ratio)
    else:
        final_height = height
        final_width = int(height * image_ratio)
    return (
        left + (width - final_width) // 2,
        top + (height - final_height) // 2,
        final_width,
        final_height,
    )


class PptxBackend:
    """DocumentBackend over a python-pptx Presentation.

    Args:
        template_path: Template .pptx file.
        hide_mode: ``remove`` deletes hidden shapes; ``blank`` keeps them in
            the file with ``hidden="1"``.
        assets_dir: Directory relative image paths are resolved against.

    Raises:
        BackendError: If the template cannot be opened.
    """

    def __init__(
        self,
        template_path: Union[str, Path],
        hide_mode: str = "remove",
        assets_dir: Union[str, Path, None] = None,
    ):
        if hide_mode not in HIDE_MODES:
            raise ValueError(f"hide_mode must be one of {HIDE_MODES}, got '{hide_mode}'")
        self.template_path = Path(template_path)
        self.hide_mode = hide_mode
        self.assets_dir = Path(assets_dir) if assets_dir else self.template_path.parent

        if not self.template_path.exists():
            raise BackendError(f"Template not found: {self.template_path}")
        try:
            self.presentation = Presentation(str(self.template_path))
        except Exception as e:
            raise BackendError(f"Cannot open template {self.template_path}: {e}") from e

        logger.info(
            f"Loaded template {self.template_path} ({len(self.presentation.slides)} slide(s))"
        )

    @property
    def slide_count(self) -> int:
        return len(self.presentation.slides)

    def list_template_slides(self) -> list[TemplateSlide]:
        """Backend-neutral records for every slide currently in the deck."""
        records = []
        for slide in self.presentation.slides:
            shapes = []
            for index, shape in enumerate(slide.shapes):
                paragraphs = _paragraphs(shape)
                if not paragraphs:
                    continue
                shapes.append(
                    TextShape(
                        index=index,
                        name=shape.name,
                        paragraphs=tuple(tuple(run.text for run in p.runs) for p in paragraphs),
                    )
                )
            records.append(
                TemplateSlide(
                    slide_id=slide.slide_id,
                    shapes=tuple(shapes),
                    notes=notes_text(slide),
                    handle=slide,
                )
            )
        return records

    def clone_slide(self, source: TemplateSlide, insert_position: int | None = None):
        """Append a copy of ``source`` (optionally moved to ``insert_position``).

        The shape tree and background are deep-copied and every picture, media
        or hyperlink relationship is re-created on the new slide part.
        """
        original = source.handle
        try:
            clone = self.presentation.slides.add_slide(original.slide_layout)

            tree = clone.shapes._spTree
            for child in list(tree):
                tree.remove(child)
            for child in original.shapes._spTree:
                tree.append(copy.deepcopy(child))

            background = original._element.cSld.bg
            if background is not None:
                clone._element.cSld.insert(0, copy.deepcopy(background))

            rid_map = {}
            for rel in original.part.rels.values():
                if rel.reltype.endswith(_SKIPPED_RELTYPE_SUFFIXES):
                    continue
                if rel.is_external:
                    rid_map[rel.rId] = clone.part.relate_to(
                        rel.target_ref, rel.reltype, is_external=True
                    )
                else:
                    rid_map[rel.rId] = clone.part.relate_to(rel.target_part, rel.reltype)

            if rid_map:
                for element in clone._element.iter():
                    for attribute in _RID_ATTRIBUTES:
                        value = element.get(attribute)
                        if value in rid_map:
                            element.set(attribute, rid_map[value])

            self._copy_notes(original, clone)
        except Exception as e:
            raise BackendError(f"Failed to clone slide {source.slide_id}: {e}") from e

        if insert_position is not None:
            self._move_slide(clone, insert_position)
        return clone

    def _copy_notes(self, original, clone):
        """Carry speaker notes over, without directive lines."""
        text = notes_text(original)
        lines = [line for line in text.splitlines() if not _DIRECTIVE_LINE.match(line)]
        kept = "\n".join(lines).strip()
        if kept:
            clone.notes_slide.notes_text_frame.text = kept

    def _move_slide(self, slide, target_index: int):
        slide_id_list = self.presentation.slides._sldIdLst
        for entry in slide_id_list:
            if entry.id == slide.slide_id:
                slide_id_list.remove(entry)
                target_index = max(0, min(target_index, len(slide_id_list)))
                slide_id_list.insert(target_index, entry)
                logger.debug(f"Moved slide {slide.slide_id} to position {target_index}")
                return
        raise BackendError(f"Slide {slide.slide_id} is not in the presentation")

    def remove_slide(self, handle):
        """Remove a slide and drop its relationship from the presentation."""
        # The id is only reachable while the slide is still related
        try:
            slide_id = handle.slide_id
        except ValueError as e:
            raise BackendError(f"Slide is not in the presentation: {e}") from e

        slide_id_list = self.presentation.slides._sldIdLst
        for entry in slide_id_list:
            if entry.id == slide_id:
                try:
                    self.presentation.part.drop_rel(entry.rId)
                    slide_id_list.remove(entry)
                except Exception as e:
                    raise BackendError(f"Failed to remove slide {slide_id}: {e}") from e
                logger.debug(f"Removed slide {slide_id}")
                return
        raise BackendError(f"Slide {slide_id} is not in the presentation")

    def _shape(self, slide, shape_index: int):
        shapes = list(slide.shapes)
        if shape_index < 0 or shape_index >= len(shapes):
            raise BackendError(
                f"Slide {slide.slide_id} has no shape {shape_index} ({len(shapes)} shape(s))"
            )
        return shapes[shape_index]

    def hide_or_remove_element(self, slide, shape_index: int):
        shape = self._shape(slide, shape_index)
        element = shape._element
        if self.hide_mode == "remove":
            element.getparent().remove(element)
            logger.debug(f"Removed shape '{shape.name}' from slide {slide.slide_id}")
            return
        c_nv_pr = element.find(".//" + qn("p:cNvPr"))
        if c_nv_pr is not None:
            c_nv_pr.set("hidden", "1")
        logger.debug(f"Hid shape '{shape.name}' on slide {slide.slide_id}")

    def set_run_text(
        self, slide, shape_index: int, paragraph_index: int, run_index: int, text: str
    ):
        shape = self._shape(slide, shape_index)
        try:
            run = _paragraphs(shape)[paragraph_index].runs[run_index]
        except IndexError as e:
            raise BackendError(
                f"Shape '{shape.name}' has no run ({paragraph_index}, {run_index})"
            ) from e
        run.text = text

    def _clear_token(self, shape, token: str):
        for paragraph in _paragraphs(shape):
            for run in paragraph.runs:
                if token in run.text:
                    run.text = run.text.replace(token, "")

    def _image_path(self, value: Any) -> Path:
        path = Path(str(value))
        if not path.is_absolute():
            path = self.assets_dir / path
        return path

    def materialize_function_result(self, slide, shape_index: int, result: DeferredFunctionResult):
        """Carry out a deferred function call on a slide.

        ``Image(path)`` places the picture over the bounds of the shape that
        held the call, scaled to fit. Unknown functions are dropped with a
        warning. The call's token is always removed from the text.
        """
        shape = self._shape(slide, shape_index)
        self._clear_token(shape, result.token)

        if result.name.lower() != "image":
            logger.warning(f"Unsupported function '{result.name}' on slide {slide.slide_id}")
            return
        if not result.args:
            logger.warning(f"Image() without a path on slide {slide.slide_id}")
            return

        image_path = self._image_path(result.args[0])
        if not image_path.exists():
            logger.warning(f"Image not found: {image_path}")
            return

        try:
            with Image.open(image_path) as img:
                size = img.size
            left, top, width, height = fit_within(
                size, shape.left or 0, shape.top or 0, shape.width or 0, shape.height or 0
            )
            if width and height:
                slide.shapes.add_picture(str(image_path), left, top, width=width, height=height)
            else:
                slide.shapes.add_picture(str(image_path), left, top)
        except Exception as e:
            raise BackendError(f"Failed to place image {image_path}: {e}") from e
        logger.info(f"Added image {image_path} to slide {slide.slide_id}")

    def save(self, path: Union[str, Path]):
        output_path = Path(path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            self.presentation.save(str(output_path))
        except Exception as e:
            raise BackendError(f"Failed to save presentation to {output_path}: {e}") from e
        logger.info(f"Saved presentation to {output_path} ({self.slide_count} slide(s))")


class BackendError(Exception):
    """Raised when the document container cannot be read, edited or written."""
    pass
