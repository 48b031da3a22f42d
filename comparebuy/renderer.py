"""Comparison table renderer — turns merged rows into a display structure and HTML."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence

from jinja2 import Environment, FileSystemLoader

from comparebuy.feature_tree import merge
from comparebuy.models import (
    Cell, ComparisonTable, Definition, LeafRow, Product, Row, SectionRow,
    SubSectionRow, TableRow,
)

_TEMPLATE_DIR = Path(__file__).parent / "templates"

SECTION_SHADE = "#e0e0e0"
SUBSECTION_SHADE = "#f8f8f8"
DEEP_SUBSECTION_SHADE = "#f0f0f0"


def format_value(value: Any) -> str:
    if value is True:
        return "Yes"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _render_row(row: Row) -> TableRow:
    if isinstance(row, SectionRow):
        return TableRow(
            kind="section",
            cells=[Cell(text=row.label, colspan=3)],
            background=SECTION_SHADE,
            bold=True,
        )
    if isinstance(row, SubSectionRow):
        shade = SUBSECTION_SHADE if row.depth <= 1 else DEEP_SUBSECTION_SHADE
        return TableRow(
            kind="subsection",
            cells=[Cell(text=row.label, colspan=3, definition=row.definition)],
            background=shade,
            bold=True,
        )
    if isinstance(row, LeafRow):
        return TableRow(
            kind="leaf",
            cells=[
                Cell(text=row.label, definition=row.definition),
                Cell(text=format_value(row.value1)),
                Cell(text=format_value(row.value2)),
            ],
        )
    raise TypeError(f"Unknown row type: {type(row).__name__}")


def render(
    rows: Sequence[Row],
    product1_name: str,
    product2_name: str,
    category: str = "",
) -> ComparisonTable:
    """Map each merged row to its fixed visual treatment."""
    return ComparisonTable(
        category=category,
        product1=product1_name,
        product2=product2_name,
        headers=["Feature", product1_name, product2_name],
        rows=[_render_row(r) for r in rows],
    )


def build_comparison(
    category: str,
    product1: Product,
    product2: Product,
    definitions: Mapping[str, Definition],
) -> ComparisonTable:
    rows = merge(category, product1, product2, definitions)
    return render(rows, product1.name, product2.name, category=category)


def render_html(table: ComparisonTable) -> str:
    """Render a comparison table into an HTML fragment with a definition modal.

    Labels that carry a definition get the ``definition-label`` class and
    open the modal on click. Everything is autoescaped.
    """
    env = Environment(loader=FileSystemLoader(str(_TEMPLATE_DIR)), autoescape=True)
    template = env.get_template("comparison.html")
    return template.render(table=table.model_dump())
