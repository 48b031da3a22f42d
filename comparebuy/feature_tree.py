"""
feature_tree.py — Merge two product feature trees into comparison rows.

A feature tree maps a section name ("Camera", "Display", ...) to features,
and a feature value is either a scalar or a nested mapping. Rows come out
in first-seen order, product1 keys before product2 keys:

    Section
      feature            -> leaf row, or sub-section header when nested
        sub-feature      -> leaf row, or sub-section header when nested
          leaf           -> leaf row; anything nested here is dropped

Missing and falsy values (None, False, 0, "", NaN) all show as "No".
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Iterable, Mapping, Optional

from comparebuy.models import (
    Definition, FeatureValue, LeafRow, Nested, Product, Row, Scalar,
    SectionRow, SubSectionRow, to_feature_value,
)

logger = logging.getLogger(__name__)

MISSING = "No"

# Feature levels below a section; the last one only holds leaves.
MAX_DEPTH = 3

_INDEX_KEY = re.compile(r"^[0-9]+$")


def is_index_key(key: str) -> bool:
    """True for keys like "0", "12" left over from list-shaped data."""
    return bool(_INDEX_KEY.match(key))


def is_falsy(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, (bool, int, float, str)) and not value


def union_keys(*trees: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for tree in trees:
        for key in tree:
            seen.setdefault(key, None)
    return list(seen)


def _or_missing(value: Optional[FeatureValue]) -> FeatureValue:
    if value is None or (isinstance(value, Scalar) and is_falsy(value.value)):
        return Scalar(MISSING)
    return value


def _children(value: Optional[FeatureValue]) -> Mapping[str, FeatureValue]:
    if isinstance(value, Nested):
        return value.children
    return {}


def scoped_definitions(
    category: str, definitions: Mapping[str, Definition],
) -> dict[str, str]:
    """Feature name -> definition text, limited to one category."""
    wanted = category.casefold()
    labels: dict[str, str] = {}
    for feature, entry in definitions.items():
        if entry.category and entry.category.casefold() != wanted:
            continue
        labels[feature] = entry.definition
    return labels


def merge(
    category: str,
    product1: Product,
    product2: Product,
    definitions: Mapping[str, Definition],
) -> list[Row]:
    """Merge two products' features into an ordered list of rows."""
    labels = scoped_definitions(category, definitions)
    sections1 = _children(to_feature_value(product1.features))
    sections2 = _children(to_feature_value(product2.features))

    rows: list[Row] = []
    for section in union_keys(sections1, sections2):
        rows.append(SectionRow(label=section))
        rows.extend(_merge_level(
            _children(sections1.get(section)),
            _children(sections2.get(section)),
            labels,
            depth=1,
        ))

    logger.debug(
        "Merged %s vs %s in %s: %d rows",
        product1.name, product2.name, category, len(rows))
    return rows


def _merge_level(
    tree1: Mapping[str, FeatureValue],
    tree2: Mapping[str, FeatureValue],
    labels: Mapping[str, str],
    depth: int,
) -> list[Row]:
    rows: list[Row] = []
    for key in union_keys(tree1, tree2):
        value1 = _or_missing(tree1.get(key))
        value2 = _or_missing(tree2.get(key))

        if isinstance(value1, Nested) or isinstance(value2, Nested):
            if depth >= MAX_DEPTH:
                continue
            sub1, sub2 = _children(value1), _children(value2)
            sub_keys = [k for k in union_keys(sub1, sub2) if not is_index_key(k)]
            if not sub_keys:
                continue
            # Only first-level headers carry a definition; deeper ones stay plain.
            rows.append(SubSectionRow(
                label=key,
                depth=depth,
                definition=labels.get(key) if depth == 1 else None,
            ))
            rows.extend(_merge_level(
                {k: sub1[k] for k in sub_keys if k in sub1},
                {k: sub2[k] for k in sub_keys if k in sub2},
                labels,
                depth + 1,
            ))
        else:
            rows.append(LeafRow(
                label=key,
                depth=depth,
                definition=labels.get(key),
                value1=value1.value,
                value2=value2.value,
            ))
    return rows
