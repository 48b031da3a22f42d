"""
selection.py — Category → brand → model selection flow for a comparison.

The controller owns all selection state; nothing lives at module level.
Every selection bumps a generation token for its axis, and a response is
applied only while its token is still current, so a slow response from
an earlier selection never overwrites a newer one.

Only the compare step surfaces failures to the user (through ``notify``);
every other fetch failure is logged and leaves the state untouched.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Optional

import httpx

from comparebuy.client import CatalogClient
from comparebuy.models import ComparisonTable, Definition
from comparebuy.renderer import build_comparison

logger = logging.getLogger(__name__)

SELECT_BOTH_MESSAGE = "Please select both products for comparison."
FETCH_FAILED_MESSAGE = "Product data could not be fetched. Please try again."

# Failures of a single fetch: transport/status errors, bad JSON, bad documents.
FETCH_ERRORS = (httpx.HTTPError, ValueError)


class Side(int, Enum):
    FIRST = 1
    SECOND = 2


@dataclass
class SideState:
    brand: str = ""
    models: list[str] = field(default_factory=list)
    model: str = ""
    models_visible: bool = False


@dataclass
class SelectionState:
    categories: list[str] = field(default_factory=list)
    category: str = ""
    brands: list[str] = field(default_factory=list)
    brands_visible: bool = False
    sides: dict[Side, SideState] = field(
        default_factory=lambda: {Side.FIRST: SideState(), Side.SECOND: SideState()})
    comparison: Optional[ComparisonTable] = None

    @property
    def compare_enabled(self) -> bool:
        return all(s.model for s in self.sides.values())


def _log_notice(message: str) -> None:
    logger.warning(message)


class SelectionFlowController:
    """Drives one comparison page against a ``CatalogClient``."""

    def __init__(self, client: CatalogClient,
                 notify: Optional[Callable[[str], None]] = None):
        self.client = client
        self.notify = notify or _log_notice
        self.state = SelectionState()
        self._tokens: dict[str, int] = {}

    # ── Generation tokens ────────────────────────────────────────────────

    def _bump(self, *axes: str) -> int:
        for axis in axes:
            self._tokens[axis] = self._tokens.get(axis, 0) + 1
        return self._tokens[axes[0]]

    def _is_current(self, axis: str, token: int) -> bool:
        return self._tokens.get(axis, 0) == token

    @staticmethod
    def _side_axis(side: Side) -> str:
        return f"side{side.value}"

    # ── Cascade ──────────────────────────────────────────────────────────

    def _reset_downstream(self) -> None:
        """Clear and hide everything below the category selector."""
        self.state.brands = []
        self.state.brands_visible = False
        for side in Side:
            self.state.sides[side] = SideState()

    async def load_categories(self) -> None:
        token = self._bump("categories")
        try:
            categories = await self.client.categories()
        except FETCH_ERRORS as e:
            logger.error("Error fetching categories: %s", e)
            return
        if not self._is_current("categories", token):
            return
        self.state.categories = list(categories)
        self.state.category = ""
        self._reset_downstream()
        self._bump("category", "side1", "side2", "compare")

    async def select_category(self, category: str) -> None:
        if not category:
            return
        # Re-selecting is a no-op only once its brands actually loaded.
        if category == self.state.category and self.state.brands_visible:
            return
        self.state.category = category
        self._reset_downstream()
        token = self._bump("category", "side1", "side2", "compare")

        try:
            brands = await self.client.brands(category)
        except FETCH_ERRORS as e:
            logger.error("Error fetching brands for %s: %s", category, e)
            return
        if not self._is_current("category", token):
            logger.debug("Discarding stale brands for %s", category)
            return
        self.state.brands = list(brands)
        self.state.brands_visible = True

    async def select_brand(self, side: Side, brand: str) -> None:
        current = self.state.sides[side]
        if not brand or not self.state.category:
            return
        if brand == current.brand and current.models_visible:
            return
        axis = self._side_axis(side)
        self.state.sides[side] = SideState(brand=brand)
        token = self._bump(axis)
        self._bump("compare")

        try:
            models = await self.client.models(self.state.category, brand)
        except FETCH_ERRORS as e:
            logger.error("Error fetching models for %s: %s", brand, e)
            return
        if not self._is_current(axis, token):
            logger.debug("Discarding stale models for %s", brand)
            return
        target = self.state.sides[side]
        target.models = list(models)
        target.models_visible = True

    def select_model(self, side: Side, model: str) -> None:
        self.state.sides[side].model = model or ""
        self._bump("compare")

    # ── Compare ──────────────────────────────────────────────────────────

    async def _load_definitions(self, category: str) -> Mapping[str, Definition]:
        try:
            return await self.client.definitions(category)
        except FETCH_ERRORS as e:
            logger.info("No definitions for %s: %s", category, e)
            return {}

    async def compare(self) -> Optional[ComparisonTable]:
        """Fetch both products together and render only if both arrive."""
        first = self.state.sides[Side.FIRST]
        second = self.state.sides[Side.SECOND]
        if not self.state.compare_enabled:
            self.notify(SELECT_BOTH_MESSAGE)
            return None

        category = self.state.category
        token = self._bump("compare")
        results = await asyncio.gather(
            self.client.product_details(category, first.brand, first.model),
            self.client.product_details(category, second.brand, second.model),
            return_exceptions=True,
        )
        if not self._is_current("compare", token):
            logger.debug("Discarding stale comparison for %s", category)
            return None

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            for failure in failures:
                logger.error("Error fetching product data: %s", failure)
            self.notify(FETCH_FAILED_MESSAGE)
            return None

        definitions = await self._load_definitions(category)
        if not self._is_current("compare", token):
            logger.debug("Discarding stale comparison for %s", category)
            return None

        product1, product2 = results
        table = build_comparison(category, product1, product2, definitions)
        self.state.comparison = table
        return table
