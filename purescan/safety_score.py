"""
Safety score calculation and the recomputation engine.

score = max(0, 100 - min(100, 20 * ln(1 + total_risk)))
color = red below 50, yellow below 85, green otherwise

The engine runs on every product write and writes the score back through the
store's score-write operation. Its own writes trigger it again, so it stops
on score-only writes and whenever the stored score already matches.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from purescan.config import Config
from purescan.models import SCORE_FIELDS, Ingredient, Product, SafetyColor, WriteEvent, WriteOrigin
from purescan.store import DocumentStore, StoreError

logger = logging.getLogger(__name__)

RED_BELOW = 50.0
GREEN_FROM = 85.0
DECAY = 20.0
SCORE_TOLERANCE = 1e-9


def total_risk(ingredients: Iterable[Optional[Ingredient]]) -> float:
    return sum(ing.risk_weight for ing in ingredients if ing is not None)


def compute_score(risk: float) -> float:
    return max(0.0, 100.0 - min(100.0, DECAY * math.log1p(max(0.0, risk))))


def classify(score: float) -> SafetyColor:
    if score < RED_BELOW:
        return SafetyColor.RED
    if score < GREEN_FROM:
        return SafetyColor.YELLOW
    return SafetyColor.GREEN


def score_ingredients(ingredients: Iterable[Optional[Ingredient]]) -> Tuple[float, SafetyColor]:
    score = compute_score(total_risk(ingredients))
    return score, classify(score)


def display_safety(product: Product, ingredients: List[Ingredient]) -> Tuple[float, SafetyColor]:
    """
    Score shown for a product: the stored one, or the same calculation
    the engine would run when the engine has not written one yet.
    """
    fallback_score, fallback_color = score_ingredients(ingredients)
    score = product.safety_score if product.safety_score is not None else fallback_score
    color = product.safety_color if product.safety_color is not None else classify(score)
    return score, color


class RecomputeOutcome(Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SELF_WRITE = "self_write"
    NO_LINKS = "no_links"
    DELETED = "deleted"
    ABORTED = "aborted"


def _is_score_write(event: WriteEvent) -> bool:
    if event.origin is WriteOrigin.SCORE_ENGINE:
        return True
    if event.before is None or event.after is None:
        return False

    # only score fields (and the timestamp) moved
    ignored = set(SCORE_FIELDS) | {'updatedAt'}
    keys = (set(event.before) | set(event.after)) - ignored
    if any(event.before.get(k) != event.after.get(k) for k in keys):
        return False
    return any(event.before.get(k) != event.after.get(k) for k in SCORE_FIELDS)


def _matches(stored: Dict[str, Any], score: float, color: SafetyColor) -> bool:
    stored_score = stored.get('safetyScore')
    if stored_score is None or stored.get('safetyColor') != color.value:
        return False
    return math.isclose(float(stored_score), score, abs_tol=SCORE_TOLERANCE)


class SafetyScoreEngine:
    """
    Recomputes a product's safety score from its linked ingredients.

    Invocations for different products may run concurrently; concurrent
    invocations for the same product converge, the last write wins.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def attach(self, store=None):
        """Subscribe to a store's product write events"""
        (store or self.store).subscribe(self.on_write)
        return self

    def on_write(self, event: WriteEvent) -> RecomputeOutcome:
        product_id = event.product_id

        if event.after is None:
            return RecomputeOutcome.DELETED

        if _is_score_write(event):
            logger.debug(f"Ignoring score write on {product_id}")
            return RecomputeOutcome.SELF_WRITE

        logger.info(f"Recalculating safety score for product: {product_id}")

        try:
            links = self.store.links_for_product(product_id)
            if not links:
                logger.info(f"No ingredients linked to product: {product_id}")
                return RecomputeOutcome.NO_LINKS

            ingredients = []
            for link in links:
                ingredient = self.store.get_ingredient(link.ingredient_id)
                if ingredient is None:
                    logger.warning(f"Product {product_id} links missing ingredient {link.ingredient_id}")
                    continue
                ingredients.append(ingredient)
        except (StoreError, ValueError, TypeError) as e:
            logger.error(f"Score recalculation for {product_id} aborted: {e}")
            return RecomputeOutcome.ABORTED

        score, color = score_ingredients(ingredients)

        if _matches(event.after, score, color):
            return RecomputeOutcome.UNCHANGED

        try:
            self.store.write_safety_score(product_id, score, color)
        except StoreError as e:
            logger.error(f"Writing safety score for {product_id} failed: {e}")
            return RecomputeOutcome.ABORTED

        logger.info(f"Updated: {product_id} score={score:.2f} color={color.value}")
        return RecomputeOutcome.UPDATED

    def recompute_many(self, events: List[WriteEvent], max_workers: int = None) -> List[RecomputeOutcome]:
        """Run independent write events concurrently; outcomes in input order"""
        if not events:
            return []
        with ThreadPoolExecutor(max_workers=max_workers or Config.RECOMPUTE_WORKERS) as pool:
            return list(pool.map(self.on_write, events))
