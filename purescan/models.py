"""
Domain records shared by the lookup client, the store and the score engine.

Records serialize to the persisted camelCase layout:
Product{id, barcode, name, brand, imageRef, safetyScore?, safetyColor?, updatedAt},
Ingredient{id, name, riskWeight|risk}, ProductIngredientLink{productId, ingredientId}.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SCORE_FIELDS = ('safetyScore', 'safetyColor')


class SafetyColor(Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class WriteOrigin(Enum):
    """Who issued a product write"""
    USER = "user"
    SCORE_ENGINE = "score_engine"


@dataclass
class Product:
    """Product record"""
    id: str
    barcode: str
    name: str
    brand: Optional[str] = None
    image_ref: Optional[str] = None
    safety_score: Optional[float] = None
    safety_color: Optional[SafetyColor] = None
    is_new: bool = False
    updated_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], product_id: Optional[str] = None) -> 'Product':
        known = {'id', 'barcode', 'name', 'brand', 'imageRef', 'imageUrlId',
                 'safetyScore', 'safetyColor', 'isNew', 'updatedAt', 'status'}
        color = data.get('safetyColor')
        score = data.get('safetyScore')
        return cls(
            id=str(product_id or data.get('id') or data.get('barcode', '')),
            barcode=str(data.get('barcode', '')),
            name=data.get('name') or '',
            brand=data.get('brand'),
            image_ref=data.get('imageRef') or data.get('imageUrlId'),
            safety_score=float(score) if score is not None else None,
            safety_color=SafetyColor(color) if color else None,
            is_new=bool(data.get('isNew', False)),
            updated_at=data.get('updatedAt'),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            'id': self.id,
            'barcode': self.barcode,
            'name': self.name,
            'brand': self.brand,
            'imageRef': self.image_ref,
            'updatedAt': self.updated_at,
        })
        if self.is_new:
            data['isNew'] = True
        # score fields are omitted entirely until the engine sets them
        if self.safety_score is not None:
            data['safetyScore'] = self.safety_score
        if self.safety_color is not None:
            data['safetyColor'] = self.safety_color.value
        return data


@dataclass
class Ingredient:
    """Ingredient with its risk weight"""
    id: str
    name: str
    risk_weight: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any], ingredient_id: Optional[str] = None) -> 'Ingredient':
        # riskWeight first, legacy "risk" second
        weight = data.get('riskWeight')
        if weight is None:
            weight = data.get('risk')
        if weight is None:
            weight = 0
        try:
            weight = float(weight)
        except (TypeError, ValueError):
            logger.warning(f"Ingredient {ingredient_id or data.get('id')} has non-numeric risk {weight!r}, using 0")
            weight = 0.0
        return cls(
            id=str(ingredient_id or data.get('id', '')),
            name=data.get('name') or '',
            risk_weight=max(0.0, weight),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'riskWeight': self.risk_weight}


@dataclass(frozen=True)
class ProductIngredientLink:
    product_id: str
    ingredient_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {'productId': self.product_id, 'ingredientId': self.ingredient_id}


@dataclass
class WriteEvent:
    """
    A product write as seen by triggers.

    before is None for creates, after is None for deletes.
    """
    product_id: str
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]
    origin: WriteOrigin = WriteOrigin.USER
