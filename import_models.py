"""
Data model for the recipe import pipeline.

Draft types come from the parser and are edited during review; canonical
types mirror back-office rows; resolved types are what the pipeline hands
to recipe persistence. Wire dicts use the back-office's camelCase keys.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Any, Dict, List, Optional, Union

EntityId = Union[int, str]

DEFAULT_QUANTITY = 1
DEFAULT_UNIT_TEXT = "whole"

LINE_TYPE_INGREDIENT = "ingredient"
LINE_TYPE_SUB_RECIPE = "sub-recipe"


class UnitType(str, Enum):
    WEIGHT = "WEIGHT"
    VOLUME = "VOLUME"
    COUNT = "COUNT"
    LENGTH = "LENGTH"
    TEMPERATURE = "TEMPERATURE"
    OTHER = "OTHER"


# =============================================================================
# QUANTITY HELPERS
# =============================================================================

_UNICODE_FRACTIONS = {
    '¼': '1/4', '½': '1/2', '¾': '3/4',
    '⅓': '1/3', '⅔': '2/3',
    '⅛': '1/8', '⅜': '3/8', '⅝': '5/8', '⅞': '7/8',
    '⅕': '1/5', '⅖': '2/5', '⅗': '3/5', '⅘': '4/5',
    '⅙': '1/6', '⅚': '5/6',
}


def normalize_unicode_fractions(text: str) -> str:
    """Replace unicode vulgar fractions with ASCII ones ("1½" -> "1 1/2")."""
    for old, new in _UNICODE_FRACTIONS.items():
        text = text.replace(old, f" {new}")
    return text.strip()


def coerce_quantity(value: Any) -> Union[int, float]:
    """
    Turn a parsed quantity into a positive number.

    Accepts numbers, decimal strings, "1/2" and mixed "1 1/2". Anything
    missing, unparseable or not positive becomes DEFAULT_QUANTITY, since
    recipe persistence rejects zero quantities.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_QUANTITY
    if isinstance(value, float) and not math.isfinite(value):
        return DEFAULT_QUANTITY
    if isinstance(value, (int, float)):
        return value if value > 0 else DEFAULT_QUANTITY

    text = normalize_unicode_fractions(str(value))
    if not text:
        return DEFAULT_QUANTITY
    try:
        total = sum(Fraction(part) for part in text.split())
        if total <= 0:
            return DEFAULT_QUANTITY
        return int(total) if total.denominator == 1 else float(total)
    except (ValueError, ZeroDivisionError, OverflowError):
        # Too large for a float counts as unparseable
        return DEFAULT_QUANTITY


def _coerce_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


# =============================================================================
# CANONICAL ENTITIES
# =============================================================================

@dataclass
class CanonicalUnit:
    id: EntityId
    name: str
    abbreviation: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalUnit":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            abbreviation=data.get("abbreviation"),
            type=data.get("type"),
        )


@dataclass
class CanonicalIngredient:
    id: EntityId
    name: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalIngredient":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            description=data.get("description"),
        )


# =============================================================================
# DRAFT (PARSER OUTPUT, EDITED DURING REVIEW)
# =============================================================================

@dataclass(frozen=True)
class DraftIngredientLine:
    """
    One ingredient mention from the parser.

    Frozen: review edits replace the line (see RecipeImportSession.edit_line),
    so a line handed to resolution never changes underneath it.
    """
    quantity: Any = None
    unit_text: str = ""
    name: Optional[str] = None
    raw_text: Optional[str] = None
    skip_database: bool = False
    type: str = LINE_TYPE_INGREDIENT
    sub_recipe_id: Optional[EntityId] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DraftIngredientLine":
        return cls(
            quantity=data.get("quantity"),
            unit_text=data.get("unit") or data.get("unitText") or "",
            name=data.get("name"),
            raw_text=data.get("raw") or data.get("rawText"),
            skip_database=_coerce_bool(data.get("skipDatabase", False)),
            type=data.get("type") or LINE_TYPE_INGREDIENT,
            sub_recipe_id=data.get("subRecipeId"),
        )

    @property
    def effective_unit_text(self) -> str:
        return (self.unit_text or "").strip() or DEFAULT_UNIT_TEXT

    @property
    def quantity_value(self) -> Union[int, float]:
        return coerce_quantity(self.quantity)

    @property
    def label(self) -> str:
        """Best human-readable name for failure reports."""
        return (self.name or "").strip() or (self.raw_text or "").strip() or "unnamed ingredient"

    def synthesize_display_text(self) -> str:
        """Original text if we have it, else "<qty> <unit> <name>"."""
        if self.raw_text and self.raw_text.strip():
            return self.raw_text.strip()
        qty = self.quantity if self.quantity not in (None, "") else DEFAULT_QUANTITY
        if isinstance(qty, float):
            qty = f"{qty:g}"
        parts = [str(qty).strip(), (self.unit_text or "").strip(), (self.name or "").strip()]
        return " ".join(p for p in parts if p)


@dataclass
class DraftRecipe:
    name: str = ""
    description: str = ""
    instructions: str = ""
    yield_quantity: Any = None
    yield_unit_text: str = ""
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    category_id: Optional[EntityId] = None
    ingredients: List[DraftIngredientLine] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DraftRecipe":
        return cls(
            name=data.get("name") or "",
            description=data.get("description") or "",
            instructions=data.get("instructions") or "",
            yield_quantity=data.get("yieldQuantity"),
            yield_unit_text=data.get("yieldUnit") or data.get("yieldUnitText") or "",
            prep_time_minutes=_coerce_int(data.get("prepTimeMinutes")),
            cook_time_minutes=_coerce_int(data.get("cookTimeMinutes")),
            tags=list(data.get("tags") or []),
            category_id=data.get("categoryId"),
            ingredients=[
                DraftIngredientLine.from_dict(item)
                for item in (data.get("ingredients") or [])
                if isinstance(item, dict)
            ],
        )


# =============================================================================
# RESOLUTION OUTPUT
# =============================================================================

@dataclass
class ResolvedLine:
    order: int
    quantity: Union[int, float]
    unit_id: EntityId
    type: str = LINE_TYPE_INGREDIENT
    ingredient_id: Optional[EntityId] = None
    sub_recipe_id: Optional[EntityId] = None
    display_text: Optional[str] = None
    is_placeholder: bool = False

    @property
    def entity_id(self) -> Optional[EntityId]:
        return self.sub_recipe_id if self.type == LINE_TYPE_SUB_RECIPE else self.ingredient_id

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "quantity": self.quantity,
            "unitId": self.unit_id,
            "order": self.order,
            "isPlaceholder": self.is_placeholder,
        }
        if self.type == LINE_TYPE_SUB_RECIPE:
            data["subRecipeId"] = self.sub_recipe_id
        else:
            data["ingredientId"] = self.ingredient_id
        if self.display_text:
            data["displayText"] = self.display_text
        return data


@dataclass
class LineFailure:
    name: str
    error: str
    order: int


@dataclass
class LineProcessingResult:
    resolved: List[ResolvedLine] = field(default_factory=list)
    failures: List[LineFailure] = field(default_factory=list)


@dataclass
class RecipeCreatePayload:
    name: str
    description: str
    instructions: str
    yield_quantity: Union[int, float]
    yield_unit_id: EntityId
    prep_time_minutes: int
    cook_time_minutes: int
    tags: List[str]
    category_id: Optional[EntityId]
    ingredients: List[ResolvedLine]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "instructions": self.instructions,
            "yieldQuantity": self.yield_quantity,
            "yieldUnitId": self.yield_unit_id,
            "prepTimeMinutes": self.prep_time_minutes,
            "cookTimeMinutes": self.cook_time_minutes,
            "tags": list(self.tags),
            "categoryId": self.category_id,
            "ingredients": [line.to_dict() for line in self.ingredients],
        }


@dataclass
class ImportResult:
    recipe: Dict[str, Any]
    failures: List[LineFailure] = field(default_factory=list)
    warning: Optional[str] = None

    @property
    def recipe_id(self) -> Optional[EntityId]:
        return self.recipe.get("id")
