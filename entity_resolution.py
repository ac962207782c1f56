#!/usr/bin/env python3
"""
Entity Resolution for Recipe Import
===================================

Maps free-text unit and ingredient mentions onto canonical back-office
entities, creating them on demand:

- UnitResolver: "tbsp" -> unit id (never raises, degrades to a fallback id)
- IngredientResolver: "tomatoes" -> ingredient id (exact, fuzzy, re-query,
  create, 409 recovery)
- PlaceholderProvider: the shared "text only" ingredient, created at most
  once per session

All three share one ResolutionCache owned by the import session. The cache
is the only de-duplication mechanism inside an import, so callers must
resolve lines one at a time (see import_pipeline.LineProcessor).
"""

from typing import Any, Iterable, List, Optional

from backoffice_client import BackofficeClient, BackofficeClientError, BackofficeConflictError
from config import IMPORT_DEFAULTS
from import_errors import (
    IngredientConflictError,
    IngredientResolutionError,
    PlaceholderUnavailableError,
    UnitResolutionError,
)
from import_models import (
    DEFAULT_UNIT_TEXT,
    CanonicalIngredient,
    CanonicalUnit,
    EntityId,
    UnitType,
)
from tools.logging_utils import get_logger
from utils.name_matching import (
    contains_either_way,
    ingredient_names_match,
    names_equal,
    normalize_name,
)

logger = get_logger(__name__)


# =============================================================================
# SESSION CACHE
# =============================================================================

class ResolutionCache:
    """
    Session-local mirror of the unit and ingredient catalogs.

    Appended to on every creation and every newly observed entity; never
    shared between import sessions.
    """

    def __init__(self, units: Iterable[CanonicalUnit] = (),
                 ingredients: Iterable[CanonicalIngredient] = ()):
        self.units: List[CanonicalUnit] = list(units)
        self.ingredients: List[CanonicalIngredient] = list(ingredients)
        self.loaded = False

    def load(self, client: BackofficeClient) -> None:
        """Fetch both catalogs. Failures leave the cache empty; resolvers re-query later."""
        try:
            self.units = _parse_rows(client.list_units(), CanonicalUnit, "unit")
        except BackofficeClientError as e:
            logger.warning(f"⚠️ Could not load units, starting with an empty unit cache: {e}")
        try:
            self.ingredients = _parse_rows(client.list_ingredients(), CanonicalIngredient, "ingredient")
        except BackofficeClientError as e:
            logger.warning(f"⚠️ Could not load ingredients, starting with an empty ingredient cache: {e}")
        self.loaded = True
        logger.info(f"Loaded {len(self.units)} units and {len(self.ingredients)} ingredients")

    def add_unit(self, unit: CanonicalUnit) -> None:
        if not any(u.id == unit.id for u in self.units):
            self.units.append(unit)

    def add_ingredient(self, ingredient: CanonicalIngredient) -> bool:
        """Append if unseen. Returns True when the ingredient was new to the cache."""
        if any(i.id == ingredient.id for i in self.ingredients):
            return False
        self.ingredients.append(ingredient)
        return True

    def merge_ingredients(self, ingredients: Iterable[CanonicalIngredient]) -> int:
        """Merge a fresh catalog listing; returns how many entities were new."""
        return sum(1 for ingredient in ingredients if self.add_ingredient(ingredient))


def _parse_rows(rows: Iterable[Any], entity_cls, kind: str) -> list:
    """Build entities from catalog rows, skipping (and logging) rows without an id."""
    parsed = []
    for row in rows:
        try:
            parsed.append(entity_cls.from_dict(row))
        except (KeyError, TypeError) as e:
            logger.warning(f"⚠️ Skipping malformed {kind} row {row!r}: {e}")
    return parsed


def _refresh_ingredients(client: BackofficeClient, cache: ResolutionCache) -> List[CanonicalIngredient]:
    """Re-list ingredients (picks up other sessions' creations) and merge into the cache."""
    fresh = _parse_rows(client.list_ingredients(), CanonicalIngredient, "ingredient")
    added = cache.merge_ingredients(fresh)
    if added:
        logger.debug(f"Merged {added} ingredients created elsewhere into session cache")
    return fresh


# =============================================================================
# UNIT TYPE INFERENCE
# =============================================================================

# Exact tokens (lower-cased)
UNIT_TYPE_TABLE = {
    # volume
    "tsp": UnitType.VOLUME, "teaspoon": UnitType.VOLUME, "teaspoons": UnitType.VOLUME,
    "tbsp": UnitType.VOLUME, "tbs": UnitType.VOLUME, "tablespoon": UnitType.VOLUME,
    "tablespoons": UnitType.VOLUME,
    "cup": UnitType.VOLUME, "cups": UnitType.VOLUME, "c": UnitType.VOLUME,
    "ml": UnitType.VOLUME, "milliliter": UnitType.VOLUME, "milliliters": UnitType.VOLUME,
    "l": UnitType.VOLUME, "liter": UnitType.VOLUME, "liters": UnitType.VOLUME,
    "litre": UnitType.VOLUME, "litres": UnitType.VOLUME,
    "fl oz": UnitType.VOLUME, "pint": UnitType.VOLUME, "pt": UnitType.VOLUME,
    "quart": UnitType.VOLUME, "qt": UnitType.VOLUME, "gallon": UnitType.VOLUME,
    "gal": UnitType.VOLUME,
    # weight
    "lb": UnitType.WEIGHT, "lbs": UnitType.WEIGHT, "#": UnitType.WEIGHT,
    "pound": UnitType.WEIGHT, "pounds": UnitType.WEIGHT,
    "oz": UnitType.WEIGHT, "ounce": UnitType.WEIGHT, "ounces": UnitType.WEIGHT,
    "g": UnitType.WEIGHT, "gram": UnitType.WEIGHT, "grams": UnitType.WEIGHT,
    "kg": UnitType.WEIGHT, "kilogram": UnitType.WEIGHT, "kilograms": UnitType.WEIGHT,
    "mg": UnitType.WEIGHT,
    # count
    "piece": UnitType.COUNT, "pieces": UnitType.COUNT, "pc": UnitType.COUNT,
    "whole": UnitType.COUNT, "count": UnitType.COUNT,
    "clove": UnitType.COUNT, "cloves": UnitType.COUNT,
    "slice": UnitType.COUNT, "slices": UnitType.COUNT,
    "each": UnitType.COUNT, "ea": UnitType.COUNT,
    # length
    "inch": UnitType.LENGTH, "inches": UnitType.LENGTH, "in": UnitType.LENGTH,
    "cm": UnitType.LENGTH, "centimeter": UnitType.LENGTH, "centimeters": UnitType.LENGTH,
    "mm": UnitType.LENGTH,
    # temperature
    "fahrenheit": UnitType.TEMPERATURE, "celsius": UnitType.TEMPERATURE,
    "°f": UnitType.TEMPERATURE, "°c": UnitType.TEMPERATURE,
    # other
    "pinch": UnitType.OTHER, "pinches": UnitType.OTHER,
    "dash": UnitType.OTHER, "dashes": UnitType.OTHER,
    "to taste": UnitType.OTHER,
}

# Substring keywords, checked in this order
UNIT_TYPE_KEYWORDS = [
    (UnitType.VOLUME, ("cup", "spoon", "liter", "gal", "quart", "pint")),
    (UnitType.WEIGHT, ("gram", "pound", "ounce", "lb", "oz", "kg")),
    (UnitType.COUNT, ("piece", "count", "whole", "slice", "clove")),
]


def infer_unit_type(unit_text: str) -> UnitType:
    """Classify a unit token: lookup table first, keyword substrings second, else OTHER."""
    token = normalize_name(unit_text)
    if token in UNIT_TYPE_TABLE:
        return UNIT_TYPE_TABLE[token]
    for unit_type, keywords in UNIT_TYPE_KEYWORDS:
        if any(keyword in token for keyword in keywords):
            return unit_type
    return UnitType.OTHER


# =============================================================================
# UNIT RESOLVER
# =============================================================================

WHOLE_UNIT_NAMES = ("piece", "whole", "count")
MAX_ABBREVIATION_LENGTH = 5


class UnitResolver:
    """
    Resolve unit text to a unit id, creating units on demand.

    Priority: "whole" special case, exact name/abbreviation, bidirectional
    containment, then create with an inferred type. resolve() never raises.

    Units have no 409 recovery (unlike ingredients): a unit created by a
    concurrent session between our lookup and create surfaces as a creation
    failure and the caller's fallback id is used.
    """

    def __init__(self, client: BackofficeClient, cache: ResolutionCache,
                 fallback_unit_id: Optional[EntityId] = None):
        self.client = client
        self.cache = cache
        self.fallback_unit_id = (
            fallback_unit_id if fallback_unit_id is not None
            else IMPORT_DEFAULTS["default_count_unit_id"]
        )

    def resolve(self, unit_text: Optional[str], fallback_unit_id: Optional[EntityId] = None) -> EntityId:
        """
        Args:
            unit_text: Free-text unit ("cups", "Tbsp", ""). Empty means "whole".
            fallback_unit_id: Returned if a needed unit cannot be created
                              (default: the resolver's countable fallback)
        """
        text = (unit_text or "").strip() or DEFAULT_UNIT_TEXT
        key = normalize_name(text)
        try:
            if key == DEFAULT_UNIT_TEXT:
                return self._resolve_whole()

            unit = self.find_exact(key) or self.find_fuzzy(key)
            if unit:
                logger.debug(f"Unit '{text}' matched existing '{unit.name}' (id: {unit.id})")
                return unit.id

            abbreviation = text if len(text) <= MAX_ABBREVIATION_LENGTH else None
            return self._create(text, abbreviation, infer_unit_type(text)).id
        except UnitResolutionError as e:
            fallback = fallback_unit_id if fallback_unit_id is not None else self.fallback_unit_id
            logger.warning(f"⚠️ {e} - using fallback unit id {fallback}")
            return fallback

    def find_exact(self, key: str) -> Optional[CanonicalUnit]:
        for unit in self.cache.units:
            if names_equal(unit.name, key) or names_equal(unit.abbreviation, key):
                return unit
        return None

    def find_fuzzy(self, key: str) -> Optional[CanonicalUnit]:
        for unit in self.cache.units:
            if contains_either_way(unit.name, key) or contains_either_way(unit.abbreviation, key):
                return unit
        return None

    def _resolve_whole(self) -> EntityId:
        for unit in self.cache.units:
            if normalize_name(unit.name) in WHOLE_UNIT_NAMES:
                return unit.id
        return self._create("piece", "pc", UnitType.COUNT).id

    def _create(self, name: str, abbreviation: Optional[str], unit_type: UnitType) -> CanonicalUnit:
        try:
            data = self.client.create_unit(name, abbreviation=abbreviation, type=unit_type.value)
            unit = CanonicalUnit.from_dict(data)
        except BackofficeClientError as e:
            raise UnitResolutionError(name, str(e)) from e
        except (KeyError, TypeError) as e:
            raise UnitResolutionError(name, f"malformed create response: {e}") from e

        self.cache.add_unit(unit)
        logger.info(f"Created new unit: {unit.name} ({unit_type.value}, id: {unit.id})")
        return unit


# =============================================================================
# INGREDIENT RESOLVER
# =============================================================================

def match_ingredient(key: str, ingredients: Iterable[CanonicalIngredient],
                     excluded_names: Iterable[str] = ()) -> Optional[CanonicalIngredient]:
    """
    Exact match first, then fuzzy (guarded containment or plural), over `ingredients`.

    Names in `excluded_names` (the text-only sentinel) are never matched.
    """
    excluded = {normalize_name(n) for n in excluded_names}
    candidates = [i for i in ingredients if normalize_name(i.name) not in excluded]
    for ingredient in candidates:
        if names_equal(ingredient.name, key):
            return ingredient
    for ingredient in candidates:
        if ingredient_names_match(key, ingredient.name):
            return ingredient
    return None


class IngredientResolver:
    """
    Resolve an ingredient name to an ingredient id.

    Steps: session cache (exact, fuzzy) -> re-query catalog (exact, fuzzy)
    -> create -> on 409, re-query once and adopt the existing entity.

    Raises:
        IngredientResolutionError: empty name, or creation/lookup failed
        IngredientConflictError: 409 on create and the re-query found no match
    """

    def __init__(self, client: BackofficeClient, cache: ResolutionCache,
                 excluded_names: Iterable[str] = ()):
        self.client = client
        self.cache = cache
        self.excluded_names = tuple(excluded_names)

    def resolve(self, name: Optional[str]) -> EntityId:
        key = normalize_name(name)
        if not key:
            raise IngredientResolutionError(name or "", "ingredient name is empty")

        match = self._match(key, self.cache.ingredients)
        if match:
            logger.debug(f"Ingredient '{name}' matched cached '{match.name}' (id: {match.id})")
            return match.id

        try:
            fresh = _refresh_ingredients(self.client, self.cache)
        except BackofficeClientError as e:
            raise IngredientResolutionError(name, f"could not re-query ingredients: {e}") from e
        match = self._match(key, fresh)
        if match:
            logger.debug(f"Ingredient '{name}' matched '{match.name}' after re-query (id: {match.id})")
            return match.id

        return self._create(name.strip(), key)

    def _match(self, key: str, ingredients: Iterable[CanonicalIngredient]) -> Optional[CanonicalIngredient]:
        return match_ingredient(key, ingredients, self.excluded_names)

    def _create(self, name: str, key: str) -> EntityId:
        try:
            data = self.client.create_ingredient(name, description=None)
            ingredient = CanonicalIngredient.from_dict(data)
        except BackofficeConflictError as e:
            logger.debug(f"Ingredient '{name}' already exists, looking it up...")
            return self._recover_conflict(name, key, e)
        except BackofficeClientError as e:
            raise IngredientResolutionError(name, str(e)) from e
        except (KeyError, TypeError) as e:
            raise IngredientResolutionError(name, f"malformed create response: {e}") from e

        self.cache.add_ingredient(ingredient)
        logger.info(f"Created new ingredient: {ingredient.name} (id: {ingredient.id})")
        return ingredient.id

    def _recover_conflict(self, name: str, key: str, conflict: BackofficeConflictError) -> EntityId:
        try:
            fresh = _refresh_ingredients(self.client, self.cache)
        except BackofficeClientError as e:
            raise IngredientConflictError(
                name, f"already exists but re-query failed: {e}"
            ) from conflict
        match = self._match(key, fresh)
        if match is None:
            raise IngredientConflictError(
                name, f"creation conflicted ({conflict.message}) but no matching ingredient was found"
            ) from conflict
        logger.info(f"Recovered from conflict: '{name}' -> existing '{match.name}' (id: {match.id})")
        return match.id


# =============================================================================
# PLACEHOLDER PROVIDER
# =============================================================================

class PlaceholderProvider:
    """
    Supplies the shared text-only ingredient id.

    Reuses a sentinel left by earlier sessions when the catalog has one,
    otherwise creates it. Either way the lookup/creation happens at most
    once per session.
    """

    def __init__(self, client: BackofficeClient, cache: ResolutionCache,
                 name: Optional[str] = None, description: Optional[str] = None):
        self.client = client
        self.cache = cache
        self.name = name or IMPORT_DEFAULTS["placeholder_name"]
        self.description = description or IMPORT_DEFAULTS["placeholder_description"]
        self._placeholder_id: Optional[EntityId] = None

    def get_placeholder_id(self) -> EntityId:
        if self._placeholder_id is not None:
            return self._placeholder_id

        existing = self._find(self.cache.ingredients)
        if existing is None:
            existing = self._create()
        self._placeholder_id = existing.id
        return self._placeholder_id

    def _find(self, ingredients: Iterable[CanonicalIngredient]) -> Optional[CanonicalIngredient]:
        for ingredient in ingredients:
            if names_equal(ingredient.name, self.name):
                return ingredient
        return None

    def _create(self) -> CanonicalIngredient:
        try:
            data = self.client.create_ingredient(self.name, description=self.description)
            ingredient = CanonicalIngredient.from_dict(data)
        except BackofficeConflictError:
            try:
                found = self._find(_refresh_ingredients(self.client, self.cache))
            except BackofficeClientError as e:
                raise PlaceholderUnavailableError(
                    f"Placeholder ingredient '{self.name}' exists but could not be listed: {e}"
                ) from e
            if found is None:
                raise PlaceholderUnavailableError(
                    f"Placeholder ingredient '{self.name}' conflicted on create but was not found"
                )
            return found
        except BackofficeClientError as e:
            raise PlaceholderUnavailableError(
                f"Could not create placeholder ingredient '{self.name}': {e}"
            ) from e
        except (KeyError, TypeError) as e:
            raise PlaceholderUnavailableError(
                f"Malformed response creating placeholder ingredient: {e}"
            ) from e

        self.cache.add_ingredient(ingredient)
        logger.info(f"Created placeholder ingredient '{ingredient.name}' (id: {ingredient.id})")
        return ingredient
