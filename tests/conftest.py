"""
Pytest Configuration and Fixtures
=================================

Provides shared fixtures for the test suite:
- An isolated data dir (config.yaml, logs) created before config.py loads
- FakeBackofficeClient: in-memory stand-in for the back-office REST API
  that records every call, so tests can assert how often entities were
  created

No test talks to a real back-office.
"""

import os
import tempfile

# Must run before anything imports config.py
os.environ.setdefault("RECIPE_IMPORT_DATA_DIR", tempfile.mkdtemp(prefix="recipe-import-tests-"))
os.environ.pop("BACKOFFICE_URL", None)

import pytest
from typing import Any, Dict, List, Optional

from backoffice_client import BackofficeAPIError, BackofficeConflictError


# =============================================================================
# Fake back-office
# =============================================================================

class FakeBackofficeClient:
    """
    In-memory back-office with the BackofficeClient interface.

    Failure injection:
        fail_unit_names / fail_ingredient_names: lower-case names whose
            create call raises a 500 BackofficeAPIError
        race_ingredient_names: lower-case names another session creates
            between our lookup and our create (our create then gets a 409)
        recipe_errors: exceptions raised, in order, by create_recipe
        list_ingredients_error: raised by every list_ingredients call
        parse_result: dict returned by parse_recipe, or an exception to raise
    """

    def __init__(self, units: Optional[List[Dict[str, Any]]] = None,
                 ingredients: Optional[List[Dict[str, Any]]] = None):
        self.units: List[Dict[str, Any]] = [dict(u) for u in units or []]
        self.ingredients: List[Dict[str, Any]] = [dict(i) for i in ingredients or []]
        self.recipes: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.fail_unit_names: set = set()
        self.fail_ingredient_names: set = set()
        self.race_ingredient_names: set = set()
        self.recipe_errors: List[Exception] = []
        self.list_ingredients_error: Optional[Exception] = None
        self.parse_result: Any = None
        self.closed = False
        self._next_id = 1000

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # Parser ---------------------------------------------------------------

    def parse_recipe(self, text: str, use_ai: bool = False) -> Dict[str, Any]:
        self.calls.append(("parse_recipe", text, use_ai))
        if isinstance(self.parse_result, Exception):
            raise self.parse_result
        return self.parse_result

    # Units ----------------------------------------------------------------

    def list_units(self) -> List[Dict[str, Any]]:
        self.calls.append(("list_units",))
        return [dict(u) for u in self.units]

    def create_unit(self, name: str, abbreviation: Optional[str] = None,
                    type: Optional[str] = None) -> Dict[str, Any]:
        self.calls.append(("create_unit", name, abbreviation, type))
        if name.lower() in self.fail_unit_names:
            raise BackofficeAPIError("Error creating unit", operation="create_unit", status_code=500)
        unit = {"id": self._new_id(), "name": name, "abbreviation": abbreviation, "type": type}
        self.units.append(unit)
        return dict(unit)

    # Ingredients ----------------------------------------------------------

    def list_ingredients(self) -> List[Dict[str, Any]]:
        self.calls.append(("list_ingredients",))
        if self.list_ingredients_error is not None:
            raise self.list_ingredients_error
        return [dict(i) for i in self.ingredients]

    def add_ingredient(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        """Server-side insert that bypasses the call log (another user's session)."""
        ingredient = {"id": self._new_id(), "name": name, "description": description}
        self.ingredients.append(ingredient)
        return ingredient

    def create_ingredient(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        self.calls.append(("create_ingredient", name, description))
        key = name.lower()
        if key in self.fail_ingredient_names:
            raise BackofficeAPIError("Error creating ingredient", operation="create_ingredient",
                                     status_code=500)
        if key in self.race_ingredient_names:
            self.race_ingredient_names.discard(key)
            self.add_ingredient(name)
        if any(i["name"].lower() == key for i in self.ingredients):
            raise BackofficeConflictError(
                f"Ingredient with name '{name}' already exists.",
                operation="create_ingredient",
                status_code=409,
            )
        return dict(self.add_ingredient(name, description))

    # Recipes --------------------------------------------------------------

    def create_recipe(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("create_recipe", data))
        if self.recipe_errors:
            raise self.recipe_errors.pop(0)
        recipe = {"id": self._new_id(), **data}
        self.recipes.append(recipe)
        return recipe


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_client():
    """Empty in-memory back-office."""
    return FakeBackofficeClient()


@pytest.fixture
def seeded_client():
    """Back-office with the seed rows a fresh tenant has."""
    return FakeBackofficeClient(
        units=[
            {"id": 1, "name": "serving", "abbreviation": "srv", "type": "COUNT"},
            {"id": 2, "name": "gram", "abbreviation": "g", "type": "WEIGHT"},
            {"id": 3, "name": "tablespoon", "abbreviation": "tbsp", "type": "VOLUME"},
        ],
        ingredients=[
            {"id": 10, "name": "Tomato", "description": None},
            {"id": 11, "name": "Olive Oil", "description": None},
            {"id": 12, "name": "Salt", "description": None},
        ],
    )


def loaded_cache(client):
    from entity_resolution import ResolutionCache
    cache = ResolutionCache()
    cache.load(client)
    return cache


@pytest.fixture
def make_cache():
    """Build a ResolutionCache loaded from a client (counts as one list call each)."""
    return loaded_cache


# =============================================================================
# Test Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "readonly: marks test as pure logic (no back-office state involved)"
    )
