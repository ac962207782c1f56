"""
Recipe import error taxonomy.

    RecipeImportError
    ├── ParseError                  parser failed; fatal to the import
    ├── UnitResolutionError         internal to UnitResolver, never escapes it
    ├── IngredientResolutionError   caught per line, line becomes text-only
    │   └── IngredientConflictError create hit 409 and the re-query found nothing
    ├── PlaceholderUnavailableError the text-only ingredient could not be obtained
    └── AssemblyError               final recipe could not be persisted
"""

from typing import Any, Dict, Optional


class RecipeImportError(Exception):
    """Base exception for the import pipeline."""


class ParseError(RecipeImportError):
    """The external parser rejected or failed on the raw text."""


class UnitResolutionError(RecipeImportError):
    """A unit could not be created."""

    def __init__(self, unit_text: str, message: str):
        self.unit_text = unit_text
        super().__init__(f"Failed to resolve unit '{unit_text}': {message}")


class IngredientResolutionError(RecipeImportError):
    """An ingredient name could not be matched or created."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(f"Failed to resolve ingredient '{name}': {message}")


class IngredientConflictError(IngredientResolutionError):
    """Creation reported the ingredient exists, but it could not be found afterwards."""


class PlaceholderUnavailableError(RecipeImportError):
    """The shared text-only ingredient could not be found or created."""


class AssemblyError(RecipeImportError):
    """
    The final recipe could not be persisted.

    Attributes:
        payload: The create payload that was rejected (None if assembly itself failed)
        status_code: HTTP status from the back-office, when there was one
    """

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.payload = payload
        self.status_code = status_code
        super().__init__(message)
