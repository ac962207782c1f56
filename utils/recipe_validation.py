"""Recipe validation functions shared by the import pipeline and CLI."""

from typing import Any, Dict, List, Tuple

# Parser output that means "nothing was detected", not real content
ERROR_PLACEHOLDERS = [
    "could not detect ingredients",
    "could not detect instructions",
    "no ingredients found",
    "no instructions found",
]


def _is_error_placeholder(text: str) -> bool:
    """Check if text is an error placeholder, not real content."""
    if not text:
        return False
    text_lower = text.strip().lower()
    return any(placeholder in text_lower for placeholder in ERROR_PLACEHOLDERS)


def _has_text(value: Any) -> bool:
    text = str(value).strip() if value else ""
    return bool(text) and not _is_error_placeholder(text)


def validate_recipe_payload(payload: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate a recipe create payload before it is sent.

    Rules (mirroring what recipe persistence rejects):
    - name and instructions must be present
    - every ingredient line needs exactly one of ingredientId/subRecipeId
    - every ingredient line needs a unitId and a positive quantity

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []

    if not _has_text(payload.get("name")):
        errors.append("Recipe name is empty")
    if not _has_text(payload.get("instructions")):
        errors.append("Recipe instructions are empty")

    ingredients = payload.get("ingredients", [])
    if not isinstance(ingredients, list):
        errors.append(f"ingredients is not a list: {type(ingredients).__name__}")
        return (False, errors)

    for i, line in enumerate(ingredients):
        label = line.get("displayText") or f"line {i + 1}"
        has_ingredient = line.get("ingredientId") is not None
        has_sub_recipe = line.get("subRecipeId") is not None
        if has_ingredient == has_sub_recipe:
            errors.append(f"Ingredient {i + 1} ({label}) needs exactly one of ingredientId/subRecipeId")
        if line.get("unitId") is None:
            errors.append(f"Ingredient {i + 1} ({label}) has no unitId")
        quantity = line.get("quantity")
        if not isinstance(quantity, (int, float)) or quantity <= 0:
            errors.append(f"Ingredient {i + 1} ({label}) has invalid quantity: {quantity!r}")

    return (len(errors) == 0, errors)


def validate_parsed_draft(draft: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Check that parser output looks like a recipe at all.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors: List[str] = []
    if not isinstance(draft, dict):
        return (False, [f"Parser returned {type(draft).__name__}, expected an object"])
    if not _has_text(draft.get("name")) and not draft.get("ingredients"):
        errors.append("Parser found neither a recipe name nor ingredients")
    ingredients = draft.get("ingredients", [])
    if ingredients is not None and not isinstance(ingredients, list):
        errors.append(f"ingredients is not a list: {type(ingredients).__name__}")
    return (len(errors) == 0, errors)
