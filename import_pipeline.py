#!/usr/bin/env python3
"""
Recipe Import Pipeline
======================

Turns a parsed draft recipe into a persisted recipe whose ingredient lines
point at canonical units and ingredients.

Flow:
    raw text --parse--> DraftRecipe --(review edits)--> LineProcessor
        --> RecipeAssembler --> POST /recipes --> ImportResult

Guarantees:
- Lines are resolved one after another, never concurrently. The session
  cache is only correct if each lookup sees every earlier creation, which
  is what keeps two "cups" lines from creating two "cups" units.
- Every draft line yields exactly one resolved line. A line whose
  ingredient cannot be resolved is stored as text against the shared
  placeholder ingredient and reported as a non-fatal failure.
- Only parse and final-persistence errors reach the caller. After a
  persistence failure the resolved lines are kept, so a retry does not
  resolve anything again.

Usage:
    with BackofficeClient() as client:
        session = RecipeImportSession(client)
        session.parse(text)
        session.edit_line(2, skip_database=True)
        result = session.submit()
        if result.warning:
            print(result.warning)
"""

import dataclasses
from typing import Any, Dict, List, Optional

from backoffice_client import BackofficeClient, BackofficeClientError
from config import IMPORT_DEFAULTS
from entity_resolution import (
    IngredientResolver,
    PlaceholderProvider,
    ResolutionCache,
    UnitResolver,
)
from import_errors import (
    AssemblyError,
    IngredientResolutionError,
    ParseError,
    PlaceholderUnavailableError,
)
from import_models import (
    DEFAULT_QUANTITY,
    LINE_TYPE_INGREDIENT,
    LINE_TYPE_SUB_RECIPE,
    DraftIngredientLine,
    DraftRecipe,
    EntityId,
    ImportResult,
    LineFailure,
    LineProcessingResult,
    RecipeCreatePayload,
    ResolvedLine,
    coerce_quantity,
)
from tools.logging_utils import get_logger
from utils.recipe_validation import validate_parsed_draft, validate_recipe_payload

logger = get_logger(__name__)


# =============================================================================
# LINE PROCESSOR
# =============================================================================

class LineProcessor:
    """Resolve draft lines, in order, into ResolvedLines plus a failure list."""

    def __init__(
        self,
        unit_resolver: UnitResolver,
        ingredient_resolver: IngredientResolver,
        placeholder_provider: PlaceholderProvider,
        yield_fallback_unit_id: Optional[EntityId] = None,
    ):
        self.unit_resolver = unit_resolver
        self.ingredient_resolver = ingredient_resolver
        self.placeholder_provider = placeholder_provider
        self.yield_fallback_unit_id = (
            yield_fallback_unit_id if yield_fallback_unit_id is not None
            else IMPORT_DEFAULTS["default_yield_unit_id"]
        )

    def process_all(self, lines: List[DraftIngredientLine]) -> LineProcessingResult:
        result = LineProcessingResult()
        for order, line in enumerate(lines):
            result.resolved.append(self.process_line(line, order, result.failures))
        if result.failures:
            logger.warning(f"⚠️ {len(result.failures)} of {len(lines)} lines stored as text only")
        logger.info(f"Resolved {len(result.resolved)} ingredient lines")
        return result

    def process_line(self, line: DraftIngredientLine, order: int,
                     failures: List[LineFailure]) -> ResolvedLine:
        """Resolve one line. Appends to `failures` instead of raising."""
        unit_id = self.unit_resolver.resolve(line.effective_unit_text)
        quantity = line.quantity_value

        if line.skip_database:
            return self._placeholder_line(line, order, unit_id, quantity, failures)

        if line.type == LINE_TYPE_SUB_RECIPE and line.sub_recipe_id is not None:
            return ResolvedLine(
                order=order, quantity=quantity, unit_id=unit_id,
                type=LINE_TYPE_SUB_RECIPE, sub_recipe_id=line.sub_recipe_id,
            )

        try:
            ingredient_id = self.ingredient_resolver.resolve(line.name)
        except IngredientResolutionError as e:
            logger.warning(f"⚠️ Line {order + 1} ({line.label}) stored as text: {e}")
            failures.append(LineFailure(name=line.label, error=str(e), order=order))
            return self._placeholder_line(line, order, unit_id, quantity, failures)

        return ResolvedLine(order=order, quantity=quantity, unit_id=unit_id, ingredient_id=ingredient_id)

    def _placeholder_line(self, line: DraftIngredientLine, order: int, unit_id: EntityId,
                          quantity: Any, failures: List[LineFailure]) -> ResolvedLine:
        try:
            ingredient_id = self.placeholder_provider.get_placeholder_id()
        except PlaceholderUnavailableError as e:
            # Line is still emitted; RecipeAssembler refuses to submit it
            logger.error(f"❌ Line {order + 1} ({line.label}) has no placeholder: {e}")
            ingredient_id = None
            if not any(f.order == order for f in failures):
                failures.append(LineFailure(name=line.label, error=str(e), order=order))
        return ResolvedLine(
            order=order, quantity=quantity, unit_id=unit_id,
            type=LINE_TYPE_INGREDIENT, ingredient_id=ingredient_id,
            display_text=line.synthesize_display_text(), is_placeholder=True,
        )

    def resolve_yield_unit(self, yield_unit_text: Optional[str]) -> EntityId:
        """Resolve the recipe yield unit once; the "serving" unit when absent or unresolvable."""
        if not (yield_unit_text or "").strip():
            return self.yield_fallback_unit_id
        return self.unit_resolver.resolve(yield_unit_text, fallback_unit_id=self.yield_fallback_unit_id)


# =============================================================================
# RECIPE ASSEMBLER
# =============================================================================

class RecipeAssembler:
    """Build the create-recipe payload and persist it with a single call."""

    def __init__(self, client: BackofficeClient, default_category_id: Optional[EntityId] = None):
        self.client = client
        self.default_category_id = (
            default_category_id if default_category_id is not None
            else IMPORT_DEFAULTS["default_category_id"]
        )

    def assemble(self, draft: DraftRecipe, resolved_lines: List[ResolvedLine],
                 yield_unit_id: EntityId) -> RecipeCreatePayload:
        return RecipeCreatePayload(
            name=draft.name.strip(),
            description=draft.description or "",
            instructions=draft.instructions or "",
            yield_quantity=coerce_quantity(draft.yield_quantity),
            yield_unit_id=yield_unit_id,
            prep_time_minutes=draft.prep_time_minutes or 0,
            cook_time_minutes=draft.cook_time_minutes or 0,
            tags=list(draft.tags),
            category_id=draft.category_id if draft.category_id is not None else self.default_category_id,
            ingredients=sorted(resolved_lines, key=lambda line: line.order),
        )

    def submit(self, payload: RecipeCreatePayload) -> Dict[str, Any]:
        """
        Persist the recipe.

        Raises:
            AssemblyError: payload invalid, or the back-office rejected it
        """
        data = payload.to_dict()
        is_valid, errors = validate_recipe_payload(data)
        if not is_valid:
            raise AssemblyError(f"Recipe '{payload.name}' is not ready to save: {'; '.join(errors)}",
                                payload=data)

        try:
            recipe = self.client.create_recipe(data)
        except BackofficeClientError as e:
            logger.error(f"❌ Failed to create recipe '{payload.name}': {e}")
            raise AssemblyError(
                f"Failed to create recipe '{payload.name}': {e}",
                payload=data,
                status_code=getattr(e, "status_code", None),
            ) from e

        logger.info(f"✅ Created recipe '{payload.name}' (id: {recipe.get('id')}) "
                    f"with {len(payload.ingredients)} ingredients")
        return recipe


def summarize_failures(failures: List[LineFailure]) -> Optional[str]:
    """User-facing, non-fatal summary of lines that were stored as text."""
    if not failures:
        return None
    names = ", ".join(f.name for f in sorted(failures, key=lambda f: f.order))
    noun = "ingredient" if len(failures) == 1 else "ingredients"
    return (f"Recipe imported; {len(failures)} {noun} could not be matched "
            f"and were added as text: {names}")


# =============================================================================
# IMPORT SESSION
# =============================================================================

class RecipeImportSession:
    """
    One import, from raw text to a saved recipe.

    Owns the resolution cache and the resolvers, so nothing learned here
    leaks into other imports. States: empty -> parsed (review) ->
    resolved -> saved; a failed save returns to review with the resolved
    lines kept.
    """

    def __init__(self, client: BackofficeClient, cache: Optional[ResolutionCache] = None):
        self.client = client
        self.cache = cache or ResolutionCache()
        self.placeholder_provider = PlaceholderProvider(client, self.cache)
        self.unit_resolver = UnitResolver(client, self.cache)
        self.ingredient_resolver = IngredientResolver(
            client, self.cache, excluded_names=[self.placeholder_provider.name]
        )
        self.processor = LineProcessor(self.unit_resolver, self.ingredient_resolver, self.placeholder_provider)
        self.assembler = RecipeAssembler(client)

        self.draft: Optional[DraftRecipe] = None
        self.result: Optional[LineProcessingResult] = None
        self.yield_unit_id: Optional[EntityId] = None
        self.last_error: Optional[AssemblyError] = None
        self.saved: Optional[ImportResult] = None

    # -------------------------------------------------------------------------
    # Parse
    # -------------------------------------------------------------------------

    def parse(self, raw_text: str, use_ai: bool = False) -> DraftRecipe:
        """
        Run the external parser.

        Raises:
            ParseError: empty text, parser failure, or output that is not a recipe
        """
        if not (raw_text or "").strip():
            raise ParseError("Please paste a recipe to import")
        try:
            data = self.client.parse_recipe(raw_text, use_ai=use_ai)
        except BackofficeClientError as e:
            raise ParseError(f"Failed to parse recipe: {e}") from e

        is_valid, errors = validate_parsed_draft(data)
        if not is_valid:
            raise ParseError(f"Parser output is not a recipe: {'; '.join(errors)}")

        draft = DraftRecipe.from_dict(data)
        logger.info(f"Parsed recipe '{draft.name}' with {len(draft.ingredients)} ingredient lines")
        return self.load_draft(draft)

    def load_draft(self, draft: DraftRecipe) -> DraftRecipe:
        self.draft = draft
        self._invalidate()
        return draft

    # -------------------------------------------------------------------------
    # Review hooks
    # -------------------------------------------------------------------------

    def edit_line(self, index: int, **changes) -> DraftIngredientLine:
        """Replace line `index` with a copy carrying `changes` (field names of DraftIngredientLine)."""
        draft = self._require_draft()
        updated = dataclasses.replace(draft.ingredients[index], **changes)
        draft.ingredients[index] = updated
        self._invalidate()
        return updated

    def delete_line(self, index: int) -> DraftIngredientLine:
        draft = self._require_draft()
        removed = draft.ingredients.pop(index)
        self._invalidate()
        return removed

    def add_line(self, line: Optional[DraftIngredientLine] = None, index: Optional[int] = None) -> DraftIngredientLine:
        draft = self._require_draft()
        line = line or DraftIngredientLine(quantity=DEFAULT_QUANTITY)
        if index is None:
            draft.ingredients.append(line)
        else:
            draft.ingredients.insert(index, line)
        self._invalidate()
        return line

    # -------------------------------------------------------------------------
    # Resolve & submit
    # -------------------------------------------------------------------------

    @property
    def is_resolved(self) -> bool:
        return self.result is not None

    def resolve(self) -> LineProcessingResult:
        """Resolve every line (once; kept until the draft is edited)."""
        draft = self._require_draft()
        if self.result is not None:
            return self.result

        if not self.cache.loaded:
            self.cache.load(self.client)

        self.yield_unit_id = self.processor.resolve_yield_unit(draft.yield_unit_text)
        # Snapshot: lines are frozen and the list is copied, so later edits
        # cannot reach the batch being resolved
        self.result = self.processor.process_all(list(draft.ingredients))
        return self.result

    def submit(self) -> ImportResult:
        """
        Resolve (if needed), assemble and persist.

        Raises:
            AssemblyError: persistence failed; resolutions are kept for a retry
        """
        draft = self._require_draft()
        result = self.resolve()
        payload = self.assembler.assemble(draft, result.resolved, self.yield_unit_id)
        try:
            recipe = self.assembler.submit(payload)
        except AssemblyError as e:
            self.last_error = e
            raise

        self.last_error = None
        self.saved = ImportResult(
            recipe=recipe,
            failures=list(result.failures),
            warning=summarize_failures(result.failures),
        )
        if self.saved.warning:
            logger.warning(f"⚠️ {self.saved.warning}")
        return self.saved

    def _require_draft(self) -> DraftRecipe:
        if self.draft is None:
            raise ParseError("No draft recipe loaded; parse recipe text first")
        return self.draft

    def _invalidate(self) -> None:
        self.result = None
        self.yield_unit_id = None


def import_recipe_text(client: BackofficeClient, raw_text: str, use_ai: bool = False) -> ImportResult:
    """Parse, resolve and save in one go (no review step)."""
    session = RecipeImportSession(client)
    session.parse(raw_text, use_ai=use_ai)
    return session.submit()
