#!/usr/bin/env python3
"""
Import a Recipe from Text
=========================

Runs one block of recipe text through the full pipeline:
1. Parse via the back-office parser
2. Mark lines as text-only (optional)
3. Resolve units and ingredients against the catalog
4. Create the recipe

Usage:
    python import_recipe.py recipe.txt
    cat recipe.txt | python import_recipe.py - --use-ai
    python import_recipe.py recipe.txt --skip-db 3 --skip-db 5 --dry-run
"""

import argparse
import json
import sys

from backoffice_client import BackofficeClient
from config import BACKOFFICE_URL
from import_errors import AssemblyError, ParseError
from import_pipeline import RecipeImportSession
from tools.logging_utils import get_logger

logger = get_logger(__name__)


def read_recipe_text(source: str) -> str:
    """Read recipe text from a file path, or stdin for '-'."""
    if source == "-":
        return sys.stdin.read()
    with open(source, "r", encoding="utf-8") as f:
        return f.read()


def print_draft(session: RecipeImportSession) -> None:
    draft = session.draft
    print(f"📄 Recipe: {draft.name or '(unnamed)'}")
    for i, line in enumerate(draft.ingredients, start=1):
        flag = " [text only]" if line.skip_database else ""
        print(f"   {i:>2}. {line.synthesize_display_text()}{flag}")


def mark_text_only(session: RecipeImportSession, line_numbers: list[int]) -> None:
    """Flag 1-based line numbers as text-only; out-of-range numbers are reported and ignored."""
    count = len(session.draft.ingredients)
    for number in line_numbers:
        if 1 <= number <= count:
            session.edit_line(number - 1, skip_database=True)
        else:
            print(f"⚠️ --skip-db {number} ignored (recipe has {count} ingredient lines)")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Import a recipe from unstructured text")
    parser.add_argument("source", help="Text file with the recipe, or '-' for stdin")
    parser.add_argument("--use-ai", action="store_true", help="Use the parser's AI mode")
    parser.add_argument("--skip-db", type=int, action="append", default=[], metavar="LINE",
                        help="Store ingredient LINE (1-based) as text only; repeatable")
    parser.add_argument("--dry-run", action="store_true",
                        help="Resolve ingredients and print the payload without creating the recipe")

    args = parser.parse_args(argv)

    print(f"\n{'='*60}")
    print(f"RECIPE IMPORT")
    print(f"{'='*60}\n")

    try:
        raw_text = read_recipe_text(args.source)
    except OSError as e:
        print(f"❌ Cannot read {args.source}: {e}")
        return 1

    with BackofficeClient() as client:
        session = RecipeImportSession(client)
        try:
            print(f"🔍 Parsing recipe...")
            session.parse(raw_text, use_ai=args.use_ai)
            mark_text_only(session, args.skip_db)
            print_draft(session)

            if args.dry_run:
                result = session.resolve()
                payload = session.assembler.assemble(session.draft, result.resolved, session.yield_unit_id)
                print(json.dumps(payload.to_dict(), indent=2))
                for failure in result.failures:
                    print(f"   ⚠️ {failure.name}: {failure.error}")
                return 0

            imported = session.submit()
        except (ParseError, AssemblyError) as e:
            logger.error(f"Import failed: {e}")
            print(f"\n❌ FAILED: {e}")
            return 1

    print(f"\n{'='*60}")
    print(f"✅ COMPLETE")
    print(f"{'='*60}")
    if imported.warning:
        print(f"⚠️ {imported.warning}")
    print(f"\nView recipe: {BACKOFFICE_URL}/recipes/{imported.recipe_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
