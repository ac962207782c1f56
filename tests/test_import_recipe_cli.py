"""Tests for the import_recipe command-line entry point."""

import json

import pytest

import import_recipe
from backoffice_client import BackofficeAPIError

PARSED = {
    "name": "Lemon Tart",
    "instructions": "Bake the shell, fill, chill.",
    "ingredients": [
        {"quantity": 1, "unit": "", "name": "tart shell", "raw": "1 tart shell"},
        {"quantity": 2, "unit": "", "name": "lemons", "raw": "zest and juice of 2 lemons"},
        {"quantity": 100, "unit": "gram", "name": "sugar", "raw": "100 g sugar"},
    ],
}


@pytest.fixture
def recipe_file(tmp_path):
    path = tmp_path / "tart.txt"
    path.write_text("Lemon Tart\n1 tart shell\n2 lemons\n100 g sugar\n", encoding="utf-8")
    return path


@pytest.fixture
def cli_client(seeded_client, monkeypatch):
    seeded_client.parse_result = PARSED
    monkeypatch.setattr(import_recipe, "BackofficeClient", lambda: seeded_client)
    return seeded_client


def test_import_prints_recipe_link(cli_client, recipe_file, capsys):
    assert import_recipe.main([str(recipe_file)]) == 0

    out = capsys.readouterr().out
    recipe_id = cli_client.recipes[0]["id"]
    assert f"/recipes/{recipe_id}" in out
    assert cli_client.closed


def test_skip_db_marks_line_as_text(cli_client, recipe_file):
    assert import_recipe.main([str(recipe_file), "--skip-db", "2"]) == 0

    lines = cli_client.recipes[0]["ingredients"]
    assert lines[1]["isPlaceholder"] is True
    assert lines[1]["displayText"] == "zest and juice of 2 lemons"
    assert lines[0]["isPlaceholder"] is False


def test_out_of_range_skip_db_is_ignored(cli_client, recipe_file, capsys):
    assert import_recipe.main([str(recipe_file), "--skip-db", "9"]) == 0
    assert "--skip-db 9 ignored" in capsys.readouterr().out


def test_dry_run_does_not_create_recipe(cli_client, recipe_file, capsys):
    assert import_recipe.main([str(recipe_file), "--dry-run"]) == 0

    assert cli_client.calls_to("create_recipe") == []
    out = capsys.readouterr().out
    payload = json.loads(out[out.index("{"):out.rindex("}") + 1])
    assert payload["name"] == "Lemon Tart"
    assert len(payload["ingredients"]) == 3


def test_partial_failure_prints_warning(cli_client, recipe_file, capsys):
    cli_client.fail_ingredient_names.add("sugar")
    assert import_recipe.main([str(recipe_file)]) == 0
    assert "added as text: sugar" in capsys.readouterr().out


def test_parse_failure_exits_nonzero(cli_client, recipe_file, capsys):
    cli_client.parse_result = BackofficeAPIError("Error parsing recipe", status_code=500)
    assert import_recipe.main([str(recipe_file)]) == 1
    assert "FAILED" in capsys.readouterr().out


def test_save_failure_exits_nonzero(cli_client, recipe_file):
    cli_client.recipe_errors.append(BackofficeAPIError("Error creating recipe", status_code=500))
    assert import_recipe.main([str(recipe_file)]) == 1


def test_missing_file_exits_nonzero(cli_client, tmp_path):
    assert import_recipe.main([str(tmp_path / "missing.txt")]) == 1
    assert cli_client.calls == []
