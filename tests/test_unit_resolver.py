"""Tests for UnitResolver and unit type inference."""

import pytest

from entity_resolution import UnitResolver, infer_unit_type
from import_models import UnitType


@pytest.mark.readonly
class TestInferUnitType:

    @pytest.mark.parametrize("token,expected", [
        ("tbsp", UnitType.VOLUME),
        ("Tablespoons", UnitType.VOLUME),
        ("ml", UnitType.VOLUME),
        ("lb", UnitType.WEIGHT),
        ("#", UnitType.WEIGHT),
        ("kg", UnitType.WEIGHT),
        ("clove", UnitType.COUNT),
        ("inch", UnitType.LENGTH),
        ("cm", UnitType.LENGTH),
        ("pinch", UnitType.OTHER),
        ("to taste", UnitType.OTHER),
        ("celsius", UnitType.TEMPERATURE),
    ])
    def test_table_lookup(self, token, expected):
        assert infer_unit_type(token) == expected

    @pytest.mark.parametrize("token,expected", [
        ("heaping cupful", UnitType.VOLUME),
        ("dessertspoon", UnitType.VOLUME),
        ("half-gallon", UnitType.VOLUME),
        ("kilograms-ish", UnitType.WEIGHT),
        ("thin slices", UnitType.COUNT),
    ])
    def test_keyword_inference(self, token, expected):
        assert infer_unit_type(token) == expected

    def test_unknown_token_is_other(self):
        assert infer_unit_type("smidge") == UnitType.OTHER


class TestUnitResolver:

    def test_creates_unit_with_inferred_type(self, fake_client, make_cache):
        resolver = UnitResolver(fake_client, make_cache(fake_client))

        tbsp_id = resolver.resolve("tbsp")
        lb_id = resolver.resolve("lb")
        smidge_id = resolver.resolve("smidge")

        created = {u["id"]: u for u in fake_client.units}
        assert created[tbsp_id]["type"] == "VOLUME"
        assert created[lb_id]["type"] == "WEIGHT"
        assert created[smidge_id]["type"] == "OTHER"

    def test_same_text_twice_creates_once(self, fake_client, make_cache):
        resolver = UnitResolver(fake_client, make_cache(fake_client))

        first = resolver.resolve("cups")
        second = resolver.resolve("cups")

        assert first == second
        assert len(fake_client.calls_to("create_unit")) == 1

    def test_created_name_keeps_casing_and_short_abbreviation(self, fake_client, make_cache):
        resolver = UnitResolver(fake_client, make_cache(fake_client))
        resolver.resolve("  Tbsp ")
        assert fake_client.calls_to("create_unit") == [("create_unit", "Tbsp", "Tbsp", "VOLUME")]

    def test_long_token_has_no_abbreviation(self, fake_client, make_cache):
        resolver = UnitResolver(fake_client, make_cache(fake_client))
        resolver.resolve("handful")
        assert fake_client.calls_to("create_unit") == [("create_unit", "handful", None, "OTHER")]

    def test_exact_match_on_abbreviation(self, seeded_client, make_cache):
        resolver = UnitResolver(seeded_client, make_cache(seeded_client))
        assert resolver.resolve("TBSP") == 3
        assert seeded_client.calls_to("create_unit") == []

    def test_fuzzy_match_by_containment(self, seeded_client, make_cache):
        resolver = UnitResolver(seeded_client, make_cache(seeded_client))
        assert resolver.resolve("tablespoons") == 3
        assert seeded_client.calls_to("create_unit") == []

    def test_exact_match_wins_over_containment(self, fake_client, make_cache):
        fake_client.units = [
            {"id": 1, "name": "cups", "abbreviation": None, "type": "VOLUME"},
            {"id": 2, "name": "cup", "abbreviation": None, "type": "VOLUME"},
        ]
        resolver = UnitResolver(fake_client, make_cache(fake_client))
        assert resolver.resolve("cup") == 2

    def test_whole_reuses_existing_count_unit(self, fake_client, make_cache):
        fake_client.units = [{"id": 7, "name": "Piece", "abbreviation": "pc", "type": "COUNT"}]
        resolver = UnitResolver(fake_client, make_cache(fake_client))
        assert resolver.resolve("whole") == 7
        assert fake_client.calls_to("create_unit") == []

    def test_whole_creates_piece(self, fake_client, make_cache):
        resolver = UnitResolver(fake_client, make_cache(fake_client))
        unit_id = resolver.resolve("whole")
        assert fake_client.calls_to("create_unit") == [("create_unit", "piece", "pc", "COUNT")]
        # Cached for the next line
        assert resolver.resolve("Whole") == unit_id
        assert len(fake_client.calls_to("create_unit")) == 1

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_text_is_whole(self, fake_client, make_cache, text):
        resolver = UnitResolver(fake_client, make_cache(fake_client))
        resolver.resolve(text)
        assert fake_client.calls_to("create_unit")[0][1] == "piece"

    def test_creation_failure_returns_fallback(self, fake_client, make_cache):
        fake_client.fail_unit_names.add("smidge")
        resolver = UnitResolver(fake_client, make_cache(fake_client), fallback_unit_id=99)
        assert resolver.resolve("smidge") == 99

    def test_per_call_fallback_overrides_default(self, fake_client, make_cache):
        fake_client.fail_unit_names.add("piece")
        resolver = UnitResolver(fake_client, make_cache(fake_client), fallback_unit_id=99)
        assert resolver.resolve("", fallback_unit_id=5) == 5

    def test_creation_is_not_retried_on_failure(self, fake_client, make_cache):
        fake_client.fail_unit_names.add("smidge")
        resolver = UnitResolver(fake_client, make_cache(fake_client), fallback_unit_id=99)
        resolver.resolve("smidge")
        resolver.resolve("smidge")
        # No unit conflict recovery: each attempt is a single create call
        assert len(fake_client.calls_to("create_unit")) == 2
        assert fake_client.calls_to("list_units") == [("list_units",)]
