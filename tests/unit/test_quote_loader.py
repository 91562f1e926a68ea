"""Tests for famous quote table loader."""

import pytest

from src.core.quote_loader import clear_cache, find_famous_quote, load_famous_quotes


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_cache()
    yield
    clear_cache()


def test_known_persona_has_a_quote():
    quote = find_famous_quote("Dashiell Hammett")

    assert quote.author == "Dashiell Hammett"
    assert quote.quote == "The cheaper the crook, the gaudier the patter."


def test_unknown_persona_has_none():
    assert find_famous_quote("Nobody In Particular") is None


def test_missing_table_is_empty(tmp_path):
    assert load_famous_quotes(tmp_path / "absent.yaml") == {}


def test_values_are_strings(tmp_path):
    path = tmp_path / "famous_quotes.yaml"
    path.write_text("Some Writer: 1984\n")

    assert load_famous_quotes(path) == {"Some Writer": "1984"}
