import pytest

from blockflow.utils.retry import compute_backoff
from blockflow.utils.templates import render, resolve_path

OUTPUTS = {
    "fetch": {"status_code": 200, "body": {"items": [{"id": "a1"}, {"id": "b2"}]}},
    "count": {"value": 3},
}


def test_resolve_nested_paths_and_indexes():
    assert resolve_path(OUTPUTS, "fetch.body.items.1.id") == "b2"
    assert resolve_path(OUTPUTS, "fetch.body.items.-1.id") == "b2"
    assert resolve_path(OUTPUTS, "fetch.status_code") == 200


def test_resolve_missing_returns_default():
    assert resolve_path(OUTPUTS, "fetch.body.items.9.id") is None
    assert resolve_path(OUTPUTS, "nope.value", default="n/a") == "n/a"


def test_whole_template_keeps_type():
    assert render("{{count.value}}", OUTPUTS) == 3
    assert render("{{ fetch.body.items }}", OUTPUTS) == OUTPUTS["fetch"]["body"]["items"]


def test_embedded_templates_render_as_text():
    assert render("got {{count.value}} items", OUTPUTS) == "got 3 items"
    assert render("missing [{{ghost.x}}]", OUTPUTS) == "missing []"


def test_expressions_and_filters():
    assert render("{{ fetch.body.items | length }}", OUTPUTS) == 2
    assert render("{{ count.value * 2 }}", OUTPUTS) == 6
    assert render("{{ fetch.status_code == 200 }}", OUTPUTS) is True


def test_ids_that_are_not_identifiers():
    outputs = {"price-feed": {"usd": 3.5}}
    assert render("{{ outputs['price-feed'].usd }}", outputs) == 3.5


def test_missing_whole_template_is_none():
    assert render("{{ ghost.x }}", OUTPUTS) is None
    assert render("{{ fetch.body.items.9.id }}", OUTPUTS) is None


def test_sandbox_hides_internals():
    assert render("{{ count.__class__ }}", OUTPUTS) is None


def test_invalid_template_raises_value_error():
    with pytest.raises(ValueError, match="Invalid template"):
        render("{{ unclosed", OUTPUTS)


def test_plain_strings_untouched():
    assert render("color {#fff}", OUTPUTS) == "color {#fff}"


def test_render_recurses_into_containers():
    value = {"ids": ["{{fetch.body.items.0.id}}", "static"], "n": 1}
    assert render(value, OUTPUTS) == {"ids": ["a1", "static"], "n": 1}


def test_backoff_is_capped():
    assert 1.5 <= compute_backoff(1) <= 2.0
    assert compute_backoff(50) <= 30.5
