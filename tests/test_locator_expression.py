import pytest

from uiimprove.errors import LocatorExpressionError
from uiimprove.locator_expression import (
    RegexArg,
    evaluate_locator_expression,
    format_locator_expression,
    is_supported_locator_expression,
    parse_locator_expression,
    quote,
    role_locator_expression,
)


class _RecordingContext:
    def __init__(self, path: tuple[str, ...] = ()) -> None:
        self.path = path

    def __getattr__(self, name: str):
        if name in {"first", "last"}:
            return _RecordingContext((*self.path, name))

        def call(*args, **kwargs):
            rendered = [repr(arg) for arg in args] + [f"{key}={value!r}" for key, value in kwargs.items()]
            return _RecordingContext((*self.path, f"{name}({', '.join(rendered)})"))

        return call


def test_parse_role_chain_with_page_prefix() -> None:
    expression = parse_locator_expression("page.get_by_role('button', name='Save').nth(1)")
    assert expression.members() == ["get_by_role", "nth"]
    assert expression.root.first_arg == "button"
    assert expression.root.option("name") == "Save"
    assert format_locator_expression(expression) == "get_by_role('button', name='Save').nth(1)"


def test_properties_are_kept_as_members() -> None:
    expression = parse_locator_expression('locator("#items li").first')
    assert expression.members() == ["locator", "first"]
    assert expression.calls[1].is_property
    assert format_locator_expression(expression) == "locator('#items li').first"


def test_regex_arguments_are_parsed() -> None:
    expression = parse_locator_expression("get_by_text(re.compile('^Hello', re.IGNORECASE))")
    assert expression.root.first_arg == RegexArg("^Hello", ignore_case=True)
    assert format_locator_expression(expression) == "get_by_text(re.compile('^Hello', re.IGNORECASE))"


def test_nested_locator_arguments_are_parsed() -> None:
    expression = parse_locator_expression("locator('li').filter(has=get_by_text('Milk'))")
    nested = expression.nested()
    assert len(nested) == 1
    assert nested[0].members() == ["get_by_text"]
    assert expression.accessor().name == "locator"


@pytest.mark.parametrize(
    "value",
    [
        "",
        "get_by_role('button'",
        "get_by_role('button').evaluate('1')",
        "locator('#a').nth('x')",
        "locator(selector)",
        "get_by_text(re.compile('a', re.DOTALL))",
        "document.querySelector('#a')",
    ],
)
def test_unsupported_expressions_raise(value: str) -> None:
    with pytest.raises(LocatorExpressionError):
        parse_locator_expression(value)
    assert not is_supported_locator_expression(value)


def test_quote_escapes_single_quotes_and_backslashes() -> None:
    assert quote("it's") == "'it\\'s'"
    assert quote("a\\b") == "'a\\\\b'"
    assert role_locator_expression("button", "Don't") == "get_by_role('button', name='Don\\'t')"


def test_evaluate_walks_the_call_chain() -> None:
    result = evaluate_locator_expression(_RecordingContext(), "get_by_role('link', name='Home').first")
    assert result.path == ("get_by_role('link', name='Home')", "first")


def test_evaluate_compiles_regex_arguments() -> None:
    result = evaluate_locator_expression(_RecordingContext(), "get_by_text(re.compile('^Hi', re.IGNORECASE))")
    assert result.path == ("get_by_text(re.compile('^Hi', re.IGNORECASE))",)
