from __future__ import annotations

import ast
from dataclasses import dataclass
import re
from typing import TYPE_CHECKING, Any, Union

from .errors import LocatorExpressionError

if TYPE_CHECKING:
    from playwright.sync_api import FrameLocator, Page

    LocatorContext = Union[Page, FrameLocator]

ROOT_METHODS = (
    "locator",
    "get_by_role",
    "get_by_text",
    "get_by_label",
    "get_by_placeholder",
    "get_by_alt_text",
    "get_by_title",
    "get_by_test_id",
    "frame_locator",
)
CHAIN_METHODS = (*ROOT_METHODS, "nth", "filter", "and_", "or_")
CHAIN_PROPERTIES = ("first", "last", "content_frame", "owner")
POSITIONAL_MEMBERS = ("nth", "first", "last")
ACCESSOR_METHODS = tuple(name for name in ROOT_METHODS if name != "frame_locator")

_ROOT_OBJECT_NAMES = {"page", "frame"}
_EXPRESSION_HINT = (
    "Use a Playwright locator chain such as get_by_role('button', name='Save') "
    "or locator('#id').first."
)


@dataclass(frozen=True, slots=True)
class RegexArg:
    pattern: str
    ignore_case: bool = False

    def compile(self) -> re.Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE if self.ignore_case else 0)


@dataclass(frozen=True, slots=True)
class LocatorCall:
    name: str
    args: tuple[Any, ...] = ()
    kwargs: tuple[tuple[str, Any], ...] = ()
    is_property: bool = False

    def option(self, key: str, default: Any = None) -> Any:
        for name, value in self.kwargs:
            if name == key:
                return value
        return default

    @property
    def first_arg(self) -> Any:
        return self.args[0] if self.args else None


@dataclass(frozen=True, slots=True)
class LocatorExpression:
    calls: tuple[LocatorCall, ...]

    @property
    def root(self) -> LocatorCall:
        return self.calls[0]

    def members(self) -> list[str]:
        return [call.name for call in self.calls]

    def accessor(self) -> LocatorCall | None:
        for call in reversed(self.calls):
            if call.name in ACCESSOR_METHODS:
                return call
        return None

    def nested(self) -> list[LocatorExpression]:
        out: list[LocatorExpression] = []
        for call in self.calls:
            values = [*call.args, *(value for _name, value in call.kwargs)]
            out.extend(value for value in values if isinstance(value, LocatorExpression))
        return out


def quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")
    return f"'{escaped}'"


def regex_literal(pattern: str, ignore_case: bool = True) -> str:
    if ignore_case:
        return f"re.compile({quote(pattern)}, re.IGNORECASE)"
    return f"re.compile({quote(pattern)})"


def format_value(value: Any) -> str:
    if isinstance(value, str):
        return quote(value)
    if isinstance(value, bool) or value is None:
        return repr(value)
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, RegexArg):
        return regex_literal(value.pattern, value.ignore_case)
    if isinstance(value, LocatorExpression):
        return format_locator_expression(value)
    raise LocatorExpressionError(f"Unsupported locator argument: {value!r}", _EXPRESSION_HINT)


def format_locator_expression(expression: LocatorExpression) -> str:
    parts: list[str] = []
    for index, call in enumerate(expression.calls):
        prefix = "" if index == 0 else "."
        if call.is_property:
            parts.append(f"{prefix}{call.name}")
            continue
        rendered = [format_value(value) for value in call.args]
        rendered.extend(f"{name}={format_value(value)}" for name, value in call.kwargs)
        parts.append(f"{prefix}{call.name}({', '.join(rendered)})")
    return "".join(parts)


def role_locator_expression(role: str, name: str) -> str:
    return f"get_by_role({quote(role)}, name={quote(name)})"


def text_locator_expression(text: str) -> str:
    return f"get_by_text({quote(text)})"


def parse_locator_expression(value: str) -> LocatorExpression:
    text = value.strip()
    if not text:
        raise LocatorExpressionError("Locator expression is empty.", _EXPRESSION_HINT)
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        raise LocatorExpressionError(f"Invalid locator expression: {value}", _EXPRESSION_HINT) from exc
    return _parse_chain(tree.body, value)


def try_parse_locator_expression(value: str) -> LocatorExpression | None:
    try:
        return parse_locator_expression(value)
    except LocatorExpressionError:
        return None


def is_supported_locator_expression(value: str) -> bool:
    return try_parse_locator_expression(value) is not None


def evaluate_locator_expression(context: LocatorContext, value: str | LocatorExpression) -> Any:
    expression = parse_locator_expression(value) if isinstance(value, str) else value
    current: Any = context
    for call in expression.calls:
        member = getattr(current, call.name)
        if call.is_property:
            current = member
            continue
        args = [_runtime_value(context, item) for item in call.args]
        kwargs = {name: _runtime_value(context, item) for name, item in call.kwargs}
        current = member(*args, **kwargs)
    return current


def _runtime_value(context: LocatorContext, value: Any) -> Any:
    if isinstance(value, RegexArg):
        return value.compile()
    if isinstance(value, LocatorExpression):
        return evaluate_locator_expression(context, value)
    return value


def _parse_chain(node: ast.expr, source: str) -> LocatorExpression:
    calls: list[LocatorCall] = []
    current = node
    while True:
        if isinstance(current, ast.Call):
            func = current.func
            if isinstance(func, ast.Name):
                calls.append(_build_call(func.id, current, source, root=True))
                break
            if isinstance(func, ast.Attribute):
                if isinstance(func.value, ast.Name) and func.value.id in _ROOT_OBJECT_NAMES:
                    calls.append(_build_call(func.attr, current, source, root=True))
                    break
                calls.append(_build_call(func.attr, current, source, root=False))
                current = func.value
                continue
        elif isinstance(current, ast.Attribute) and current.attr in CHAIN_PROPERTIES:
            calls.append(LocatorCall(current.attr, is_property=True))
            current = current.value
            continue
        raise LocatorExpressionError(f"Unsupported locator expression shape: {source}", _EXPRESSION_HINT)
    calls.reverse()
    return LocatorExpression(tuple(calls))


def _build_call(name: str, node: ast.Call, source: str, *, root: bool) -> LocatorCall:
    allowed = ROOT_METHODS if root else CHAIN_METHODS
    if name not in allowed:
        raise LocatorExpressionError(f"Unsupported locator method '{name}' in: {source}", _EXPRESSION_HINT)
    args = tuple(_literal(arg, source) for arg in node.args)
    kwargs: list[tuple[str, Any]] = []
    for keyword in node.keywords:
        if keyword.arg is None:
            raise LocatorExpressionError(f"Keyword unpacking is not supported in: {source}", _EXPRESSION_HINT)
        kwargs.append((keyword.arg, _literal(keyword.value, source)))
    if name == "nth" and (len(args) != 1 or isinstance(args[0], bool) or not isinstance(args[0], int)):
        raise LocatorExpressionError(f"nth() expects one integer index in: {source}", _EXPRESSION_HINT)
    return LocatorCall(name, args, tuple(kwargs))


def _literal(node: ast.expr, source: str) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (str, int, float, bool)):
        return node.value
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub):
        operand = _literal(node.operand, source)
        if isinstance(operand, (int, float)) and not isinstance(operand, bool):
            return -operand
    if isinstance(node, ast.Call) and _is_re_member(node.func, "compile"):
        return _regex_literal(node, source)
    if isinstance(node, (ast.Call, ast.Attribute)):
        return _parse_chain(node, source)
    raise LocatorExpressionError(f"Unsupported locator argument in: {source}", _EXPRESSION_HINT)


def _regex_literal(node: ast.Call, source: str) -> RegexArg:
    if node.keywords or not 1 <= len(node.args) <= 2:
        raise LocatorExpressionError(f"Unsupported re.compile() call in: {source}", _EXPRESSION_HINT)
    pattern = node.args[0]
    if not isinstance(pattern, ast.Constant) or not isinstance(pattern.value, str):
        raise LocatorExpressionError(f"re.compile() expects a string pattern in: {source}", _EXPRESSION_HINT)
    ignore_case = False
    if len(node.args) == 2:
        flag = node.args[1]
        if not (_is_re_member(flag, "IGNORECASE") or _is_re_member(flag, "I")):
            raise LocatorExpressionError(f"Only re.IGNORECASE is supported in: {source}", _EXPRESSION_HINT)
        ignore_case = True
    return RegexArg(pattern.value, ignore_case)


def _is_re_member(node: ast.expr, name: str) -> bool:
    return isinstance(node, ast.Attribute) and node.attr == name and isinstance(node.value, ast.Name) and node.value.id == "re"
