"""
Template tokens and path expressions.

Calls may carry ``{{name}}`` placeholders (plain parameters) or
``{{$.results[0].uuid}}`` placeholders (JSONPath expressions evaluated
against the playback context). Any JSONPath understood by jsonpath-ng is
accepted, for example:

    $                    the whole context
    $.results[0].uuid    member and index steps
    $.results[*].uuid    wildcard, first match wins
    $..uuid              recursive descent, first match wins
"""

import re
from functools import lru_cache
from typing import Any, List

from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse as jsonpath_parse

TOKEN_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


class ExpressionError(ValueError):
    """Malformed expression."""


class ExpressionNotFound(LookupError):
    """Expression is well formed but selects nothing."""


def find_tokens(text: str) -> List[str]:
    """Return every token inside ``{{ }}`` in order of appearance."""
    if not isinstance(text, str):
        return []
    return [m.group(1) for m in TOKEN_RE.finditer(text)]


def find_plain_tokens(text: str) -> List[str]:
    """Return parameter tokens, skipping path expressions."""
    return [token for token in find_tokens(text) if not is_expression(token)]


def is_expression(token: str) -> bool:
    return token.startswith("$")


def whole_token(text: str):
    """Return the token if `text` is exactly one placeholder, else None."""
    if not isinstance(text, str):
        return None
    match = TOKEN_RE.fullmatch(text.strip())
    return match.group(1) if match else None


@lru_cache(maxsize=256)
def parse(expression: str):
    """
    Compile a JSONPath expression rooted at ``$``.

    Raises:
        ExpressionError: If the expression is not valid
    """
    expression = expression.strip()
    if not expression.startswith("$"):
        raise ExpressionError(f"Expression must start with '$': {expression}")
    try:
        return jsonpath_parse(expression)
    except JSONPathError as e:
        raise ExpressionError(f"Invalid expression {expression}: {e}") from e


def evaluate(expression: str, document: Any) -> Any:
    """
    Evaluate a path expression against a document.

    Args:
        expression: Expression such as ``$.results[0].uuid``
        document: Context built from parameters and prior results

    Returns:
        The first selected value

    Raises:
        ExpressionError: If the expression is malformed
        ExpressionNotFound: If the expression selects nothing
    """
    matches = parse(expression).find(document)
    if not matches:
        raise ExpressionNotFound(f"{expression}: no match")
    return matches[0].value
