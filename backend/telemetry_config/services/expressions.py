"""Syntax checks for value and timestamp expressions.

XPath is compiled with lxml. JSONPath gets a structural check only: a root
`$` followed by `.` or `[`, balanced brackets and quotes, and no whitespace
outside brackets. Member names and filter bodies are not parsed.
"""

from __future__ import annotations

from lxml import etree

from telemetry_config.schemas.catalogs import OriginDocumentFormat

_BRACKETS = {"]": "[", ")": "("}


def expression_kind(document_format: OriginDocumentFormat) -> str:
    return "XPath" if document_format is OriginDocumentFormat.XML else "JSONPath"


def check_expression(document_format: OriginDocumentFormat, expression: str) -> str | None:
    """Return a problem description, or None when the expression suits the format."""
    if document_format is OriginDocumentFormat.XML:
        return _check_xpath(expression)
    return _check_jsonpath(expression)


def _check_xpath(expression: str) -> str | None:
    try:
        etree.XPath(expression)
    except etree.XPathSyntaxError as exc:
        return f"not a valid XPath expression: {exc}"
    return None


def _check_jsonpath(expression: str) -> str | None:
    if not expression.startswith("$"):
        return "JSONPath expressions must start with '$'"
    if expression[1:2] not in ("", ".", "["):
        return "the JSONPath root '$' must be followed by '.' or '['"
    stack: list[str] = []
    quote: str | None = None
    for char in expression:
        if quote is not None:
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char in ("[", "("):
            stack.append(char)
        elif char.isspace() and not stack:
            return "whitespace outside brackets in JSONPath expression"
        elif char in _BRACKETS:
            if not stack or stack.pop() != _BRACKETS[char]:
                return f"unbalanced '{char}' in JSONPath expression"
    if quote is not None:
        return "unterminated string literal in JSONPath expression"
    if stack:
        return f"unclosed '{stack[-1]}' in JSONPath expression"
    return None
