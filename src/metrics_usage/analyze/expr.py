"""
Extraction of metric names from query expressions.

The analyzer is a strategy object: it is built once from the configured
engine name and handed to every component analyzing queries.
"""

from __future__ import annotations

import re
from typing import Protocol

from metrics_usage.core.errors import ConfigurationError, ExpressionParseError

VALID_METRIC_NAME = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")

_STRING = re.compile(r""""(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|`[^`]*`""")
_NAME_MATCHER = re.compile(
    r"""__name__\s*(=~|=)\s*("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')"""
)
_LEGACY_VARIABLE = re.compile(r"\[\[(\w+)(?::\w+)?\]\]")
_SHORT_VARIABLE = re.compile(r"\$(\w+)")
_SELECTOR = re.compile(r"(?<!\$)\{[^{}]*\}")
_RANGE = re.compile(r"\[[^\[\]]*\]")
_MODIFIER = re.compile(
    r"\b(?:by|without|on|ignoring|group_left|group_right)\s*\([^()]*\)",
    re.IGNORECASE,
)
_TOKEN = re.compile(
    r"(?<![\w$:.])"
    r"((?:[a-zA-Z_:]|\$\{\w+(?::\w+)?\}|\$\w+)(?:[a-zA-Z0-9_:]|\$\{\w+(?::\w+)?\}|\$\w+)*)"
    r"(?![\w:$]|\s*\()"
)
_KEYWORDS = frozenset(
    {
        "and",
        "or",
        "unless",
        "by",
        "without",
        "on",
        "ignoring",
        "group_left",
        "group_right",
        "bool",
        "offset",
        "inf",
        "nan",
        "atan2",
    }
)
_BRACKETS = {")": "(", "]": "[", "}": "{"}


class Analyzer(Protocol):
    """Pulls metric names out of a query expression.

    Returns two sets: the valid metric names, and the partial metric names
    (names containing a variable or a regexp).
    """

    def analyze(self, expression: str) -> tuple[set[str], set[str]]: ...


def is_valid_metric_name(name: str) -> bool:
    return VALID_METRIC_NAME.match(name) is not None


def normalize_variables(name: str) -> str:
    """Rewrite ``$var`` and ``[[var]]`` into the ``${var}`` form."""
    name = _LEGACY_VARIABLE.sub(r"${\1}", name)
    return _SHORT_VARIABLE.sub(r"${\1}", name)


def _check_brackets(expression: str) -> None:
    stack: list[str] = []
    for char in expression:
        if char in "([{":
            stack.append(char)
        elif char in _BRACKETS:
            if not stack or stack.pop() != _BRACKETS[char]:
                raise ExpressionParseError("unbalanced brackets", {"expression": expression})
    if stack:
        raise ExpressionParseError("unbalanced brackets", {"expression": expression})


class PromQLAnalyzer:
    """Selector-level analysis of PromQL expressions.

    This is not a full PromQL parser: it finds the names used as vector
    selectors, including ``{__name__=...}`` matchers, and understands the
    dashboard variables Grafana and Perses substitute in queries.
    """

    engine = "promql"

    def analyze(self, expression: str) -> tuple[set[str], set[str]]:
        if not expression.strip():
            raise ExpressionParseError("empty expression")

        metric_names: set[str] = set()
        partial_names: set[str] = set()

        def classify(name: str) -> None:
            if "$" in name or not is_valid_metric_name(name):
                partial_names.add(normalize_variables(name))
            else:
                metric_names.add(name)

        for _, quoted in _NAME_MATCHER.findall(expression):
            classify(quoted[1:-1])

        stripped = _STRING.sub('""', expression)
        _check_brackets(stripped)

        stripped = _LEGACY_VARIABLE.sub(r"${\1}", stripped)
        stripped = _SELECTOR.sub(" ", stripped)
        stripped = _RANGE.sub(" ", stripped)
        stripped = _MODIFIER.sub(" ", stripped)

        for token in _TOKEN.findall(stripped):
            # keywords are case-insensitive in PromQL
            if token.lower() in _KEYWORDS or token.startswith(("$__", "${__")):
                continue
            classify(token)

        return metric_names, partial_names


ENGINES: dict[str, type[PromQLAnalyzer]] = {
    PromQLAnalyzer.engine: PromQLAnalyzer,
}


def new_analyzer(engine: str) -> Analyzer:
    """Build the analyzer for the configured engine."""
    try:
        return ENGINES[engine]()
    except KeyError:
        raise ConfigurationError(
            f"unknown expression engine {engine!r}", {"supported": ", ".join(sorted(ENGINES))}
        ) from None
