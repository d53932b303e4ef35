"""
Turn partial metric names into anchored regular expressions.

A partial metric name is a metric name that still contains a dashboard
variable (``${suffix}``) or a regexp fragment (``.+``/``.*``). Once compiled
it can be matched against the concrete metric names known by the store.
"""

from __future__ import annotations

import re

from metrics_usage.core.errors import PatternCompileError

VARIABLE_PATTERN = re.compile(r"\$\{[a-zA-Z0-9_:]+}")

# '#' is never part of a valid metric name
_WILDCARD = "#"
_WILDCARD_RUN = re.compile(r"#{2,}")


def generate_regexp(partial_metric_name: str) -> re.Pattern[str] | None:
    """Compile a partial metric name into an anchored regexp.

    Returns ``None`` when the name is only made of variables/wildcards, in
    which case it would match every metric and is useless for matching.

    Raises:
        PatternCompileError: the resulting expression is not a valid regexp.
    """
    s = VARIABLE_PATTERN.sub(_WILDCARD, partial_metric_name)
    s = s.replace(".+", _WILDCARD).replace(".*", _WILDCARD)
    # consecutive variables collapse to a single wildcard
    s = _WILDCARD_RUN.sub(_WILDCARD, s)
    if not s or s == _WILDCARD:
        return None

    expression = "^" + s.replace(_WILDCARD, ".+") + "$"
    try:
        return re.compile(expression)
    except re.error as exc:
        raise PatternCompileError(
            "unable to compile the partial metric name into a regexp",
            {"partial_metric": partial_metric_name, "error": str(exc)},
        ) from exc


def is_matching(regexp: re.Pattern[str], metric_name: str) -> bool:
    """Tell whether a concrete metric name is covered by a compiled pattern.

    A plain search is not enough: an expression like ``foo|`` matches any
    string through its empty branch. At least one match must consume
    characters.
    """
    if regexp.search(metric_name) is None:
        return False
    return any(match.group(0) for match in regexp.finditer(metric_name))
