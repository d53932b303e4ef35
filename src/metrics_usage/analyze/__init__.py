from metrics_usage.analyze.expr import Analyzer, PromQLAnalyzer, new_analyzer
from metrics_usage.analyze.rules import (
    Rule,
    RuleGroup,
    RuleKind,
    RulesAnalysis,
    analyze_rule_groups,
    parse_rule_groups,
)

__all__ = [
    "Analyzer",
    "PromQLAnalyzer",
    "new_analyzer",
    "Rule",
    "RuleGroup",
    "RuleKind",
    "RulesAnalysis",
    "analyze_rule_groups",
    "parse_rule_groups",
]
