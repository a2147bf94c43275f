"""
Business rules applied after a purchase order has been matched.
"""

from .rule_engine import (
    OutcomeKind, Rule, RuleField, RuleOutcome, ToleranceRule, ToleranceRuleEngine
)

__all__ = [
    "OutcomeKind",
    "Rule",
    "RuleField",
    "RuleOutcome",
    "ToleranceRule",
    "ToleranceRuleEngine"
]
