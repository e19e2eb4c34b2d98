"""Validation rules for fields."""

from metaforge.validation.rules import RULES, ValidationRule, build_rule, is_empty

__all__ = ["RULES", "ValidationRule", "build_rule", "is_empty"]
