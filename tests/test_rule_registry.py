"""
Tests for the rewrite rule registry.
"""

import pytest

from cst_preprocessor.core.preprocessor import PreProcessor
from cst_preprocessor.rules import get_rule, list_rules, register_rule
from cst_preprocessor.rules.registry import _RULES

BUILTIN_RULES = [
  "comment_out",
  "inline_accessors",
  "inline_calls",
  "narrow_existence_checks",
  "qualify_function_calls",
  "remove_type_from_method_parameters",
]


def test_builtin_rules_are_registered():
  assert set(BUILTIN_RULES) <= set(list_rules())


def test_every_rule_has_an_orchestrator_method():
  for name in BUILTIN_RULES:
    assert callable(getattr(PreProcessor, name))


def test_unknown_rule():
  with pytest.raises(KeyError, match="Known rules"):
    get_rule("nope")


def test_register_custom_rule(make_batch):
  seen = []

  @register_rule("count_units")
  def count_units(units, label):
    seen.append((label, len(units)))

  try:
    processor = make_batch({"a.py": "x = 1\n", "b.py": "y = 2\n"})
    processor.apply("count_units", "batch")
    assert seen == [("batch", 2)]
    assert "count_units" in list_rules()
  finally:
    _RULES.pop("count_units", None)
