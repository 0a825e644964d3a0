"""
Existence Check Narrowing.

Rewrites mapping lookups compared against ``None`` into membership tests::

    cache.get(key) is not None   ->   key in cache
    cache.get(key) is None       ->   key not in cache

The rewrite only fires when the receiver is inferred to be a mapping and the
key has a known scalar type. It changes behaviour for keys present with a
``None`` value, which now count as present.
"""

from typing import Optional, Sequence, Tuple

import libcst as cst

from cst_preprocessor.analysis.context import SemanticContext
from cst_preprocessor.analysis.types import is_dict_like, is_key_type
from cst_preprocessor.core.source_unit import SourceUnit
from cst_preprocessor.rules.expressions import parenthesize
from cst_preprocessor.rules.registry import register_rule
from cst_preprocessor.utils.console import log_info
from cst_preprocessor.utils.rendering import capture_node_source, flatten_source


def existence_check(node: cst.CSTNode) -> Optional[Tuple[cst.BaseExpression, cst.BaseExpression, bool]]:
  """
  Recognises ``m.get(k) is [not] None``.

  Returns:
      Optional[Tuple]: ``(mapping, key, negated)`` where `negated` is True for
      ``is None``, or None if the node has another shape.
  """
  if not isinstance(node, cst.Comparison) or len(node.comparisons) != 1:
    return None
  comparison = node.comparisons[0]
  if not isinstance(comparison.operator, (cst.Is, cst.IsNot)):
    return None
  if not (isinstance(comparison.comparator, cst.Name) and comparison.comparator.value == "None"):
    return None

  call = node.left
  if not (
    isinstance(call, cst.Call)
    and isinstance(call.func, cst.Attribute)
    and call.func.attr.value == "get"
    and len(call.args) == 1
  ):
    return None
  arg = call.args[0]
  if arg.keyword is not None or arg.star:
    return None
  return call.func.value, arg.value, isinstance(comparison.operator, cst.Is)


def membership_test(
  mapping: cst.BaseExpression,
  key: cst.BaseExpression,
  negated: bool,
  template: cst.Comparison,
) -> cst.Comparison:
  """Builds ``key [not] in mapping`` with the parentheses of `template`."""
  operator = cst.NotIn() if negated else cst.In()
  return cst.Comparison(
    left=parenthesize(key),
    comparisons=[cst.ComparisonTarget(operator=operator, comparator=parenthesize(mapping))],
    lpar=template.lpar,
    rpar=template.rpar,
  )


@register_rule("narrow_existence_checks")
def narrow_existence_checks(units: Sequence[SourceUnit]) -> None:
  """
  Replaces ``m.get(k) is [not] None`` with ``k [not] in m`` on typed mappings.

  Args:
      units: Units to rewrite.
  """
  for unit in units:

    def narrow(node: cst.CSTNode, context: SemanticContext, unit: SourceUnit = unit) -> Optional[cst.Comparison]:
      found = existence_check(node)
      if found is None:
        return None
      mapping, key, negated = found
      if not is_dict_like(context.get_type(mapping)):
        return None
      if not is_key_type(context.get_type(key)):
        return None
      log_info(f"{unit.label(node, context)} Narrowed {flatten_source(capture_node_source(node))}")
      return membership_test(mapping, key, negated, node)

    unit.visit_with_scope(narrow)
