"""
Expression helpers shared by the rewrite rules.
"""

from typing import Optional

import libcst as cst

from cst_preprocessor.core.tree import deep_copy

# Expressions that bind at least as tightly as any operand position.
_ATOMIC = (
  cst.Name,
  cst.Attribute,
  cst.Call,
  cst.Subscript,
  cst.Integer,
  cst.Float,
  cst.Imaginary,
  cst.SimpleString,
  cst.ConcatenatedString,
  cst.FormattedString,
  cst.List,
  cst.Dict,
  cst.Set,
  cst.ListComp,
  cst.DictComp,
  cst.SetComp,
  cst.Ellipsis,
)


def is_atomic(expr: cst.BaseExpression) -> bool:
  """True if `expr` can be used as an operand without parentheses."""
  if expr.lpar:
    return True
  return isinstance(expr, _ATOMIC)


def parenthesize(expr: cst.BaseExpression) -> cst.BaseExpression:
  """Wraps a non-atomic expression in parentheses."""
  if is_atomic(expr):
    return expr
  return expr.with_changes(lpar=[cst.LeftParen()], rpar=[cst.RightParen()])


def fresh_copy(expr: cst.BaseExpression, wrap: bool = True) -> cst.BaseExpression:
  """An independent copy of `expr`, parenthesised when `wrap` is set."""
  copied = deep_copy(expr)
  return parenthesize(copied) if wrap else copied


def single_expression(body: cst.BaseSuite, allow_expression: bool = True) -> Optional[cst.BaseExpression]:
  """
  The expression of a body made of exactly one ``return expr`` or ``expr``.

  A leading docstring is not counted. With `allow_expression` unset only
  ``return expr`` qualifies.

  Args:
      body: A function body.

  Returns:
      Optional[cst.BaseExpression]: The expression, or None if the body has
      any other shape.
  """
  if isinstance(body, cst.SimpleStatementSuite):
    smalls = list(body.body)
  else:
    statements = list(body.body)
    if len(statements) == 2 and _is_docstring(statements[0]):
      statements = statements[1:]
    if len(statements) != 1 or not isinstance(statements[0], cst.SimpleStatementLine):
      return None
    smalls = list(statements[0].body)
  if len(smalls) != 1:
    return None
  small = smalls[0]
  if isinstance(small, cst.Return):
    return small.value
  if allow_expression and isinstance(small, cst.Expr):
    return small.value
  return None


def _is_docstring(stmt: cst.BaseStatement) -> bool:
  return (
    isinstance(stmt, cst.SimpleStatementLine)
    and len(stmt.body) == 1
    and isinstance(stmt.body[0], cst.Expr)
    and isinstance(stmt.body[0].value, (cst.SimpleString, cst.ConcatenatedString))
  )
