"""
Call Inlining.

Substitutes the body of a one-expression method at its call sites::

    class Money:
      def cents(self, rate=100):
        return self.amount * rate

    price.cents()      ->   (price.amount * 100)

Parameters are bound from the receiver (``self``/``cls``), the positional
arguments, the keyword arguments and finally the declared defaults. Every
occurrence of a parameter receives its own deep copy of the bound expression.
"""

from typing import Dict, List, Optional, Sequence

import libcst as cst

from cst_preprocessor.analysis.context import SemanticContext
from cst_preprocessor.analysis.declarations import ParamInfo, collect_params, decorator_names
from cst_preprocessor.analysis.types import ClassRefType
from cst_preprocessor.core.adapters import validate_target
from cst_preprocessor.core.source_unit import SourceUnit
from cst_preprocessor.core.traversal import traverse
from cst_preprocessor.core.tree import deep_copy, iter_tree
from cst_preprocessor.errors import DeclarationNotFoundError
from cst_preprocessor.rules.expressions import fresh_copy, parenthesize, single_expression
from cst_preprocessor.rules.qualify import target_names
from cst_preprocessor.rules.registry import register_rule
from cst_preprocessor.utils.console import log_info, log_warning
from cst_preprocessor.utils.rendering import capture_node_source, flatten_source


def bind_arguments(
  params: Sequence[ParamInfo],
  call: cst.Call,
  receiver: Optional[cst.BaseExpression],
) -> Optional[Dict[str, cst.BaseExpression]]:
  """
  Maps each parameter name to the expression it receives at a call site.

  Args:
      params: Declared parameters, in declaration order.
      call: The call site.
      receiver: Expression bound to the first parameter, or None when the
        call supplies it as an argument (static methods, unbound calls).

  Returns:
      Optional[Dict[str, cst.BaseExpression]]: The bindings, or None when the
      call cannot be mapped (star arguments, unknown or repeated keywords,
      too many arguments, or a parameter left without a value).
  """
  remaining = list(params)
  bound: Dict[str, cst.BaseExpression] = {}
  if receiver is not None:
    if not remaining:
      return None
    bound[remaining.pop(0).name] = receiver

  positional = [p for p in remaining if p.kind == "positional"]
  by_name = {p.name: p for p in remaining}
  next_positional = 0
  for arg in call.args:
    if arg.star:
      return None
    if arg.keyword is None:
      if next_positional >= len(positional):
        return None
      bound[positional[next_positional].name] = arg.value
      next_positional += 1

  for arg in call.args:
    if arg.keyword is None:
      continue
    name = arg.keyword.value
    if name not in by_name or name in bound:
      return None
    bound[name] = arg.value

  for param in remaining:
    if param.name in bound:
      continue
    if param.default is None:
      return None
    bound[param.name] = param.default
  return bound


def substitute(expr: cst.BaseExpression, bindings: Dict[str, cst.BaseExpression]) -> cst.BaseExpression:
  """
  Replaces parameter references in `expr` with copies of their bindings.

  Attribute names and keyword names are not references and are kept.
  """

  def replace(node: cst.CSTNode) -> Optional[cst.CSTNode]:
    if isinstance(node, cst.Attribute):
      return node.with_changes(value=substitute(node.value, bindings))
    if isinstance(node, cst.Arg) and node.keyword is not None:
      return node.with_changes(value=substitute(node.value, bindings))
    if isinstance(node, cst.Name) and node.value in bindings:
      bound = fresh_copy(bindings[node.value])
      if node.lpar:
        bound = bound.with_changes(lpar=[*node.lpar, *bound.lpar], rpar=[*bound.rpar, *node.rpar])
      return bound
    return None

  return traverse(expr, [replace])


def _rebinds_parameters(body: cst.BaseExpression, names: List[str]) -> bool:
  """True if a lambda or comprehension inside `body` binds a parameter name."""
  wanted = set(names)
  for node in iter_tree(body):
    if isinstance(node, cst.Lambda):
      params = {p.name for p in collect_params(node.params)}
      if params & wanted:
        return True
    elif isinstance(node, cst.CompFor) and target_names(node.target) & wanted:
      return True
    elif isinstance(node, cst.NamedExpr) and isinstance(node.target, cst.Name) and node.target.value in wanted:
      return True
  return False


@register_rule("inline_calls")
def inline_calls(units: Sequence[SourceUnit], target: str, member: str) -> None:
  """
  Inlines ``receiver.member(...)`` calls on `target` receivers.

  Args:
      units: Units to rewrite.
      target: Class declaring the method.
      member: Method name, matched case-insensitively.

  Raises:
      InvalidTargetError: If ``target.member`` does not exist.
      DeclarationNotFoundError: If the batch does not declare exactly one
        matching method.
  """
  if not units:
    return
  validate_target(units[0].universe, target, member)
  matches = [match for unit in units for match in unit.find_declarations(target, member)]
  if len(matches) != 1:
    raise DeclarationNotFoundError(target, member, len(matches))
  declaration, declaration_context = matches[0]

  body = single_expression(declaration.body)
  if body is None:
    log_warning(f"Not inlining {target}.{member}: body is not a single expression")
    return
  params = collect_params(declaration.params)
  if any(p.kind in ("star", "star_star") for p in params):
    log_warning(f"Not inlining {target}.{member}: variadic parameters")
    return
  if _rebinds_parameters(body, [p.name for p in params]):
    log_warning(f"Not inlining {target}.{member}: a nested scope rebinds a parameter")
    return

  decorators = decorator_names(declaration, declaration_context.imports)
  is_static = "staticmethod" in decorators
  is_classmethod = "classmethod" in decorators

  for unit in units:

    def inline(node: cst.Call, context: SemanticContext, unit: SourceUnit = unit) -> Optional[cst.BaseExpression]:
      receiver: Optional[cst.BaseExpression] = node.func.value
      if is_static:
        receiver = None
      elif not is_classmethod and isinstance(context.get_type(receiver), ClassRefType):
        # Class.method(obj, ...) passes the instance explicitly.
        receiver = None
      bindings = bind_arguments(params, node, receiver)
      if bindings is None:
        return None

      result = parenthesize(substitute(deep_copy(body), bindings))
      if node.lpar:
        result = result.with_changes(lpar=[*node.lpar, *result.lpar], rpar=[*result.rpar, *node.rpar])
      text = flatten_source(capture_node_source(node.with_changes(lpar=[], rpar=[])))
      log_info(f"{unit.label(node, context)} Inlined {text}")
      return result

    unit.visit_calls(target, member, inline)
