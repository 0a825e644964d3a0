"""
Function Call Qualification.

Rewrites calls to names imported with ``from module import name`` into
attribute calls through a module alias the file already imports::

    import os.path
    from os.path import join

    join(a, b)        ->   os.path.join(a, b)

The rewrite is purely syntactic. A call is left alone when the function name
or the head of the module alias is rebound in any scope visible at the call.
"""

from typing import Dict, List, Optional, Sequence, Set, Tuple

import libcst as cst

from cst_preprocessor.analysis.imports import ImportTable
from cst_preprocessor.core.source_unit import SourceUnit
from cst_preprocessor.core.traversal import traverse
from cst_preprocessor.rules.registry import register_rule
from cst_preprocessor.utils.console import log_info
from cst_preprocessor.utils.rendering import get_full_name


class BindingCollector(cst.CSTVisitor):
  """
  Collects the names bound in one scope body, without entering nested scopes.

  Attributes:
      names (Set[str]): Locally bound names.
      declared_global (Set[str]): Names declared ``global``/``nonlocal``.
  """

  def __init__(self, include_imports: bool = True) -> None:
    self.include_imports = include_imports
    self.names: Set[str] = set()
    self.declared_global: Set[str] = set()

  def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
    self.names.add(node.name.value)
    return False

  def visit_ClassDef(self, node: cst.ClassDef) -> bool:
    self.names.add(node.name.value)
    return False

  def visit_Lambda(self, node: cst.Lambda) -> bool:
    return False

  def visit_ListComp(self, node: cst.ListComp) -> bool:
    return False

  def visit_SetComp(self, node: cst.SetComp) -> bool:
    return False

  def visit_DictComp(self, node: cst.DictComp) -> bool:
    return False

  def visit_GeneratorExp(self, node: cst.GeneratorExp) -> bool:
    return False

  def visit_Global(self, node: cst.Global) -> None:
    self.declared_global.update(item.name.value for item in node.names)

  def visit_Nonlocal(self, node: cst.Nonlocal) -> None:
    self.declared_global.update(item.name.value for item in node.names)

  def visit_AssignTarget(self, node: cst.AssignTarget) -> None:
    self._add_target(node.target)

  def visit_AnnAssign(self, node: cst.AnnAssign) -> None:
    self._add_target(node.target)

  def visit_AugAssign(self, node: cst.AugAssign) -> None:
    self._add_target(node.target)

  def visit_For(self, node: cst.For) -> None:
    self._add_target(node.target)

  def visit_WithItem(self, node: cst.WithItem) -> None:
    if node.asname is not None:
      self._add_target(node.asname.name)

  def visit_NamedExpr(self, node: cst.NamedExpr) -> None:
    self._add_target(node.target)

  def visit_ExceptHandler(self, node: cst.ExceptHandler) -> None:
    if node.name is not None:
      self._add_target(node.name.name)

  def visit_Import(self, node: cst.Import) -> None:
    if not self.include_imports:
      return
    for alias in node.names:
      if alias.asname is not None:
        self._add_target(alias.asname.name)
      else:
        self.names.add(get_full_name(alias.name).split(".")[0])

  def visit_ImportFrom(self, node: cst.ImportFrom) -> None:
    if not self.include_imports or isinstance(node.names, cst.ImportStar):
      return
    for alias in node.names:
      if alias.asname is not None:
        self._add_target(alias.asname.name)
      else:
        self.names.add(get_full_name(alias.name))

  def _add_target(self, target: cst.BaseExpression) -> None:
    if isinstance(target, cst.Name):
      self.names.add(target.value)
    elif isinstance(target, (cst.Tuple, cst.List)):
      for element in target.elements:
        self._add_target(element.value)
    elif isinstance(target, cst.StarredElement):
      self._add_target(target.value)


def bound_names(body: cst.CSTNode, include_imports: bool = True) -> Set[str]:
  """Names bound directly in a scope body (nested scopes excluded)."""
  collector = BindingCollector(include_imports)
  body.visit(collector)
  return collector.names - collector.declared_global


def target_names(target: cst.BaseExpression) -> Set[str]:
  """Names bound by an assignment or loop target."""
  collector = BindingCollector()
  collector._add_target(target)
  return collector.names


def _param_names(params: cst.Parameters) -> Set[str]:
  names = {p.name.value for p in [*params.posonly_params, *params.params, *params.kwonly_params]}
  if isinstance(params.star_arg, cst.Param):
    names.add(params.star_arg.name.value)
  if params.star_kwarg is not None:
    names.add(params.star_kwarg.name.value)
  return names


def qualifiable_names(imports: ImportTable) -> Dict[str, Tuple[str, str]]:
  """
  Maps each from-imported name to ``(module expression, attribute)``.

  Only names whose module is also imported as a module qualify.
  """
  candidates = {}
  for bind_name, full_path in imports.names.items():
    module, _, attr = full_path.rpartition(".")
    alias = imports.module_alias(module) if module else None
    if alias:
      candidates[bind_name] = (alias, attr)
  return candidates


class QualifyPlanner(cst.CSTVisitor):
  """
  Finds the calls to qualify, keyed by node identity.

  Attributes:
      plan (Dict[cst.Call, cst.Attribute]): Call -> qualified function expression.
  """

  def __init__(self, candidates: Dict[str, Tuple[str, str]], module_bindings: Set[str]) -> None:
    self.candidates = candidates
    self.plan: Dict[cst.Call, cst.BaseExpression] = {}
    # (kind, names) from outermost to innermost; kind is "module", "class" or "function"
    self._scopes: List[Tuple[str, Set[str]]] = [("module", module_bindings)]

  def _visible(self, name: str) -> bool:
    innermost = len(self._scopes) - 1
    for i, (kind, names) in enumerate(self._scopes):
      if kind == "class" and i != innermost:
        continue
      if name in names:
        return True
    return False

  def visit_ClassDef(self, node: cst.ClassDef) -> None:
    self._scopes.append(("class", bound_names(node.body)))

  def leave_ClassDef(self, original_node: cst.ClassDef) -> None:
    self._scopes.pop()

  def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
    self._scopes.append(("function", _param_names(node.params) | bound_names(node.body)))

  def leave_FunctionDef(self, original_node: cst.FunctionDef) -> None:
    self._scopes.pop()

  def visit_Lambda(self, node: cst.Lambda) -> None:
    self._scopes.append(("function", _param_names(node.params)))

  def leave_Lambda(self, original_node: cst.Lambda) -> None:
    self._scopes.pop()

  # The element of a comprehension is visited before its for clauses.
  def _enter_comprehension(self, node: cst.BaseComp) -> None:
    names: Set[str] = set()
    clause: Optional[cst.CompFor] = node.for_in
    while clause is not None:
      names |= target_names(clause.target)
      clause = clause.inner_for_in
    self._scopes.append(("function", names))

  def visit_ListComp(self, node: cst.ListComp) -> None:
    self._enter_comprehension(node)

  def leave_ListComp(self, original_node: cst.ListComp) -> None:
    self._scopes.pop()

  def visit_SetComp(self, node: cst.SetComp) -> None:
    self._enter_comprehension(node)

  def leave_SetComp(self, original_node: cst.SetComp) -> None:
    self._scopes.pop()

  def visit_DictComp(self, node: cst.DictComp) -> None:
    self._enter_comprehension(node)

  def leave_DictComp(self, original_node: cst.DictComp) -> None:
    self._scopes.pop()

  def visit_GeneratorExp(self, node: cst.GeneratorExp) -> None:
    self._enter_comprehension(node)

  def leave_GeneratorExp(self, original_node: cst.GeneratorExp) -> None:
    self._scopes.pop()

  def visit_Call(self, node: cst.Call) -> None:
    if not isinstance(node.func, cst.Name):
      return
    name = node.func.value
    if name not in self.candidates:
      return
    alias, attr = self.candidates[name]
    if self._visible(name) or self._visible(alias.split(".")[0]):
      return
    self.plan[node] = cst.Attribute(value=cst.parse_expression(alias), attr=cst.Name(attr))


@register_rule("qualify_function_calls")
def qualify_function_calls(units: Sequence[SourceUnit]) -> None:
  """
  Qualifies calls to from-imported functions through their module alias.

  Args:
      units: Units to rewrite.
  """
  for unit in units:
    candidates = qualifiable_names(unit.imports)
    if not candidates:
      continue
    planner = QualifyPlanner(candidates, bound_names(unit.working, include_imports=False))
    unit.working.visit(planner)
    if not planner.plan:
      continue

    def qualify(node: cst.CSTNode, plan: Dict[cst.Call, cst.BaseExpression] = planner.plan) -> Optional[cst.CSTNode]:
      func = plan.get(node)
      if func is None:
        return None
      # Arguments may hold further planned calls, e.g. join(join(a, b), c).
      return traverse(node.with_changes(func=func), [qualify])

    unit.visit(qualify)
    log_info(f"[{unit.path.name}] Qualified {len(planner.plan)} call(s)")
