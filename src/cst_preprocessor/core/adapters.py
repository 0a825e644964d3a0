"""
Rule Adapters.

Specialised rules layered on the traversal engine. Each adapter filters the
nodes it is offered and hands the survivors, with their semantic context, to
user callbacks folded first-match-wins:

* `ScopedRule`: any node that has a context; ``callback(node, context)``.
* `CallRule`: ``receiver.member(...)`` calls whose receiver is an instance or
  the class of a target type; ``callback(node, context)``.
* `DeclarationRule`: method declarations;
  ``callback(node, context, class_name, method_name)``.
"""

from typing import Callable, List, Optional, Sequence

import libcst as cst

from cst_preprocessor.analysis.context import SemanticContext
from cst_preprocessor.analysis.declarations import DeclarationUniverse
from cst_preprocessor.analysis.types import NONE_TYPE, ClassRefType, ObjectType, SymbolType, union_members
from cst_preprocessor.core.traversal import Rule, RuleResult
from cst_preprocessor.errors import InvalidTargetError

ContextLookup = Callable[[cst.CSTNode], Optional[SemanticContext]]
ScopedCallback = Callable[[cst.CSTNode, SemanticContext], RuleResult]
DeclarationCallback = Callable[[cst.FunctionDef, SemanticContext, str, str], RuleResult]


def validate_target(universe: DeclarationUniverse, target: str, member: str) -> None:
  """
  Checks that ``target.member`` names a real member.

  Args:
      universe: Declarations of the batch.
      target: Class name (batch simple name or importable dotted path).
      member: Member name, matched case-insensitively.

  Raises:
      InvalidTargetError: If neither the batch nor runtime reflection knows it.
  """
  if not universe.has_member(target, member):
    raise InvalidTargetError(target, member)


def receiver_matches(universe: DeclarationUniverse, receiver: Optional[SymbolType], target: str) -> bool:
  """
  True if a receiver type is the target class (or a subclass), either as an
  instance or as the class itself.

  For unions every member other than ``None`` has to match.
  """
  members = [m for m in union_members(receiver) if m != NONE_TYPE]
  if not members:
    return False
  for member in members:
    if not isinstance(member, (ObjectType, ClassRefType)):
      return False
    if not universe.is_subtype(member.name, target):
      return False
  return True


class ScopedRule(Rule):
  """
  Offers nodes that have a semantic context to scoped callbacks.
  """

  def __init__(self, lookup: ContextLookup, callbacks: Sequence[ScopedCallback]) -> None:
    self.lookup = lookup
    self.callbacks: List[ScopedCallback] = list(callbacks)

  def accepts(self, node: cst.CSTNode) -> bool:
    """Cheap syntactic filter applied before the context lookup."""
    return True

  def enter(self, node: cst.CSTNode) -> RuleResult:
    if not self.accepts(node):
      return None
    context = self.lookup(node)
    if context is None:
      return None
    return self.dispatch(node, context)

  def dispatch(self, node: cst.CSTNode, context: SemanticContext) -> RuleResult:
    for callback in self.callbacks:
      result = callback(node, context)
      if result is not None:
        return result
    return None


class CallRule(ScopedRule):
  """
  Matches ``receiver.member(...)`` where the receiver's inferred type is
  `target` or a subtype of it.
  """

  def __init__(
    self,
    lookup: ContextLookup,
    universe: DeclarationUniverse,
    target: str,
    member: str,
    callbacks: Sequence[ScopedCallback],
  ) -> None:
    super().__init__(lookup, callbacks)
    self.universe = universe
    self.target = target
    self.member = member.lower()

  def accepts(self, node: cst.CSTNode) -> bool:
    return (
      isinstance(node, cst.Call)
      and isinstance(node.func, cst.Attribute)
      and node.func.attr.value.lower() == self.member
    )

  def dispatch(self, node: cst.CSTNode, context: SemanticContext) -> RuleResult:
    receiver = context.get_type(node.func.value)
    if not receiver_matches(self.universe, receiver, self.target):
      return None
    return super().dispatch(node, context)


class DeclarationRule(ScopedRule):
  """
  Matches function declarations made directly in a class body.
  """

  def __init__(self, lookup: ContextLookup, callbacks: Sequence[DeclarationCallback]) -> None:
    super().__init__(lookup, [])
    self.declaration_callbacks: List[DeclarationCallback] = list(callbacks)

  def accepts(self, node: cst.CSTNode) -> bool:
    return isinstance(node, cst.FunctionDef)

  def dispatch(self, node: cst.CSTNode, context: SemanticContext) -> RuleResult:
    if not context.in_class_body or context.class_info is None:
      return None
    for callback in self.declaration_callbacks:
      result = callback(node, context, context.class_info.name, node.name.value)
      if result is not None:
        return result
    return None
