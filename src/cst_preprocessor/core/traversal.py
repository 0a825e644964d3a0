"""
Traversal Engine.

Walks a tree depth-first, parents before children, and offers every node to
an ordered chain of rules. The first rule returning something other than
``None`` decides what happens to the node:

* ``None``: no change, descend into the children.
* a ``CSTNode``: replace the node; the replacement is not descended into.
  Returning the visited node itself keeps it and skips its children.
* ``VisitAction.REMOVE``: drop the node from its parent.
* ``VisitAction.SKIP_CHILDREN``: keep the node, do not descend.
* ``VisitAction.STOP``: keep the node and end the whole traversal.

The input tree is never modified. Parents of changed children are rebuilt
with ``with_changes``; untouched subtrees are shared with the input.
"""

import dataclasses
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence, Union

import libcst as cst

from cst_preprocessor.core.tree import child_slots
from cst_preprocessor.enums import VisitAction
from cst_preprocessor.errors import TraversalError

RuleResult = Union[None, cst.CSTNode, VisitAction]
NodeCallable = Callable[[cst.CSTNode], RuleResult]
ReplaceHook = Callable[[cst.CSTNode, Optional[cst.CSTNode]], None]
RebuildHook = Callable[[cst.CSTNode, cst.CSTNode], None]


class Rule(ABC):
  """
  Abstract contract for one traversal rule.

  Rules are offered nodes in traversal order and answer with a `RuleResult`.
  """

  @abstractmethod
  def enter(self, node: cst.CSTNode) -> RuleResult:
    """
    Inspects a node.

    Args:
        node: The node being visited (a node of the input tree).

    Returns:
        RuleResult: ``None`` to decline, otherwise the action to take.
    """


class CallbackRule(Rule):
  """Adapts a plain ``node -> result`` callable to the `Rule` contract."""

  def __init__(self, callback: NodeCallable) -> None:
    self.callback = callback

  def enter(self, node: cst.CSTNode) -> RuleResult:
    return self.callback(node)


def as_rule(rule: Union[Rule, NodeCallable]) -> Rule:
  """Wraps callables, returns rules unchanged."""
  if isinstance(rule, Rule):
    return rule
  if callable(rule):
    return CallbackRule(rule)
  raise TypeError(f"Expected a Rule or a callable, got {type(rule).__name__}")


class RuleChain(Rule):
  """
  An ordered list of rules folded first-match-wins.
  """

  def __init__(self, rules: Sequence[Union[Rule, NodeCallable]]) -> None:
    """
    Args:
        rules: Rules in registration order.
    """
    self.rules: List[Rule] = [as_rule(r) for r in rules]

  def enter(self, node: cst.CSTNode) -> RuleResult:
    for rule in self.rules:
      result = rule.enter(node)
      if result is not None:
        return result
    return None


class Traverser:
  """
  Applies a rule chain to a tree.

  Attributes:
      chain (RuleChain): The rules, in precedence order.
      on_replace (Optional[ReplaceHook]): Called with ``(old, new)`` whenever
        a rule replaces a node, and ``(old, None)`` when it removes one.
      on_rebuild (Optional[RebuildHook]): Called with ``(old, new)`` whenever
        a parent is rebuilt because one of its children changed.
  """

  def __init__(
    self,
    rules: Sequence[Union[Rule, NodeCallable]],
    on_replace: Optional[ReplaceHook] = None,
    on_rebuild: Optional[RebuildHook] = None,
  ) -> None:
    self.chain = RuleChain(rules)
    self.on_replace = on_replace
    self.on_rebuild = on_rebuild
    self._stopped = False

  def run(self, tree: cst.CSTNode) -> cst.CSTNode:
    """
    Traverses a tree and returns the rewritten tree.

    Args:
        tree: The input tree. It is not modified.

    Returns:
        cst.CSTNode: The new tree, sharing unchanged subtrees with the input.

    Raises:
        TraversalError: If a rule removes the root or a required child.
    """
    self._stopped = False
    result = self._walk(tree)
    if result is VisitAction.REMOVE:
      raise TraversalError("Cannot remove the root node", type(tree).__name__)
    return result

  def _walk(self, node: cst.CSTNode) -> Union[cst.CSTNode, VisitAction]:
    action = self.chain.enter(node)
    if action is None:
      return self._descend(node)
    if isinstance(action, cst.CSTNode):
      if action is not node and self.on_replace is not None:
        self.on_replace(node, action)
      return action
    if action is VisitAction.REMOVE:
      if self.on_replace is not None:
        self.on_replace(node, None)
      return VisitAction.REMOVE
    if action is VisitAction.STOP:
      self._stopped = True
      return node
    if action is VisitAction.SKIP_CHILDREN:
      return node
    raise TraversalError(f"Unsupported rule result {action!r}", type(node).__name__)

  def _descend(self, node: cst.CSTNode) -> cst.CSTNode:
    results: Dict[str, Dict[Optional[int], Union[cst.CSTNode, VisitAction]]] = {}
    for field_name, index, child in child_slots(node):
      if self._stopped:
        break
      result = self._walk(child)
      if result is not child:
        results.setdefault(field_name, {})[index] = result

    if not results:
      return node

    changes = {}
    for field_name, edits in results.items():
      if None in edits:
        changes[field_name] = self._replacement_value(node, field_name, edits[None])
      else:
        original = getattr(node, field_name)
        items = []
        for index, item in enumerate(original):
          edited = edits.get(index, item)
          if edited is not VisitAction.REMOVE:
            items.append(edited)
        changes[field_name] = type(original)(items)

    try:
      rebuilt = node.with_changes(**changes)
    except cst.CSTValidationError as e:
      raise TraversalError(str(e), type(node).__name__) from e
    if self.on_rebuild is not None:
      self.on_rebuild(node, rebuilt)
    return rebuilt

  @staticmethod
  def _replacement_value(node: cst.CSTNode, field_name: str, result: Union[cst.CSTNode, VisitAction]) -> object:
    if result is not VisitAction.REMOVE:
      return result
    f = next(f for f in dataclasses.fields(node) if f.name == field_name)
    if f.default is None:
      return None
    if f.default is cst.MaybeSentinel.DEFAULT:
      return cst.MaybeSentinel.DEFAULT
    raise TraversalError(f"Cannot remove required field '{field_name}'", type(node).__name__)


def traverse(
  tree: cst.CSTNode,
  rules: Sequence[Union[Rule, NodeCallable]],
  on_replace: Optional[ReplaceHook] = None,
  on_rebuild: Optional[RebuildHook] = None,
) -> cst.CSTNode:
  """
  Applies `rules` to `tree` and returns the new tree.

  See the module docstring for the meaning of rule results.
  """
  return Traverser(rules, on_replace, on_rebuild).run(tree)
