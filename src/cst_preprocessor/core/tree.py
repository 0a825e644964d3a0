"""
Tree Utilities.

LibCST nodes are frozen dataclasses compared and hashed by identity, so a
node object is its own identity key. These helpers walk node fields
generically and produce identity-tracked copies.
"""

import dataclasses
from typing import Dict, Iterator, Optional, Set, Tuple, TypeVar

import libcst as cst

NodeT = TypeVar("NodeT", bound=cst.CSTNode)

# (field name, index within a sequence field or None, child node)
ChildSlot = Tuple[str, Optional[int], cst.CSTNode]


def child_slots(node: cst.CSTNode) -> Iterator[ChildSlot]:
  """
  Yields the direct children of a node with the field that holds them.

  Children come in field declaration order.
  """
  for f in dataclasses.fields(node):
    value = getattr(node, f.name)
    if isinstance(value, cst.CSTNode):
      yield f.name, None, value
    elif isinstance(value, (list, tuple)):
      for index, item in enumerate(value):
        if isinstance(item, cst.CSTNode):
          yield f.name, index, item


def clone_tree(node: NodeT) -> Tuple[NodeT, Dict[cst.CSTNode, cst.CSTNode], Set[cst.CSTNode]]:
  """
  Deep-copies a tree, remembering which original each copy came from.

  Args:
      node: Root of the original tree.

  Returns:
      Tuple: The copy, the ``copy -> original`` map covering every node of
      the copy, and the set of original nodes that occur at more than one
      place in the tree.
  """
  clone_of: Dict[cst.CSTNode, cst.CSTNode] = {}
  seen: Set[cst.CSTNode] = set()
  shared: Set[cst.CSTNode] = set()

  def copy(original: cst.CSTNode) -> cst.CSTNode:
    if original in seen:
      shared.add(original)
    seen.add(original)
    changes = {}
    for f in dataclasses.fields(original):
      value = getattr(original, f.name)
      if isinstance(value, cst.CSTNode):
        changes[f.name] = copy(value)
      elif isinstance(value, (list, tuple)) and any(isinstance(item, cst.CSTNode) for item in value):
        changes[f.name] = type(value)(copy(item) if isinstance(item, cst.CSTNode) else item for item in value)
    duplicate = original.with_changes(**changes)
    clone_of[duplicate] = original
    return duplicate

  return copy(node), clone_of, shared


def deep_copy(node: NodeT) -> NodeT:
  """Returns an independent copy of a subtree (no node object is shared)."""
  return node.deep_clone()


def iter_tree(node: cst.CSTNode) -> Iterator[cst.CSTNode]:
  """Yields every node of a tree, parents before children."""
  stack = [node]
  while stack:
    current = stack.pop()
    yield current
    stack.extend(reversed([child for _, _, child in child_slots(current)]))
