"""
Enumerations for cst-preprocessor.

This module defines the small closed sets of states and actions shared by the
traversal engine, the context stores and the configuration layer.
"""

from enum import Enum


class ContextMode(str, Enum):
  """
  Strategy used to attach semantic contexts to working-tree nodes.
  """

  EAGER = "eager"  # one inference pass over every reference tree up front
  LAZY = "lazy"  # resolve on first lookup, re-resolve after each replacement


class StoreState(str, Enum):
  """
  States of a lazily resolved context store.
  """

  RESOLVED = "resolved"
  STALE = "stale"


class VisitAction(Enum):
  """
  Non-replacement results a rule may return for a node.

  Returning ``None`` means "no change, keep descending" and returning a
  ``CSTNode`` means "replace, do not descend into the replacement".
  """

  REMOVE = "remove"
  SKIP_CHILDREN = "skip_children"
  STOP = "stop"
