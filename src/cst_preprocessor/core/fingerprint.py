"""
Node Fingerprints.

A fingerprint is the identity key used to find "the same" logical node in two
object-distinct trees of one file: the immutable reference tree the semantic
facts were computed on, and the working tree rules mutate.

Positions alone cannot tell apart expressions that share a line and a token
range (``a.b().c()`` yields several nested calls starting at the same token),
so expressions also carry their canonical text. The canonical text is an
internal form produced by `canonical_expression`; it is never shown to users.
"""

from typing import Callable, NamedTuple, Optional

import libcst as cst

from cst_preprocessor.core.source_text import Location
from cst_preprocessor.utils.console import log_warning
from cst_preprocessor.utils.rendering import canonical_expression

# Resolves the coordinates a node had in the tree its facts were computed on.
Locator = Callable[[cst.CSTNode], Optional[Location]]

# Kinds that cannot carry an independent scope.
_NON_ADDRESSABLE = (
  cst.FormattedStringText,
  cst.FormattedStringExpression,
  cst.BaseParenthesizableWhitespace,
  cst.TrailingWhitespace,
  cst.EmptyLine,
  cst.Newline,
  cst.Comment,
  cst.Comma,
  cst.Dot,
  cst.Colon,
  cst.Semicolon,
  cst.AssignEqual,
  cst.LeftParen,
  cst.RightParen,
  cst.LeftSquareBracket,
  cst.RightSquareBracket,
  cst.LeftCurlyBrace,
  cst.RightCurlyBrace,
  cst.ImportStar,
  cst.Asynchronous,
  cst.BaseBinaryOp,
  cst.BaseBooleanOp,
  cst.BaseCompOp,
  cst.BaseUnaryOp,
  cst.BaseAugOp,
)


class Fingerprint(NamedTuple):
  """
  Identity key of a node.

  Attributes:
      kind: The node class name.
      line: 1-based line the node starts on.
      start_token: Index of the first token the node covers.
      end_token: Index of the last token the node covers.
      text: Canonical rendering for expressions, None otherwise (or when
        rendering failed, in which case the key is positional only).
  """

  kind: str
  line: int
  start_token: int
  end_token: int
  text: Optional[str]


def is_addressable(node: cst.CSTNode) -> bool:
  """True if the node kind can carry a semantic context."""
  return not isinstance(node, _NON_ADDRESSABLE)


def fingerprint(node: cst.CSTNode, locator: Locator) -> Optional[Fingerprint]:
  """
  Computes the identity key of a node.

  Args:
      node: Any node of a reference or working tree.
      locator: Maps the node to its coordinates. Nodes created by rules have
        no coordinates and therefore no fingerprint.

  Returns:
      Optional[Fingerprint]: The key, or None for non-addressable kinds and
      nodes without a known position.
  """
  if not is_addressable(node):
    return None
  location = locator(node)
  if location is None:
    return None

  text: Optional[str] = None
  if isinstance(node, cst.BaseExpression):
    try:
      text = canonical_expression(node)
    except Exception as e:
      log_warning(f"Positional identity only for {type(node).__name__} at line {location.line}: {e}")

  return Fingerprint(type(node).__name__, location.line, location.start_token, location.end_token, text)
