"""
Call Elision.

Replaces calls such as ``self.logger.debug("x")`` with an inert placeholder
that keeps the call text as a comment::

    (  # self.logger.debug("x")
    None)

The placeholder is the constant ``None``; it is not a call, so applying the
rule again finds nothing to elide.
"""

from typing import Optional, Sequence

import libcst as cst

from cst_preprocessor.analysis.context import SemanticContext
from cst_preprocessor.core.source_unit import SourceUnit
from cst_preprocessor.enums import VisitAction
from cst_preprocessor.rules.registry import register_rule
from cst_preprocessor.utils.console import log_info
from cst_preprocessor.utils.rendering import capture_node_source, flatten_source


def placeholder(text: str) -> cst.Name:
  """
  Builds the ``None`` placeholder carrying `text` as a trailing comment.

  Args:
      text: One line of text (the elided source).

  Returns:
      cst.Name: ``None`` wrapped in parentheses whose opening line ends with
      ``# text``.
  """
  comment = cst.Comment(f"# {text}".rstrip())
  return cst.Name(
    "None",
    lpar=[
      cst.LeftParen(
        whitespace_after=cst.ParenthesizedWhitespace(
          first_line=cst.TrailingWhitespace(
            whitespace=cst.SimpleWhitespace("  "),
            comment=comment,
            newline=cst.Newline(),
          ),
          empty_lines=[],
          indent=True,
          last_line=cst.SimpleWhitespace(""),
        )
      )
    ],
    rpar=[cst.RightParen()],
  )


def _skip_formatted_strings(node: cst.CSTNode) -> Optional[VisitAction]:
  # Comments are not allowed inside f-string replacement fields.
  if isinstance(node, cst.FormattedString):
    return VisitAction.SKIP_CHILDREN
  return None


@register_rule("comment_out")
def comment_out(units: Sequence[SourceUnit], target: str, member: str) -> None:
  """
  Elides every ``receiver.member(...)`` call on a `target` receiver.

  Args:
      units: Units to rewrite.
      target: Class whose method calls are elided (e.g. ``logging.Logger``).
      member: Method name, matched case-insensitively.

  Raises:
      InvalidTargetError: If ``target.member`` does not exist.
  """
  for unit in units:

    def elide(node: cst.Call, context: SemanticContext, unit: SourceUnit = unit) -> cst.Name:
      text = flatten_source(capture_node_source(node.with_changes(lpar=[], rpar=[])))
      log_info(f"{unit.label(node, context)} Commented out {text}")
      replacement = placeholder(text)
      if node.lpar:
        return replacement.with_changes(lpar=[*node.lpar, *replacement.lpar], rpar=[*replacement.rpar, *node.rpar])
      return replacement

    unit.visit_calls(target, member, elide, guards=[_skip_formatted_strings])
