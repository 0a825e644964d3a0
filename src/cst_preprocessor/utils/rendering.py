"""
Detached Node Rendering.

Helpers that turn LibCST nodes into text "in vacuum", outside the file they
came from. Three flavours are provided:

- `capture_node_source`: LibCST codegen, keeps whatever whitespace the node owns.
- `canonical_expression`: whitespace-insensitive, deterministic rendering used
  for node identity. It is an internal canonical form, not a display format.
- `flatten_source`: a one-line display form used in comments and log lines.
"""

import ast
import re
from typing import Optional, Union

import libcst as cst

# A dummy module used as a context to render detached nodes.
_RENDER_CTX = cst.parse_module("")

_AFTER_OPEN = re.compile(r"([(\[{]) ")
_BEFORE_CLOSE = re.compile(r" ([)\]}])")


def capture_node_source(node: cst.CSTNode, module: Optional[cst.Module] = None) -> str:
  """
  Renders a LibCST node into its Python source code.

  Args:
      node: The CST node to serialise.
      module: Module whose indentation and newline defaults should be used.
        Defaults to an empty module.

  Returns:
      str: The Python code string.
  """
  return (module or _RENDER_CTX).code_for_node(node)


def canonical_expression(node: cst.BaseExpression) -> str:
  """
  Renders an expression to a canonical string that ignores formatting.

  The node is rendered with LibCST, re-parsed with the standard `ast` module
  and unparsed again, which drops comments, whitespace and redundant
  parentheses. Structurally identical expressions always produce the same
  string.

  Args:
      node: The expression to render.

  Returns:
      str: The canonical text.

  Raises:
      SyntaxError: If the rendered text is not a standalone expression
        (e.g. a starred element or a partially built node).
      Exception: Any codegen failure raised by LibCST for malformed nodes.
  """
  code = _RENDER_CTX.code_for_node(node)
  tree = ast.parse(f"({code}\n)", mode="eval")
  return ast.unparse(tree.body)


def flatten_source(code: str) -> str:
  """
  Collapses multi-line source text into a single display line.

  Args:
      code: Rendered source text.

  Returns:
      str: The text with line breaks and indentation folded into single spaces.
  """
  joined = " ".join(part.strip() for part in code.splitlines() if part.strip())
  joined = _AFTER_OPEN.sub(r"\1", joined)
  return _BEFORE_CLOSE.sub(r"\1", joined)


def get_full_name(node: Union[cst.BaseExpression, cst.CSTNode]) -> str:
  """
  Resolves a CST Name or Attribute chain to a dot-separated string.

  Args:
      node: Typically a `cst.Name` (``x``) or `cst.Attribute` (``x.y``).

  Returns:
      str: The dotted name, or an empty string for any other node shape.

  Example:
      >>> get_full_name(cst.Attribute(value=cst.Name("logging"), attr=cst.Name("Logger")))
      'logging.Logger'
  """
  if isinstance(node, cst.Name):
    return node.value
  if isinstance(node, cst.Attribute):
    base = get_full_name(node.value)
    return f"{base}.{node.attr.value}" if base else ""
  return ""
