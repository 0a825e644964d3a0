"""
Format-Preserving Printer.

Regenerates the text of a working tree by diffing it against the reference
tree it was cloned from:

1.  A node that is the untouched clone of a reference node is emitted as the
    verbatim original span (whitespace and comments included).
2.  A node rebuilt from a reference node of the same type is *spliced*: the
    reference span is reused and only the fields that changed are re-emitted.
3.  Anything else is rendered with LibCST codegen, re-indented to the
    indentation of the line it lands on.

Only replaced subtrees are ever re-rendered; the rest of the file is copied.
"""

import dataclasses
import io
import tokenize
from typing import Dict, List, Optional, Set, Tuple

import libcst as cst

from cst_preprocessor.core.source_text import PositionIndex, SourceText, Span

_MULTILINE_TOKENS = {tokenize.STRING, getattr(tokenize, "FSTRING_MIDDLE", tokenize.STRING)}


def reindent(code: str, indent: str, first_line: bool) -> str:
  """
  Prefixes rendered code with the indentation of its destination.

  Args:
      code: Text rendered at column 0.
      indent: Indentation of the destination line.
      first_line: Whether the first line needs the prefix too (true when the
        replaced span started at the beginning of a line).

  Returns:
      str: The re-indented text. Blank lines and lines inside multi-line
      string literals are left untouched.
  """
  if not indent:
    return code
  protected = _string_continuation_lines(code)
  out = []
  for i, line in enumerate(code.splitlines(keepends=True)):
    if (i == 0 and not first_line) or i in protected or not line.strip():
      out.append(line)
    else:
      out.append(indent + line)
  return "".join(out)


def _string_continuation_lines(code: str) -> Set[int]:
  lines: Set[int] = set()
  try:
    for tok in tokenize.generate_tokens(io.StringIO(code).readline):
      if tok.type in _MULTILINE_TOKENS and tok.end[0] > tok.start[0]:
        lines.update(range(tok.start[0], tok.end[0]))
  except (tokenize.TokenError, SyntaxError):
    pass
  return lines


class Printer:
  """
  Regenerates text for the working trees of one source unit.

  Attributes:
      reference (cst.Module): The never-mutated reference tree.
      source (SourceText): The original text and tokens.
      positions (PositionIndex): Spans of reference nodes.
      clone_of (Dict): Working clone -> reference original.
      provenance (Dict): Working node -> reference node whose slot it occupies.
      shared (Set): Reference nodes that occur more than once (no usable span).
  """

  def __init__(
    self,
    reference: cst.Module,
    source: SourceText,
    positions: PositionIndex,
    clone_of: Dict[cst.CSTNode, cst.CSTNode],
    provenance: Dict[cst.CSTNode, cst.CSTNode],
    shared: Optional[Set[cst.CSTNode]] = None,
  ) -> None:
    self.reference = reference
    self.source = source
    self.positions = positions
    self.clone_of = clone_of
    self.provenance = provenance
    self.shared = shared or set()

  def regenerate(self, working: cst.Module) -> str:
    """
    Produces the text of a working tree.

    Args:
        working: The current working tree of the unit.

    Returns:
        str: Original text where the tree is untouched, re-rendered text for
        replaced subtrees.
    """
    return self._emit(working, self.reference)

  def _span(self, ref: cst.CSTNode) -> Optional[Span]:
    if ref in self.shared:
      return None
    return self.positions.span(ref)

  def _emit(self, node: cst.CSTNode, ref: Optional[cst.CSTNode], indent: Optional[Tuple[str, bool]] = None) -> str:
    origin = self.clone_of.get(node)
    if origin is not None:
      span = self._span(origin)
      if span is not None:
        return self.source.slice(span)
      ref = origin
    if ref is None:
      ref = self.provenance.get(node)
    if ref is not None and type(ref) is type(node):
      spliced = self._splice(node, ref)
      if spliced is not None:
        return spliced
    return self._fresh(node, ref, indent)

  def _splice(self, node: cst.CSTNode, ref: cst.CSTNode) -> Optional[str]:
    span = self._span(ref)
    if span is None:
      return None

    edits: List[Tuple[Span, str]] = []
    for f in dataclasses.fields(node):
      new, old = getattr(node, f.name), getattr(ref, f.name)
      if isinstance(new, cst.CSTNode) or isinstance(old, cst.CSTNode):
        if not self._splice_child(new, old, edits):
          return None
      elif isinstance(old, (list, tuple)) and isinstance(new, (list, tuple)):
        if not self._splice_sequence(new, old, edits):
          return None
      elif new != old:
        return None

    text = self.source.slice(span)
    for child_span, replacement in sorted(edits, key=lambda e: e[0].start, reverse=True):
      start, end = child_span.start - span.start, child_span.end - span.start
      if start < 0 or end > len(text):
        return None
      text = text[:start] + replacement + text[end:]
    return text

  def _splice_child(self, new: object, old: object, edits: List[Tuple[Span, str]]) -> bool:
    if isinstance(new, cst.CSTNode) and isinstance(old, cst.CSTNode):
      if self.clone_of.get(new) is old:
        return True
      old_span = self._span(old)
      if old_span is None:
        return False
      edits.append((old_span, self._emit(new, old)))
      return True
    if isinstance(old, cst.CSTNode):
      if new is cst.MaybeSentinel.DEFAULT:
        # Codegen would synthesise the same token; keep the original one.
        return True
      old_span = self._span(old)
      if old_span is None:
        return False
      edits.append((old_span, ""))
      return True
    # A node appeared where the reference has none: no anchor to splice at.
    return False

  def _splice_sequence(self, new: tuple, old: tuple, edits: List[Tuple[Span, str]]) -> bool:
    if len(new) == len(old):
      for n, o in zip(new, old):
        if isinstance(n, cst.CSTNode) or isinstance(o, cst.CSTNode):
          if not self._splice_child(n, o, edits):
            return False
        elif n != o:
          return False
      return True

    if not old:
      return False
    first, last = self._span(old[0]), self._span(old[-1])
    if first is None or last is None:
      return False
    line = self.positions.line(old[0]) or self.source.line_of(first.start)
    indent = (self.source.indentation_of_line(line), self.source.is_line_start(first.start))
    parts = [self._emit(item, None, indent) for item in new]
    edits.append((Span(first.start, last.end), "".join(parts)))
    return True

  def _fresh(self, node: cst.CSTNode, ref: Optional[cst.CSTNode], indent: Optional[Tuple[str, bool]]) -> str:
    code = self.reference.code_for_node(node)
    if ref is not None:
      span = self._span(ref)
      if span is not None:
        line = self.positions.line(ref) or self.source.line_of(span.start)
        indent = (self.source.indentation_of_line(line), self.source.is_line_start(span.start))
    if indent is None:
      return code
    return reindent(code, indent[0], indent[1])
