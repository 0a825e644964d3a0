"""
Original Text, Token Stream and Node Positions.

`SourceText` is captured once per file at parse time and never mutated. It is
the read-only input the printer slices verbatim spans from.

`PositionIndex` resolves LibCST position metadata for every node of one module
and converts it to character offsets and token indices:

* The syntactic position (`PositionProvider`) gives the line a node lives on,
  used by fingerprints and log messages.
* The whitespace-inclusive position (`WhitespaceInclusivePositionProvider`)
  gives the span a node owns in the text, used by the printer.
"""

import io
import re
import tokenize
from bisect import bisect_left, bisect_right
from typing import Dict, List, NamedTuple, Optional

import libcst as cst
from libcst.metadata import MetadataWrapper, PositionProvider, WhitespaceInclusivePositionProvider

from cst_preprocessor.utils.console import log_warning

_NEWLINE = re.compile(r"\r\n|\r|\n")


class Token(NamedTuple):
  """A lexical token with character offsets into the original text."""

  type: int
  string: str
  start: int
  end: int


class Span(NamedTuple):
  """Half-open character range ``[start, end)``."""

  start: int
  end: int


class Location(NamedTuple):
  """Line and token coordinates of a node, as used in fingerprints."""

  line: int
  start_token: int
  end_token: int


class SourceText:
  """
  The original text of one source file plus its token stream.

  Attributes:
      text (str): The file contents exactly as read.
      tokens (List[Token]): Tokens from the stdlib tokenizer, in order.
  """

  def __init__(self, text: str) -> None:
    self.text = text
    self._line_starts: List[int] = [0] + [m.end() for m in _NEWLINE.finditer(text)]
    self.tokens: List[Token] = self._tokenize()
    self._token_starts = [tok.start for tok in self.tokens]
    self._token_ends = [tok.end for tok in self.tokens]

  def _tokenize(self) -> List[Token]:
    tokens: List[Token] = []
    try:
      for tok in tokenize.generate_tokens(io.StringIO(self.text).readline):
        start = self.offset(*tok.start)
        end = self.offset(*tok.end)
        tokens.append(Token(tok.type, tok.string, start, end))
    except (tokenize.TokenError, SyntaxError) as e:
      log_warning(f"Token stream truncated after {len(tokens)} tokens: {e}")
    return tokens

  def offset(self, line: int, column: int) -> int:
    """
    Converts a 1-based line and 0-based column into a character offset.

    Args:
        line (int): Line number, starting at 1.
        column (int): Column in characters.

    Returns:
        int: Offset into `text`, clamped to the text length.
    """
    index = min(max(line - 1, 0), len(self._line_starts) - 1)
    return min(self._line_starts[index] + column, len(self.text))

  def line_of(self, offset: int) -> int:
    """Returns the 1-based line containing `offset`."""
    return bisect_right(self._line_starts, offset)

  def indentation_of_line(self, line: int) -> str:
    """Returns the leading whitespace of a 1-based line."""
    start = self.offset(line, 0)
    end = start
    while end < len(self.text) and self.text[end] in " \t":
      end += 1
    return self.text[start:end]

  def is_line_start(self, offset: int) -> bool:
    """True if `offset` is the first character of a line."""
    return offset in self._line_starts

  def slice(self, span: Span) -> str:
    """Returns the verbatim text of a span."""
    return self.text[span.start : span.end]

  def token_range(self, span: Span) -> Optional[Span]:
    """
    Finds the tokens fully covered by a character span.

    Args:
        span: Character range of a node.

    Returns:
        Optional[Span]: Inclusive ``(first, last)`` token indices, or None if
        the span covers no complete token.
    """
    first = bisect_left(self._token_starts, span.start)
    last = bisect_right(self._token_ends, span.end) - 1
    if first > last:
      return None
    return Span(first, last)


class PositionIndex:
  """
  Positions of every node of one module, keyed by node identity.

  Attributes:
      source (SourceText): The text the positions refer to.
  """

  def __init__(self, module: cst.Module, source: SourceText) -> None:
    self.source = source
    self._module = module
    wrapper = MetadataWrapper(module, unsafe_skip_copy=True)
    syntactic = wrapper.resolve(PositionProvider)
    inclusive = wrapper.resolve(WhitespaceInclusivePositionProvider)

    self._locations: Dict[cst.CSTNode, Location] = {}
    for node, code_range in syntactic.items():
      span = Span(
        source.offset(code_range.start.line, code_range.start.column),
        source.offset(code_range.end.line, code_range.end.column),
      )
      tokens = source.token_range(span)
      if tokens is None:
        tokens = Span(-1, -1)
      self._locations[node] = Location(code_range.start.line, tokens.start, tokens.end)

    self._spans: Dict[cst.CSTNode, Span] = {}
    for node, code_range in inclusive.items():
      self._spans[node] = Span(
        source.offset(code_range.start.line, code_range.start.column),
        source.offset(code_range.end.line, code_range.end.column),
      )
    self._spans[module] = Span(0, len(source.text))

  def location(self, node: cst.CSTNode) -> Optional[Location]:
    """Returns the fingerprint coordinates of a node, if it belongs to the module."""
    return self._locations.get(node)

  def span(self, node: cst.CSTNode) -> Optional[Span]:
    """Returns the whitespace-inclusive span a node owns, if known."""
    return self._spans.get(node)

  def line(self, node: cst.CSTNode) -> Optional[int]:
    """Returns the 1-based line a node starts on, if known."""
    location = self._locations.get(node)
    return location.line if location else None
