"""
Tests for the Format-Preserving Printer.

Verifies that:
1. Untouched trees regenerate byte for byte (comments, odd spacing, CRLF).
2. Replaced leaves are spliced into the original text of their parents.
3. Multi-line replacements are re-indented to their destination.
4. Placeholder sentinels keep the original token.
"""

import libcst as cst
import pytest

from cst_preprocessor.core.printer import reindent
from cst_preprocessor.enums import VisitAction

ODD_SOURCE = """\
import os  # stdlib


class A( object ):
    '''Doc.'''

    def f(self, a ,b):   # trailing
        x = [1,
             2]  # continuation
        return (a
                +    b)
"""


@pytest.mark.parametrize(
  "code",
  [
    ODD_SOURCE,
    "x = 1",
    "a = 1\r\nb = {\r\n  'k': 2,\r\n}\r\n",
    "# only a comment\n\n\n",
    "async def f():\n\tawait g(  )\n",
  ],
)
def test_round_trip_without_rules(make_unit, code):
  unit = make_unit(code)
  assert unit.regenerate() == code


def test_round_trip_after_noop_traversal(make_unit):
  unit = make_unit(ODD_SOURCE)
  unit.visit(lambda node: None)
  assert unit.regenerate() == ODD_SOURCE


def test_rename_splices_leaves(make_unit):
  unit = make_unit(
    """
    def f(a):  # keep
        return a   +   1  # also
    """
  )

  unit.visit(lambda node: cst.Name("b") if isinstance(node, cst.Name) and node.value == "a" else None)

  assert unit.regenerate() == "def f(b):  # keep\n    return b   +   1  # also\n"


def test_statement_replacement_is_reindented(make_unit):
  unit = make_unit(
    """
    class A:
        def f(self):
            x = 1
            return x
    """
  )

  def rule(node):
    if isinstance(node, cst.SimpleStatementLine) and isinstance(node.body[0], cst.Assign):
      return cst.parse_statement("if x:\n    pass\n")
    return None

  unit.visit(rule)

  assert unit.regenerate() == (
    "class A:\n    def f(self):\n        if x:\n            pass\n        return x\n"
  )


def test_statement_removal_keeps_neighbours(make_unit):
  unit = make_unit("a = 1  # one\n# about b\nb = 2\nc   =   3\n")

  def rule(node):
    if isinstance(node, cst.SimpleStatementLine) and unit.line_of(node) == 3:
      return VisitAction.REMOVE
    return None

  unit.visit(rule)

  assert unit.regenerate() == "a = 1  # one\nc   =   3\n"


def test_default_sentinel_keeps_original_token(make_unit):
  unit = make_unit("foo(a , b)\n")

  def rule(node):
    if isinstance(node, cst.Arg) and isinstance(node.value, cst.Name) and node.value.value == "a":
      return node.with_changes(value=cst.Name("z"), comma=cst.MaybeSentinel.DEFAULT)
    return None

  unit.visit(rule)

  assert unit.regenerate() == "foo(z , b)\n"


def test_successive_traversals_accumulate(make_unit):
  unit = make_unit("x = a\ny = b\n")
  unit.visit(lambda node: cst.Name("c") if isinstance(node, cst.Name) and node.value == "a" else None)
  unit.visit(lambda node: cst.Name("d") if isinstance(node, cst.Name) and node.value == "b" else None)

  assert unit.regenerate() == "x = c\ny = d\n"
  assert unit.reference.code == "x = a\ny = b\n"


def test_reindent_skips_first_line_and_blank_lines():
  code = "(a,\n\n b)"
  assert reindent(code, "    ", first_line=False) == "(a,\n\n     b)"
  assert reindent(code, "    ", first_line=True) == "    (a,\n\n     b)"


def test_reindent_leaves_string_continuations():
  code = 'x = """first\nsecond"""\ny = 1\n'
  assert reindent(code, "  ", first_line=True) == '  x = """first\nsecond"""\n  y = 1\n'
