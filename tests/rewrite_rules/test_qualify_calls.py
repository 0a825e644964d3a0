"""
Tests for Call Qualification (``qualify_function_calls``).

Verifies:
1. Calls to from-imported functions go through the imported module.
2. Module aliases are honoured.
3. Locally shadowed names (function, alias head, comprehension) are skipped.
4. Nested calls are all qualified.
"""

from cst_preprocessor.rules.qualify import bound_names, qualifiable_names
from cst_preprocessor.analysis.imports import ImportTable

import libcst as cst


def _qualify(make_batch, texts_of, code):
  processor = make_batch({"mod.py": code})
  processor.qualify_function_calls()
  return texts_of(processor)["mod.py"]


def test_basic_qualification(make_batch, texts_of):
  out = _qualify(
    make_batch,
    texts_of,
    """
    import os.path
    from os.path import join


    def build(a, b):
        return join(a,  b)  # keep
    """,
  )
  assert "    return os.path.join(a,  b)  # keep\n" in out
  assert "from os.path import join\n" in out


def test_alias_is_used(make_batch, texts_of):
  out = _qualify(
    make_batch,
    texts_of,
    """
    import os.path as osp
    from os.path import join as pjoin

    value = pjoin("a", "b")
    """,
  )
  assert 'value = osp.join("a", "b")\n' in out


def test_nested_calls(make_batch, texts_of):
  out = _qualify(
    make_batch,
    texts_of,
    """
    import os.path
    from os.path import join


    def build(a, b, c):
        return join(join(a, b), c)
    """,
  )
  assert "return os.path.join(os.path.join(a, b), c)" in out


def test_shadowed_names_are_skipped(make_batch, texts_of):
  code = """
  import os.path
  from os.path import join


  def local_function(a, b):
      join = lambda x, y: x
      return join(a, b)


  def shadowed_module(os, a, b):
      return join(a, b)


  def comprehension(items):
      return [join(x, x) for join in items]
  """
  out = _qualify(make_batch, texts_of, code)
  assert "os.path.join" not in out


def test_module_not_imported(make_batch, texts_of):
  code = """
  from os.path import join

  value = join("a", "b")
  """
  out = _qualify(make_batch, texts_of, code)
  assert 'value = join("a", "b")\n' in out


def test_qualifiable_names():
  module = cst.parse_module("import os.path\nimport json as j\nfrom os.path import join\nfrom json import dumps\nfrom re import sub\n")
  candidates = qualifiable_names(ImportTable.from_module(module))
  assert candidates == {"join": ("os.path", "join"), "dumps": ("j", "dumps")}


def test_bound_names_ignores_nested_scopes():
  module = cst.parse_module("x = 1\nfor y in z:\n    pass\ndef f():\n    w = 2\nclass C:\n    v = 3\n")
  assert bound_names(module, include_imports=False) == {"x", "y", "f", "C"}
