"""
Tests for the command line entry point.

Verifies:
1. A full run over a directory exports rewritten files and exits 0.
2. Rule options run in command-line order.
3. Setup errors exit 1, malformed options exit 2.
"""

import textwrap

import pytest

from cst_preprocessor.cli.__main__ import build_parser, main, parse_member_ref, parse_type_names

SERVICE = textwrap.dedent(
  """\
  import logging
  import os.path
  from os.path import join


  class Service:
      def __init__(self, logger: logging.Logger):
          self.logger = logger

      def path(self, a, b):
          self.logger.debug("joining")
          return join(a, b)
  """
)


@pytest.fixture
def project(tmp_path, monkeypatch):
  monkeypatch.chdir(tmp_path)
  src = tmp_path / "src"
  src.mkdir()
  (src / "service.py").write_text(SERVICE, encoding="utf-8")
  out = tmp_path / "out"
  out.mkdir()
  return src, out


def test_full_run(project, recorded):
  src, out = project
  code = main([str(src), "--out", str(out), "--comment-out", "logging.Logger.debug", "--qualify-calls"])

  assert code == 0
  result = (out / "src" / "service.py").read_text(encoding="utf-8")
  assert '(  # self.logger.debug("joining")\n        None)\n' in result
  assert "        return os.path.join(a, b)\n" in result
  assert "Export Complete: 1 file(s)" in recorded.export_text()


def test_lazy_flag(project):
  src, out = project
  assert main([str(src / "service.py"), "--out", str(out), "--lazy", "--qualify-calls"]) == 0
  assert "os.path.join(a, b)" in (out / "src" / "service.py").read_text(encoding="utf-8")


def test_steps_keep_command_line_order():
  args = build_parser().parse_args(
    ["a.py", "--out", "o", "--strip-types", "int, str", "--inline-accessors", "--inline", "pkg.Money.cents"]
  )
  assert args.steps == [
    ("remove_type_from_method_parameters", (["int", "str"],)),
    ("inline_accessors", ()),
    ("inline_calls", ("pkg.Money", "cents")),
  ]


def test_no_steps():
  assert build_parser().parse_args(["a.py", "--out", "o"]).steps is None


def test_missing_input_exits_1(tmp_path, monkeypatch, recorded):
  monkeypatch.chdir(tmp_path)
  assert main([str(tmp_path / "missing.py"), "--out", str(tmp_path)]) == 1
  assert "Input not found" in recorded.export_text()


def test_invalid_target_exits_1(project, recorded):
  src, out = project
  assert main([str(src), "--out", str(out), "--comment-out", "Service.missing"]) == 1
  assert "Method Service.missing does not exist" in recorded.export_text()


def test_conflicts_are_summarised(project, recorded):
  src, out = project
  assert main([str(src), "--out", str(out)]) == 0
  assert main([str(src), "--out", str(out)]) == 0
  text = recorded.export_text()
  assert "Export Report" in text
  assert "1 skipped" in text


def test_malformed_member_ref_exits_2(capsys):
  with pytest.raises(SystemExit) as err:
    build_parser().parse_args(["a.py", "--out", "o", "--comment-out", "debug"])
  assert err.value.code == 2
  assert "expected Class.member" in capsys.readouterr().err


def test_parse_member_ref():
  assert parse_member_ref("logging.Logger.debug") == ("logging.Logger", "debug")
  with pytest.raises(ValueError):
    parse_member_ref("Logger.")


def test_parse_type_names():
  assert parse_type_names(" int,str ,") == (["int", "str"],)
  with pytest.raises(ValueError):
    parse_type_names(" , ")
