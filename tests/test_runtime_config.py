"""
Tests for the Runtime Configuration Store.

Verifies:
1. Defaults and validation of the pydantic model.
2. Loading of ``[tool.cst_preprocessor]`` from the nearest pyproject.toml.
3. Precedence of explicit overrides over the TOML table.
"""

import pytest
from pydantic import ValidationError

from cst_preprocessor.config import RuntimeConfig, parse_cli_pairs
from cst_preprocessor.enums import ContextMode

PYPROJECT = """
[project]
name = "demo"

[tool.cst_preprocessor]
context_mode = "lazy"
extensions = ["py", ".pyi"]
recursive = false
log_level = "warning"

[tool.cst_preprocessor.return_types]
"factory.make" = "factory.Widget"
"""


def test_defaults():
  config = RuntimeConfig()
  assert config.context_mode is ContextMode.EAGER
  assert config.extensions == [".py"]
  assert config.recursive is True
  assert config.overwrite is False
  assert config.log_level == "INFO"
  assert config.return_types == {"logging.getLogger": "logging.Logger"}


def test_extensions_are_normalised():
  assert RuntimeConfig(extensions=["py", " .pyi "]).extensions == [".py", ".pyi"]


def test_empty_extensions_rejected():
  with pytest.raises(ValidationError):
    RuntimeConfig(extensions=[" "])


def test_log_level_validation():
  assert RuntimeConfig(log_level="debug").log_level == "DEBUG"
  with pytest.raises(ValidationError):
    RuntimeConfig(log_level="chatty")


def test_context_mode_from_string():
  assert RuntimeConfig(context_mode="lazy").context_mode is ContextMode.LAZY


def test_load_reads_nearest_pyproject(tmp_path):
  (tmp_path / "pyproject.toml").write_text(PYPROJECT, encoding="utf-8")
  nested = tmp_path / "pkg" / "sub"
  nested.mkdir(parents=True)

  config = RuntimeConfig.load(search_path=nested)

  assert config.context_mode is ContextMode.LAZY
  assert config.extensions == [".py", ".pyi"]
  assert config.recursive is False
  assert config.log_level == "WARNING"
  assert config.return_types == {
    "logging.getLogger": "logging.Logger",
    "factory.make": "factory.Widget",
  }


def test_overrides_win(tmp_path):
  (tmp_path / "pyproject.toml").write_text(PYPROJECT, encoding="utf-8")

  config = RuntimeConfig.load(
    context_mode=ContextMode.EAGER,
    recursive=True,
    log_level="ERROR",
    return_types={"factory.make": "factory.Gadget"},
    search_path=tmp_path,
  )

  assert config.context_mode is ContextMode.EAGER
  assert config.recursive is True
  assert config.log_level == "ERROR"
  assert config.return_types["factory.make"] == "factory.Gadget"


def test_load_without_pyproject(tmp_path):
  config = RuntimeConfig.load(search_path=tmp_path)
  assert config.context_mode is ContextMode.EAGER
  assert config.extensions == [".py"]


def test_unreadable_pyproject_is_ignored(tmp_path, recorded):
  (tmp_path / "pyproject.toml").write_text("[tool.cst_preprocessor\n", encoding="utf-8")
  config = RuntimeConfig.load(search_path=tmp_path)
  assert config.context_mode is ContextMode.EAGER
  assert "Ignoring unreadable" in recorded.export_text()


def test_parse_cli_pairs(recorded):
  assert parse_cli_pairs(None) == {}
  assert parse_cli_pairs(["a.f = a.C", "broken", "b.g=b.D"]) == {"a.f": "a.C", "b.g": "b.D"}
  assert "Ignoring invalid config format: 'broken'" in recorded.export_text()
