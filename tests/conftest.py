"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- Console isolation, so log output of one test never leaks into another.
- Builders for source units and batches from inline code.
"""

import sys
import textwrap
from pathlib import Path
from typing import Callable, Dict

import pytest
from rich.console import Console

# Add src to path so we can import 'cst_preprocessor' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from cst_preprocessor.analysis.declarations import DeclarationUniverse  # noqa: E402
from cst_preprocessor.config import RuntimeConfig  # noqa: E402
from cst_preprocessor.core.preprocessor import PreProcessor  # noqa: E402
from cst_preprocessor.core.source_unit import SourceUnit  # noqa: E402
from cst_preprocessor.enums import ContextMode  # noqa: E402
from cst_preprocessor.utils.console import reset_console, set_console, set_log_level  # noqa: E402

DEFAULT_RETURN_TYPES = {"logging.getLogger": "logging.Logger"}


def dedent(code: str) -> str:
  """Strips the common indentation and the leading newline of inline sources."""
  return textwrap.dedent(code).lstrip("\n")


@pytest.fixture(autouse=True)
def isolate_console():
  """Restores the default console and log level around every test."""
  reset_console()
  set_log_level("INFO")
  yield
  reset_console()
  set_log_level("INFO")


@pytest.fixture
def recorded():
  """
  Routes log output to an in-memory console.

  Returns:
      Console: The recording console; call ``export_text()`` to read it.
  """
  capture = Console(record=True, width=400, force_terminal=False)
  set_console(capture)
  return capture


@pytest.fixture
def make_unit() -> Callable[..., SourceUnit]:
  """
  Factory for a single, analysed source unit built from inline code.
  """

  def _make(code: str, mode: ContextMode = ContextMode.EAGER, name: str = "sample.py") -> SourceUnit:
    import libcst as cst

    text = dedent(code)
    path = Path(name)
    universe = DeclarationUniverse(DEFAULT_RETURN_TYPES)
    module = cst.parse_module(text)
    universe.add_module(path, module)
    unit = SourceUnit(path, text, universe, mode, module)
    unit.populate()
    return unit

  return _make


@pytest.fixture
def write_sources(tmp_path) -> Callable[[Dict[str, str]], Path]:
  """
  Writes ``{relative_path: code}`` below ``tmp_path/src`` and returns that directory.
  """

  def _write(files: Dict[str, str]) -> Path:
    root = tmp_path / "src"
    for name, code in files.items():
      target = root / name
      target.parent.mkdir(parents=True, exist_ok=True)
      target.write_text(dedent(code), encoding="utf-8")
    return root

  return _write


@pytest.fixture
def make_batch(write_sources) -> Callable[..., PreProcessor]:
  """
  Factory for a `PreProcessor` over inline sources, eager by default.
  """

  def _make(files: Dict[str, str], mode: ContextMode = ContextMode.EAGER) -> PreProcessor:
    root = write_sources(files)
    config = RuntimeConfig(context_mode=mode)
    return PreProcessor.from_paths([root / name for name in files], config)

  return _make


@pytest.fixture
def texts_of() -> Callable[[PreProcessor], Dict[str, str]]:
  """Regenerated text of every unit of a batch, keyed by file name."""

  def _texts(processor: PreProcessor) -> Dict[str, str]:
    return {unit.path.name: unit.regenerate() for unit in processor.units}

  return _texts
