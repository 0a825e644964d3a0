"""
Tests for the Batch Orchestrator and export.

Verifies:
1. Batch construction from paths and directories, with setup errors.
2. Destination paths below the export root.
3. Writing, conflict reporting and overwriting.
4. Byte-identical output for untouched files.
"""

from pathlib import Path

import pytest

from cst_preprocessor.config import RuntimeConfig
from cst_preprocessor.core.preprocessor import PreProcessor
from cst_preprocessor.errors import ConfigurationError, TargetExistsError


@pytest.fixture
def out_dir(tmp_path, monkeypatch):
  monkeypatch.chdir(tmp_path)
  out = tmp_path / "out"
  out.mkdir()
  return out


def test_from_paths_keeps_order(write_sources):
  root = write_sources({"b.py": "x = 1\n", "a.py": "y = 2\n"})
  processor = PreProcessor.from_paths([root / "b.py", root / "a.py"])
  assert [unit.path.name for unit in processor.units] == ["b.py", "a.py"]
  assert len(processor) == 2


def test_from_paths_missing_file(tmp_path):
  with pytest.raises(ConfigurationError, match="Input not found"):
    PreProcessor.from_paths([tmp_path / "nope.py"])


def test_from_paths_wrong_suffix(tmp_path):
  notes = tmp_path / "notes.txt"
  notes.write_text("x = 1\n", encoding="utf-8")
  with pytest.raises(ConfigurationError, match="Not a source file"):
    PreProcessor.from_paths([notes])


def test_from_paths_syntax_error(write_sources):
  root = write_sources({"bad.py": "def (:\n"})
  with pytest.raises(ConfigurationError, match="Cannot parse"):
    PreProcessor.from_paths([root / "bad.py"])


def test_configured_extensions(write_sources):
  root = write_sources({"stub.pyi": "x: int\n"})
  processor = PreProcessor.from_paths([root / "stub.pyi"], RuntimeConfig(extensions=["pyi"]))
  assert len(processor) == 1


def test_from_directory_recursive(write_sources):
  root = write_sources({"b.py": "x = 1\n", "pkg/a.py": "y = 2\n", "notes.txt": "text\n"})

  recursive = PreProcessor.from_directory(root)
  assert [u.path.relative_to(root).as_posix() for u in recursive.units] == ["b.py", "pkg/a.py"]

  flat = PreProcessor.from_directory(root, RuntimeConfig(recursive=False))
  assert [u.path.name for u in flat.units] == ["b.py"]


def test_from_directory_missing(tmp_path):
  with pytest.raises(ConfigurationError, match="Input directory not found"):
    PreProcessor.from_directory(tmp_path / "missing")


def test_empty_directory_warns(tmp_path, recorded):
  processor = PreProcessor.from_directory(tmp_path)
  assert len(processor) == 0
  assert "No .py files found" in recorded.export_text()


def test_batch_shares_declarations(make_batch):
  processor = make_batch({"a.py": "class A:\n    pass\n", "b.py": "class B:\n    pass\n"})
  assert set(processor.universe.classes) == {"A", "B"}


def test_rule_methods_chain(make_batch):
  processor = make_batch({"a.py": "x = 1\n"})
  assert processor.qualify_function_calls().narrow_existence_checks() is processor


def test_unknown_rule(make_batch):
  processor = make_batch({"a.py": "x = 1\n"})
  with pytest.raises(KeyError, match="Unknown rule"):
    processor.apply("no_such_rule")


def test_target_path_under_cwd(tmp_path, monkeypatch):
  monkeypatch.chdir(tmp_path)
  source = tmp_path / "src" / "pkg" / "a.py"
  assert PreProcessor.target_path(Path("build"), source) == Path("build") / "src" / "pkg" / "a.py"


def test_target_path_outside_cwd(tmp_path, monkeypatch):
  elsewhere = tmp_path / "elsewhere"
  elsewhere.mkdir()
  monkeypatch.chdir(elsewhere)
  source = (tmp_path / "src" / "a.py").resolve()
  assert PreProcessor.target_path(Path("build"), source) == Path("build", *source.parts[1:])


def test_exporter_does_not_write(make_batch, out_dir):
  processor = make_batch({"a.py": "x = 1\n"})
  exported = list(processor.exporter(out_dir))
  assert exported == [(out_dir / "src" / "a.py", "x = 1\n")]
  assert not (out_dir / "src").exists()


def test_export_writes_files(make_batch, out_dir, recorded):
  processor = make_batch({"a.py": "x = 1\n", "pkg/b.py": "y = 2\n"})
  report = processor.export(out_dir)

  assert report.success
  assert report.written == [out_dir / "src" / "a.py", out_dir / "src" / "pkg" / "b.py"]
  assert (out_dir / "src" / "pkg" / "b.py").read_text(encoding="utf-8") == "y = 2\n"
  assert "Wrote" in recorded.export_text()


def test_existing_target_is_reported(make_batch, out_dir):
  processor = make_batch({"a.py": "x = 1\n", "b.py": "y = 2\n"})
  existing = out_dir / "src" / "a.py"
  existing.parent.mkdir(parents=True)
  existing.write_text("keep\n", encoding="utf-8")

  report = processor.export(out_dir)

  assert report.has_conflicts
  assert not report.success
  (conflict,) = report.conflicts
  assert isinstance(conflict, TargetExistsError)
  assert conflict.target == existing
  assert existing.read_text(encoding="utf-8") == "keep\n"
  # The rest of the batch is still written
  assert report.written == [out_dir / "src" / "b.py"]


def test_overwrite(make_batch, out_dir):
  processor = make_batch({"a.py": "x = 1\n"})
  existing = out_dir / "src" / "a.py"
  existing.parent.mkdir(parents=True)
  existing.write_text("old\n", encoding="utf-8")

  report = processor.export(out_dir, overwrite=True)

  assert report.success
  assert existing.read_text(encoding="utf-8") == "x = 1\n"


def test_missing_export_root(make_batch, tmp_path):
  processor = make_batch({"a.py": "x = 1\n"})
  with pytest.raises(ConfigurationError, match="Export directory not found"):
    processor.export(tmp_path / "missing")


def test_untouched_file_is_byte_identical(tmp_path, out_dir):
  source = tmp_path / "src" / "crlf.py"
  source.parent.mkdir()
  data = b"import os\r\n\r\n\r\ndef f( a ,b ):  # odd\r\n\treturn os.path.join(a,b)\r\n"
  source.write_bytes(data)

  processor = PreProcessor.from_paths([source])
  processor.narrow_existence_checks()
  processor.export(out_dir)

  assert (out_dir / "src" / "crlf.py").read_bytes() == data
