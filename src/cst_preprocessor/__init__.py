"""
cst-preprocessor Package.

A format-preserving source-to-source rewriter for Python. Semantic facts are
computed once over an immutable reference tree and correlated with a working
tree that a catalog of rewrite rules mutates; untouched code is reproduced
byte for byte.

Usage
-----

.. code-block:: python

    from pathlib import Path
    from cst_preprocessor import PreProcessor, RuntimeConfig

    processor = PreProcessor.from_directory(Path("src"), RuntimeConfig(recursive=True))
    processor.comment_out("logging.Logger", "debug").narrow_existence_checks()

    for target, text in processor.exporter(Path("build")):
        print(target, len(text))
"""

from cst_preprocessor.config import RuntimeConfig
from cst_preprocessor.core.preprocessor import PreProcessor
from cst_preprocessor.core.report import ExportReport
from cst_preprocessor.enums import ContextMode
from cst_preprocessor.errors import (
  ConfigurationError,
  DeclarationNotFoundError,
  InvalidTargetError,
  PreprocessorError,
  TargetExistsError,
  TraversalError,
)

__version__ = "0.1.0"

__all__ = [
  "ConfigurationError",
  "ContextMode",
  "DeclarationNotFoundError",
  "ExportReport",
  "InvalidTargetError",
  "PreProcessor",
  "PreprocessorError",
  "RuntimeConfig",
  "TargetExistsError",
  "TraversalError",
  "__version__",
]
