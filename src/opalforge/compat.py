"""Compatibility shim – TFLite interpreter import.

Production images install only ``tflite-runtime``; development machines
have full ``tensorflow``.  ``Interpreter`` is taken from whichever one is
present so model loading never imports ``tensorflow`` just for TFLite.
"""

from __future__ import annotations

try:
    from tflite_runtime.interpreter import Interpreter  # type: ignore[import-untyped]
except ImportError:
    from tensorflow.lite.python.interpreter import Interpreter  # type: ignore[import-untyped]

__all__ = ["Interpreter"]
