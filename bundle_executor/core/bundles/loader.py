"""Read bundle files written by the upstream claim workflow."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Union

from bundle_executor.core.execution.errors import NormalizationError, NormalizationFailure


def load_bundle(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a bundle JSON file and record where it came from under ``filepath``.

    A bare JSON list is wrapped as ``{"transactions": [...]}``.
    """
    path = Path(path)
    try:
        content = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise NormalizationError(
            NormalizationFailure.MISSING_TRANSACTIONS,
            f"Could not read bundle file {path}: {e}",
        ) from e
    except json.JSONDecodeError as e:
        raise NormalizationError(
            NormalizationFailure.UNSUPPORTED_FORMAT,
            f"Bundle file {path} is not valid JSON: {e}",
        ) from e

    if isinstance(content, list):
        content = {"transactions": content}
    if not isinstance(content, dict):
        raise NormalizationError(
            NormalizationFailure.UNSUPPORTED_FORMAT,
            f"Bundle file {path} does not contain a JSON object",
        )

    bundle = dict(content)
    bundle.setdefault("filepath", str(path))
    return bundle
