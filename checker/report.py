"""
checker/report.py — JSON run report.

Persists a RunResult so deploy pipelines can archive or diff health runs:

    {"started_at": ..., "total": 3, "failed": 1, "checks": [...]}
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import orjson

if TYPE_CHECKING:
    from checker.orchestrator import RunResult


def render_report(result: RunResult) -> bytes:
    return orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS)


def write_report(result: RunResult, path: str | Path) -> Path:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "wb") as f:
        f.write(render_report(result))
    return out_path
