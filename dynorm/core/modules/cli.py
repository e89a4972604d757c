from __future__ import annotations

"""
CLI rendering helpers for module installs.

WHY THIS FILE EXISTS:
scripts/install_modules.py stays a thin argparse wrapper; these helpers give a
stable, testable text surface for plans, reports and errors.
"""

from typing import Any, List, Sequence

from dynorm.core.errors import DynormError
from dynorm.core.modules.models import ModuleManifest
from dynorm.core.modules.manager import InstallReport


def plan_lines(ordered: Sequence[ModuleManifest]) -> List[str]:
    """
    Render the resolved install order.
    Columns: step | module | version | depends_on | models | impacts
    """
    lines = ["step | module | version | depends_on | models | impacts"]
    for i, m in enumerate(ordered, start=1):
        deps = ",".join(m.depends_on) or "-"
        lines.append(f"{i} | {m.module.name} | {m.module.version} | {deps} | {len(m.models)} | {len(m.impacts)}")
    return lines


def report_lines(report: InstallReport) -> List[str]:
    lines = ["module | version | models | impacts | notes"]
    for r in report.modules:
        notes = "; ".join(r.notes) or "-"
        lines.append(f"{r.module} | {r.version} | {len(r.models)} | {r.impacts_applied} | {notes}")
    return lines


def error_lines(err: BaseException) -> List[str]:
    if isinstance(err, DynormError):
        out = [f"error [{err.code}]: {err.user_message}"]
        ctx: Any = err.to_dict().get("context") or {}
        for k in sorted(ctx):
            out.append(f"  {k}: {ctx[k]}")
        return out
    return [f"error: {type(err).__name__}: {err}"]
