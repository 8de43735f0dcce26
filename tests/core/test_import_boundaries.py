from __future__ import annotations

import re
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]


@pytest.mark.core
@pytest.mark.parametrize(
    "module",
    [
        "deployguard_core.providers",
        "deployguard_core.providers.interfaces",
        "deployguard_core.targets",
        "deployguard_core.targets.resolver",
        "deployguard_core.gate",
        "deployguard_core.execution",
        "deployguard_core.audit",
        "deployguard_core.templates",
        "deployguard_core.pipeline",
        "deployguard_cli.cli",
        "local_adapter.deployment_service",
    ],
)
def test_module_imports_in_fresh_interpreter(module):
    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=ROOT,
        capture_output=True,
        text=True,
        check=False,
    )
    assert result.returncode == 0, result.stderr


def test_core_has_no_top_level_posix_only_imports():
    pattern = re.compile(r"^(import|from)\s+(fcntl|termios|pwd|grp)\b", re.M)
    offenders = []
    for path in (ROOT / "deployguard_core").rglob("*.py"):
        text = path.read_text(encoding="utf-8")
        if pattern.search(text):
            offenders.append(path.relative_to(ROOT).as_posix())
    assert offenders == []
