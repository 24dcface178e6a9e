from __future__ import annotations

import os
import subprocess
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DISTRIBUTION_NAME = "livecanvas"


@lru_cache(maxsize=1)
def project_version() -> str:
    try:
        value = version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "0.0.0"
    return str(value).strip() or "0.0.0"


@lru_cache(maxsize=1)
def project_revision() -> str:
    env_value = str(os.getenv("LIVECANVAS_BUILD_REVISION", "")).strip()
    if env_value:
        return env_value
    try:
        revision = (
            subprocess.check_output(
                ["git", "rev-parse", "--short", "HEAD"],
                cwd=PROJECT_ROOT,
                stderr=subprocess.DEVNULL,
                text=True,
            )
            .strip()
        )
    except (OSError, subprocess.CalledProcessError):
        return "dev"
    return revision or "dev"
