from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILE_ENV = "STUDYTOOLS_CONFIG"
HOME_ENV = "STUDYTOOLS_HOME"


def get_repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def get_project_config_path() -> Path:
    """``$STUDYTOOLS_CONFIG`` if set, else ``config.yaml`` at the repo root.

    Deployments that install the package outside a checkout point this at
    their config file instead of shipping one next to the code.
    """
    explicit = os.environ.get(CONFIG_FILE_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return get_repo_root() / "config.yaml"


def get_global_config_path() -> Path:
    home = os.environ.get(HOME_ENV)
    base = Path(home).expanduser() if home else Path.home() / ".studytools"
    return base / "config.yaml"
