from __future__ import annotations

from pathlib import Path


def get_datas_dir() -> Path:
    return Path(__file__).resolve().parents[2] / "datas"


def get_uploads_dir(root: Path) -> Path:
    return root / "uploads"


def get_sessions_dir(root: Path) -> Path:
    return root / "sessions"
