"""Runtime paths and static app settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    backend_root: Path
    runtime_root: Path
    staging_root: Path
    config_path: Path
    db_path: Path


def build_paths() -> AppPaths:
    backend_root = Path(__file__).resolve().parents[2]
    project_root = backend_root.parent
    runtime_root = project_root / "runtime"
    staging_root = runtime_root / "staging"
    config_path = runtime_root / "config.json"
    db_path = runtime_root / "app.sqlite3"

    runtime_root.mkdir(parents=True, exist_ok=True)
    staging_root.mkdir(parents=True, exist_ok=True)

    return AppPaths(
        project_root=project_root,
        backend_root=backend_root,
        runtime_root=runtime_root,
        staging_root=staging_root,
        config_path=config_path,
        db_path=db_path,
    )


APP_VERSION = "0.1.0"
PATHS = build_paths()
