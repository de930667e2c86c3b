from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Iterable


def _sha256_files(paths: Iterable[Path]) -> str:
    hasher = hashlib.sha256()
    for path in paths:
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(1024 * 1024), b""):
                hasher.update(chunk)
    return hasher.hexdigest()


class ArtifactStore:
    def __init__(self, base_dir: str | Path, analysis_id: str, run_id: str | None = None) -> None:
        self.base_dir = Path(base_dir)
        self.analysis_id = analysis_id
        self.run_id = run_id
        self.base_root = self.base_dir / analysis_id
        self.root = self.base_root / "runs" / run_id if run_id else self.base_root

    @staticmethod
    def compute_analysis_id(input_paths: Iterable[str | Path]) -> str:
        paths = sorted(Path(path) for path in input_paths)
        if not paths:
            raise ValueError("At least one input path is required")
        return _sha256_files(paths)

    def path(self, *parts: str) -> Path:
        return self.root.joinpath(*parts)

    def write_json(self, rel_path: str, data: Any) -> Path:
        path = self.path(rel_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=True)
        return path

    def write_text(self, rel_path: str, text: str) -> Path:
        path = self.path(rel_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path
