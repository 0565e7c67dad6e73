"""Atomic persistence of the documentation IR for debugging and audit."""

from __future__ import annotations

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict

from ..logging import get_logger
from ..docs.ir import DocumentationIR

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    slug = _SLUG_PATTERN.sub("-", name.lower()).strip("-")
    return slug or "project"


class IRStore:
    """Writes ``<debug_dir>/[<project-id-slug>/]<project-slug>.ir.json``; readers never see a partial file.

    Passing ``project_id`` keeps projects whose names slug alike from sharing a file.
    """

    SUFFIX = ".ir.json"

    def __init__(self, debug_dir: Path, *, project_id: str | None = None) -> None:
        self.debug_dir = Path(debug_dir)
        if project_id:
            self.debug_dir = self.debug_dir / slugify(project_id)
        self.logger = get_logger("stores.ir")

    def path_for(self, project_name: str) -> Path:
        return self.debug_dir / f"{slugify(project_name)}{self.SUFFIX}"

    def persist(self, ir: DocumentationIR) -> Path:
        path = self.path_for(ir.project_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            delete=False,
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
        ) as tmp:
            tmp_path = Path(tmp.name)
            try:
                tmp.write(ir.to_json())
                tmp.write("\n")
                tmp.flush()
            except OSError:
                tmp.close()
                tmp_path.unlink(missing_ok=True)
                raise
        try:
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        self.logger.info("Persisted IR to %s", path)
        return path

    def load(self, project_name: str) -> Dict[str, Any]:
        """Return the persisted IR payload; raises ``FileNotFoundError`` when absent."""
        path = self.path_for(project_name)
        return json.loads(path.read_text(encoding="utf-8"))


__all__ = ["IRStore", "slugify"]
