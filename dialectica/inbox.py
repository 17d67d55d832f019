"""Topic sources: markdown topic files with optional frontmatter, and the inbox folder."""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter

logger = logging.getLogger(__name__)


@dataclass
class TopicFile:
    path: Path
    topic: str
    mode: str | None = None              # frontmatter "mode"
    personas: list[str] | None = None    # frontmatter "personas", list or comma string


def _split_personas(value: object) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        raise ValueError(f"Unsupported personas value: {value!r}")
    return [p.strip().upper() for p in items if p.strip()]


def read_topic_file(file_path: Path) -> TopicFile:
    """Parse a topic file.

    Frontmatter is optional; supported keys are ``mode`` and ``personas``.
    Unknown keys are ignored.
    """
    post = frontmatter.load(str(file_path))
    meta = dict(post.metadata)
    mode = meta.get("mode")
    return TopicFile(
        path=file_path,
        topic=post.content.strip(),
        mode=str(mode) if mode is not None else None,
        personas=_split_personas(meta.get("personas")),
    )


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return the .md files waiting in inbox_dir, oldest first. Creates the folder if needed."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    return sorted(inbox_dir.glob("*.md"), key=lambda p: p.stat().st_mtime)


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move a processed topic file into archive_dir under a timestamped name.

    Files whose run failed get a ``FAILED_`` prefix.
    """
    archive_dir.mkdir(parents=True, exist_ok=True)
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{datetime.now().strftime('%Y-%m-%dT%H%M')}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    logger.debug("Archived %s -> %s", file_path.name, dest)
    return dest
