"""Published bandwidth file.

Format, one relay per line after a timestamp header:

    <unix-epoch-seconds>
    node_id=$<IDENTITY> bw=<integer> nick=<NICKNAME>

Each publish writes ``<basename>.<version>`` and then repoints the
well-known ``<basename>`` symlink at it. Nothing here is transactional:
a crash between the two steps leaves the previous link in place.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from relayscan.models.types import BandwidthEntry

logger = logging.getLogger(__name__)


def render_report(entries: Iterable[BandwidthEntry], timestamp: int) -> str:
    """Render the bandwidth file contents.

    Args:
        entries: Relays in output order.
        timestamp: Unix epoch seconds for the header line.

    Returns:
        File contents, newline terminated.
    """
    lines = [str(int(timestamp))]
    lines.extend(entry.to_line() for entry in entries)
    return "\n".join(lines) + "\n"


def versioned_path(base_path: Path, version: int) -> Path:
    """Path of the file written for a given publish version."""
    return base_path.with_name(f"{base_path.name}.{version}")


def write_versioned(base_path: Path, version: int, content: str) -> Path:
    """Write a new versioned report file.

    Args:
        base_path: Well-known published filename.
        version: Publish version to suffix.
        content: Rendered report.

    Returns:
        Path of the written file.

    Raises:
        OSError: If the file cannot be written.
    """
    path = versioned_path(base_path, version)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    return path


def relink(link_path: Path, target: Path) -> bool:
    """Point ``link_path`` at ``target``, replacing any existing link.

    The link is relative (target's file name) since both live in the same
    directory. Failures are logged as warnings and reported through the
    return value, never raised.

    Args:
        link_path: Well-known published filename.
        target: Newly written versioned file.

    Returns:
        True if the link now points at target.
    """
    try:
        os.unlink(link_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Unable to remove symlink to {link_path}: {e}")

    try:
        os.symlink(target.name, link_path)
    except OSError as e:
        logger.warning(f"Unable to create symlink from {target} to {link_path}: {e}")
        return False

    return True
