"""File handler module: encoding-aware reads and safe copies.

Provides the file I/O helpers shared by the executor (copying upstream
files over local ones) and the reporter (decoding text for conflict
previews).  All functions are pure apart from file I/O.
"""

import shutil
from pathlib import Path

from charset_normalizer import from_bytes

# Files larger than this are never decoded for previews.
MAX_PREVIEW_BYTES = 512 * 1024


def read_text_file(path: Path) -> tuple[str, str] | None:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Empty files decode as UTF-8.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding), or ``None`` if the
        content does not look like text.

    Raises:
        OSError: If the file cannot be read.
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")
    if b"\x00" in raw[:8192]:
        return None

    result = from_bytes(raw).best()
    if result is None:
        return None
    encoding = result.encoding
    # ascii is a strict subset of utf-8
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(result), encoding)


def copy_file(source: Path, destination: Path) -> int:
    """Copy *source* over *destination*, creating parent directories.

    File mode bits are preserved so executable scripts stay executable.

    Returns:
        Number of bytes copied.

    Raises:
        OSError: If the copy fails.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    return destination.stat().st_size
