"""
Filesystem utilities for depresolve.

Safe helpers for the two kinds of files depresolve persists: lock files
and metadata cache entries. Writes are atomic (temporary file, fsync,
rename) so readers never observe a partially written file. All filesystem
errors are normalized to ``FileOperationError``.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterator, Optional, Union

from depresolve.constants import MAX_FILE_SIZE
from depresolve.exceptions import FileOperationError
from depresolve.utils.logger import get_logger


logger = get_logger("filesystem")

PathLike = Union[str, Path]


def _validated_file(path: Path) -> Path:
    """Validate that *path* is an existing regular file and resolve it."""
    if not path.exists():
        raise FileOperationError(
            f"File not found: {path}",
            file_path=str(path),
            operation="read",
        )
    if not path.is_file():
        raise FileOperationError(
            f"Not a file: {path}",
            file_path=str(path),
            operation="read",
        )
    return path.resolve()


def atomic_write_text(file_path: PathLike, content: str) -> Path:
    """Atomically write text to a file using a temporary file + replace.

    Parent directories are created as needed. The temporary file lives in
    the target directory so the final rename never crosses filesystems.

    Returns:
        The path written.
    """
    target = Path(file_path)
    temp_path: Optional[Path] = None

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(target.parent),
            delete=False,
            prefix=f".{target.name}.",
            suffix=".tmp",
        ) as tmp:
            temp_path = Path(tmp.name)
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())

        temp_path.replace(target)

    except OSError as exc:
        if temp_path and temp_path.exists():
            try:
                temp_path.unlink()
                logger.debug("Cleaned up temporary file: %s", temp_path)
            except OSError as cleanup_exc:
                logger.warning(
                    "Failed to clean up temporary file %s: %s",
                    temp_path,
                    cleanup_exc,
                )

        raise FileOperationError(
            f"Atomic write failed: {exc}",
            file_path=str(target),
            operation="write",
            original_error=exc,
        ) from exc

    return target


def safe_read_file(
    file_path: PathLike,
    *,
    max_size: Optional[int] = MAX_FILE_SIZE,
    encoding: str = "utf-8",
) -> str:
    """Return the text of a lock file, cache entry or requirements file.

    Files larger than *max_size* bytes are refused so a corrupt or hostile
    cache entry cannot exhaust memory; pass ``None`` to lift the limit.
    """
    path = _validated_file(Path(file_path))

    try:
        size = path.stat().st_size
        if max_size is not None and size > max_size:
            raise FileOperationError(
                f"File too large: {size} bytes (max {max_size})",
                file_path=str(path),
                operation="read",
            )
        return path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as exc:
        raise FileOperationError(
            f"Failed to read file: {exc}",
            file_path=str(path),
            operation="read",
            original_error=exc,
        ) from exc


def remove_file(file_path: PathLike, *, missing_ok: bool = True) -> bool:
    """Delete a file.

    Returns:
        True if a file was removed, False if it did not exist.
    """
    path = Path(file_path)
    try:
        path.unlink()
    except FileNotFoundError:
        if missing_ok:
            return False
        raise FileOperationError(
            f"File not found: {path}",
            file_path=str(path),
            operation="delete",
        )
    except OSError as exc:
        raise FileOperationError(
            f"Failed to delete file: {exc}",
            file_path=str(path),
            operation="delete",
            original_error=exc,
        ) from exc
    return True


def iter_files(directory: PathLike, *, suffix: str = "") -> Iterator[Path]:
    """Yield regular files directly inside *directory*, sorted by name.

    Temporary files left by an interrupted :func:`atomic_write_text`
    (dot-prefixed) are skipped. A missing directory yields nothing.
    """
    root = Path(directory)
    if not root.is_dir():
        return
    for entry in sorted(root.iterdir()):
        if entry.name.startswith("."):
            continue
        if suffix and not entry.name.endswith(suffix):
            continue
        if entry.is_file():
            yield entry


def validate_path(
    path: PathLike,
    *,
    base_dir: Optional[PathLike] = None,
) -> Path:
    """Expand ``~`` and resolve *path*, optionally confining it to *base_dir*."""
    resolved = Path(path).expanduser().resolve(strict=False)

    if base_dir:
        base = Path(base_dir).resolve(strict=False)
        try:
            resolved.relative_to(base)
        except ValueError:
            raise FileOperationError(
                f"Path outside allowed base directory: {resolved}",
                file_path=str(path),
                operation="validate",
            )

    return resolved
