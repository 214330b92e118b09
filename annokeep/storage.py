"""
Byte storage used by the settings store.

The store only needs three operations on paths relative to a root:
read bytes, write bytes, and test for existence. ``read`` raises
FileNotFoundError when nothing is stored at a path; any other OSError is
an I/O failure.
"""

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class ByteStorage(Protocol):
    """Interface for the persistence collaborator."""

    def read(self, path: str) -> bytes: ...

    def write(self, path: str, data: bytes) -> None: ...

    def exists(self, path: str) -> bool: ...


class FileStorage:
    """ByteStorage on the local filesystem, rooted at a directory."""

    def __init__(self, root: Path):
        """
        Args:
            root: Directory that relative paths are resolved against
        """
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        return self._root / path

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def write(self, path: str, data: bytes) -> None:
        """Write atomically: temp file in the same directory, then rename."""
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(target)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
