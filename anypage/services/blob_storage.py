"""Filesystem blob namespace for uploaded document bytes."""

from __future__ import annotations

from pathlib import Path, PurePosixPath


class LocalBlobStorage:
    """Stores blobs under a root directory, addressed by relative storage keys."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, storage_reference: str) -> Path:
        """Return the on-disk path for ``storage_reference``.

        Raises ``ValueError`` for keys that would escape the storage root.
        """

        key = PurePosixPath(storage_reference)
        if key.is_absolute() or ".." in key.parts or not key.parts:
            raise ValueError(f"Invalid storage reference: {storage_reference!r}")
        return self.root.joinpath(*key.parts)

    def exists(self, storage_reference: str) -> bool:
        try:
            return self.path_for(storage_reference).is_file()
        except ValueError:
            return False

    def commit(self, source: Path, storage_reference: str) -> Path:
        """Move a fully written temporary file into place."""

        destination = self.path_for(storage_reference)
        destination.parent.mkdir(parents=True, exist_ok=True)
        Path(source).replace(destination)
        return destination

    def delete(self, storage_reference: str) -> None:
        self.path_for(storage_reference).unlink(missing_ok=True)


__all__ = ["LocalBlobStorage"]
