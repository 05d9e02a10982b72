"""Accepted-file-type policy of the storage route."""
from pathlib import PurePath
from typing import Iterable, Tuple

from ..models import StagedFile


class AcceptedFileTypes:
    """
    Extension allowlist, mirroring the ``accept`` setting of the storage bucket.

    Implements IFilePolicy protocol.
    """

    def __init__(self, extensions: Iterable[str] = (".csv",)):
        self._extensions: Tuple[str, ...] = tuple(self._normalize(ext) for ext in extensions)

    @staticmethod
    def _normalize(ext: str) -> str:
        ext = ext.strip().lower()
        return ext if ext.startswith(".") else f".{ext}"

    @property
    def extensions(self) -> Tuple[str, ...]:
        return self._extensions

    def is_accepted(self, file: StagedFile) -> bool:
        if not self._extensions:
            return True
        return PurePath(file.name).suffix.lower() in self._extensions

    def describe(self) -> str:
        return ", ".join(self._extensions) if self._extensions else "any"
