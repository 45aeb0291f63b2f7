import io
import logging
import posixpath
import zipfile
from abc import ABC, abstractmethod
from typing import List

from fsspec import AbstractFileSystem

from ..domain.errors import ArchiveExtractionError

logger = logging.getLogger(__name__)


class Archiver(ABC):
    @abstractmethod
    def extract(self, fs: AbstractFileSystem, archive_path: str, destination: str) -> List[str]:
        """extract the archive at archive_path into destination, returning written paths."""
        pass


class ZipArchiver(Archiver):
    def extract(self, fs: AbstractFileSystem, archive_path: str, destination: str) -> List[str]:
        try:
            data = fs.cat_file(archive_path)
        except (FileNotFoundError, OSError) as e:
            raise ArchiveExtractionError(f"cannot read archive '{archive_path}': {e}") from e

        destination = destination.rstrip("/") or "/"
        written = []
        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
                members = zf.infolist()
                # validate every entry before touching the file system
                targets = [(info, self._target_path(destination, info.filename)) for info in members]
                fs.makedirs(destination, exist_ok=True)
                for info, target in targets:
                    if info.is_dir():
                        fs.makedirs(target, exist_ok=True)
                        continue
                    parent = posixpath.dirname(target)
                    if parent and parent != destination:
                        fs.makedirs(parent, exist_ok=True)
                    fs.pipe_file(target, zf.read(info))
                    written.append(target)
        except zipfile.BadZipFile as e:
            raise ArchiveExtractionError(f"'{archive_path}' is not a valid zip archive: {e}") from e

        logger.debug(f"extracted {len(written)} files from {archive_path} into {destination}")
        return written

    def _target_path(self, destination: str, member: str) -> str:
        target = posixpath.normpath(posixpath.join(destination, member))
        if posixpath.isabs(member) or not (target == destination or target.startswith(destination.rstrip("/") + "/")):
            raise ArchiveExtractionError(f"archive entry '{member}' escapes the destination")
        return target
