"""
Poster file placement: existence checks, saving, path derivation and backup.
"""

import os

from .constants import (
    logger,
    BACKUP_SUFFIX,
    ORIGINAL_POSTER_FILE_MODE,
    POSTER_MARKER_FROM,
    POSTER_MARKER_TO,
)
from .errors import BackupError

# Extensions of earlier composited posters that get backed up before a write
BACKUP_EXTENSIONS = ('.jpeg', '.jpg')


class FileManager:
    def check_if_poster_exists(self, file_path: str) -> bool:
        """True if the file exists; stat errors other than ENOENT propagate."""
        try:
            os.stat(file_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"POSTER_STAT_FAILED path={file_path} error={e}")
            raise
        logger.debug(f"POSTER_FOUND path={file_path}")
        return True

    def save_poster(self, file_path: str, data: bytes) -> None:
        logger.debug(f"POSTER_SAVE path={file_path} bytes={len(data)}")
        try:
            with open(file_path, 'wb') as f:
                f.write(data)
            os.chmod(file_path, ORIGINAL_POSTER_FILE_MODE)
        except OSError as e:
            logger.error(f"POSTER_SAVE_FAILED path={file_path} error={e}")
            raise

    @staticmethod
    def generate_poster_file_path(file_path: str, ext: str) -> str:
        """Swap the extension for ``ext``, then the first ``-original.`` of the basename for ``-poster.``."""
        directory, name = os.path.split(file_path)
        root, _ = os.path.splitext(name)
        return os.path.join(directory, (root + ext).replace(POSTER_MARKER_FROM, POSTER_MARKER_TO, 1))

    def backup_existing_poster(self, file_path: str) -> None:
        """Rename earlier ``-poster.jpeg``/``-poster.jpg`` files to ``<name>-backup``."""
        for ext in BACKUP_EXTENSIONS:
            candidate = self.generate_poster_file_path(file_path, ext)
            if not os.path.exists(candidate):
                continue
            backup_path = candidate + BACKUP_SUFFIX
            logger.debug(f"POSTER_BACKUP from={candidate} to={backup_path}")
            try:
                os.rename(candidate, backup_path)
            except OSError as e:
                logger.debug(f"POSTER_BACKUP_FAILED path={candidate} error={e}")
                raise BackupError(e)
