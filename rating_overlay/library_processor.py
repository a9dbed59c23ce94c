"""
Library processor for Media Rating Overlay.

Drives one configured library under its own deadline: locate it on the media
server, fetch its items, hand them to the item processor and optionally ask
the server to rescan. The token is re-checked before every step that does
I/O so a timed-out or cancelled library stops at the next boundary.
"""

from dataclasses import dataclass
from typing import List, Optional

from .cancellation import CancelToken
from .config import LibraryConfig
from .constants import logger
from .errors import (
    CancelledError,
    HandleMissingError,
    ItemsRetrievalError,
    LibraryNotFoundError,
    RefreshError,
)
from .item_processor import ItemProcessor, ProcessingReport
from .models import Library


@dataclass
class MediaHandles:
    """The per-service handles a library needs: libraries, items and posters."""
    libraries: object = None
    items: object = None
    posters: object = None


class LibraryProcessor:
    def __init__(self, item_processor: ItemProcessor, default_timeout: float):
        self.item_processor = item_processor
        self.default_timeout = default_timeout

    def process_library(
        self,
        parent: CancelToken,
        library_config: LibraryConfig,
        libraries: List[Library],
        handles: MediaHandles,
    ) -> Optional[ProcessingReport]:
        """
        Process one library.

        Returns the item processing report, or None when there was nothing to
        do (disabled library, no items). Raises on library-level failures.
        """
        token = parent.with_timeout(self.default_timeout)
        try:
            return self._process(token, library_config, libraries, handles)
        finally:
            token.release()

    def _process(self, token: CancelToken, library_config: LibraryConfig, libraries: List[Library],
                 handles: MediaHandles) -> Optional[ProcessingReport]:
        self._checkpoint(token, 'processing')
        self.validate_handles(handles)

        logger.info(f"LIBRARY_START library={library_config.name}")
        if not library_config.enabled:
            logger.info(f"LIBRARY_SKIPPED library={library_config.name} reason=disabled")
            return None

        library = next((lib for lib in libraries if lib.name == library_config.name), None)
        if library is None:
            raise LibraryNotFoundError(library_config.name)
        logger.info(f"LIBRARY_FOUND id={library.id} name={library.name}")

        self._checkpoint(token, 'items-retrieval')
        try:
            items = handles.items.get_items(token, library, library_config)
        except Exception as e:
            raise ItemsRetrievalError('unable to retrieve items', e)

        if not items:
            logger.info(f"LIBRARY_EMPTY library={library.name}")
            return None

        logger.info(f"LIBRARY_ITEMS library={library.name} count={len(items)}")
        self._checkpoint(token, 'items-processing')
        self.item_processor.set_posters(handles.posters)
        report = self.item_processor.process_items(token, items, library_config)

        self._checkpoint(token, 'refresh')
        if library_config.refresh:
            logger.info(f"LIBRARY_REFRESH library={library.name}")
            try:
                handles.libraries.refresh_library(token, library.id, True)
            except Exception as e:
                raise RefreshError('unable to refresh library', e)
            logger.info(f"LIBRARY_REFRESHED library={library.name}")

        return report

    @staticmethod
    def _checkpoint(token: CancelToken, stage: str) -> None:
        if token.cancelled:
            raise CancelledError(stage, token.error)

    @staticmethod
    def validate_handles(handles: MediaHandles) -> None:
        for name in ('libraries', 'items', 'posters'):
            if getattr(handles, name) is None:
                logger.error(f"HANDLE_MISSING handle={name}")
                raise HandleMissingError(name)
