#!/usr/bin/env python3
"""
Unit tests for the library processor.

Run with:
    python3 -m pytest rating_overlay/test_library_processor.py -v
"""

import unittest
from unittest.mock import MagicMock

from rating_overlay.cancellation import CancelToken
from rating_overlay.config import LibraryConfig
from rating_overlay.errors import (
    CancelledError,
    HandleMissingError,
    HTTPRequestError,
    ItemsRetrievalError,
    LibraryNotFoundError,
    RefreshError,
)
from rating_overlay.item_processor import ProcessingReport
from rating_overlay.library_processor import LibraryProcessor, MediaHandles
from rating_overlay.models import Item, Library

LIBRARIES = [Library('1', 'Movies', 'movie'), Library('2', 'Kids', 'movie')]


def make_handles(items=None):
    handles = MediaHandles(libraries=MagicMock(), items=MagicMock(), posters=MagicMock())
    handles.items.get_items.return_value = items if items is not None else [Item('7', 'Arrival', is_eligible=True)]
    return handles


def make_processor():
    item_processor = MagicMock()
    item_processor.process_items.return_value = ProcessingReport(library='Movies', total=1, processed=1)
    return LibraryProcessor(item_processor, default_timeout=60), item_processor


class TestLibraryProcessor(unittest.TestCase):
    """Tests for LibraryProcessor.process_library"""

    def test_processes_and_refreshes(self):
        """Items are processed with the posters handle, then the library is refreshed"""
        processor, item_processor = make_processor()
        handles = make_handles()
        config = LibraryConfig(name='Movies', enabled=True, refresh=True)
        report = processor.process_library(CancelToken.background(), config, LIBRARIES, handles)

        self.assertEqual(report.processed, 1)
        item_processor.set_posters.assert_called_once_with(handles.posters)
        library = handles.items.get_items.call_args[0][1]
        self.assertEqual(library.id, '1')
        self.assertEqual(handles.libraries.refresh_library.call_args[0][1:], ('1', True))

    def test_no_refresh_when_disabled(self):
        """refresh: false skips the rescan"""
        processor, _ = make_processor()
        handles = make_handles()
        processor.process_library(CancelToken.background(), LibraryConfig(name='Movies', enabled=True),
                                  LIBRARIES, handles)
        handles.libraries.refresh_library.assert_not_called()

    def test_disabled_library(self):
        """Disabled libraries are skipped without any I/O"""
        processor, item_processor = make_processor()
        handles = make_handles()
        result = processor.process_library(CancelToken.background(), LibraryConfig(name='Movies'), LIBRARIES, handles)
        self.assertIsNone(result)
        handles.items.get_items.assert_not_called()
        item_processor.process_items.assert_not_called()

    def test_library_not_found(self):
        """A configured name the server does not know fails"""
        processor, _ = make_processor()
        with self.assertRaises(LibraryNotFoundError):
            processor.process_library(CancelToken.background(), LibraryConfig(name='Docs', enabled=True),
                                      LIBRARIES, make_handles())

    def test_handle_missing(self):
        """Every handle must be present"""
        processor, _ = make_processor()
        handles = make_handles()
        handles.posters = None
        with self.assertRaises(HandleMissingError) as ctx:
            processor.process_library(CancelToken.background(), LibraryConfig(name='Movies', enabled=True),
                                      LIBRARIES, handles)
        self.assertEqual(ctx.exception.handle, 'posters')

    def test_empty_library(self):
        """No items means nothing to process and no refresh"""
        processor, item_processor = make_processor()
        handles = make_handles(items=[])
        config = LibraryConfig(name='Movies', enabled=True, refresh=True)
        self.assertIsNone(processor.process_library(CancelToken.background(), config, LIBRARIES, handles))
        item_processor.process_items.assert_not_called()
        handles.libraries.refresh_library.assert_not_called()

    def test_items_error_is_wrapped(self):
        """Item retrieval failures become ItemsRetrievalError"""
        processor, _ = make_processor()
        handles = make_handles()
        handles.items.get_items.side_effect = HTTPRequestError('boom', 500)
        with self.assertRaises(ItemsRetrievalError) as ctx:
            processor.process_library(CancelToken.background(), LibraryConfig(name='Movies', enabled=True),
                                      LIBRARIES, handles)
        self.assertIsInstance(ctx.exception.__cause__, HTTPRequestError)

    def test_refresh_error_is_wrapped(self):
        """Refresh failures become RefreshError"""
        processor, _ = make_processor()
        handles = make_handles()
        handles.libraries.refresh_library.side_effect = HTTPRequestError('boom', 500)
        config = LibraryConfig(name='Movies', enabled=True, refresh=True)
        with self.assertRaises(RefreshError):
            processor.process_library(CancelToken.background(), config, LIBRARIES, handles)

    def test_cancelled_parent(self):
        """A cancelled parent stops before processing starts"""
        processor, _ = make_processor()
        parent = CancelToken.background()
        parent.cancel()
        with self.assertRaises(CancelledError) as ctx:
            processor.process_library(parent, LibraryConfig(name='Movies', enabled=True), LIBRARIES, make_handles())
        self.assertEqual(ctx.exception.stage, 'processing')


if __name__ == '__main__':
    unittest.main()
