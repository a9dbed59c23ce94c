"""
Run orchestrator and command-line entry point.

Usage:
    media-rating-overlay [--config-dir DIR] [--env ENV]
    media-rating-overlay --init-config [--config-dir DIR]

One run walks every media service and, within each, every enabled library in
order, under a single run-wide deadline. A library failure is logged and the
next library proceeds; SIGINT/SIGTERM cancel the run token.
"""

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

from .cancellation import CancelToken, WorkerBudget
from .config import Config, format_duration, get_env, load_config, resolve_max_threads, write_sample_config
from .constants import logger, BASE_CONFIG_NAME, DEFAULT_CONFIG_DIR, SHUTDOWN_GRACE_SECONDS
from .errors import CancelledError, ConfigError, OverlayError, ServiceInitError, is_deadline_error
from .library_processor import LibraryProcessor
from .logs import configure_logging
from .registry import MediaService, ServiceRegistry

TIMEOUT_HINT = (
    "Try increasing 'processor.library_processor.default_timeout' in your config. "
    "Current timeout for this library was: {library}. Overall application timeout is: {overall}"
)


class App:
    def __init__(
        self,
        config: Config,
        media_services: List[MediaService],
        library_processor: LibraryProcessor,
    ):
        self.config = config
        self.media_services = media_services
        self.library_processor = library_processor
        self.root = CancelToken.background()
        self.done = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._shutdown_called = False

    def install_signal_handlers(self) -> None:
        """Cancel the run on SIGINT/SIGTERM without waiting for it to finish."""
        def _handler(signum, frame):
            logger.info(f"SIGNAL_RECEIVED signal={signal.Signals(signum).name}")
            self.root.cancel()

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)

    def run(self) -> None:
        start = time.monotonic()
        logger.info('RUN_START')
        token = self.root.with_timeout(self.config.performance.library_processing_timeout)
        try:
            for service in self.media_services:
                if token.cancelled:
                    raise CancelledError(f"media-service-{service.name}", token.error)
                self._process_service(token, service)
            logger.info(f"RUN_COMPLETE duration={time.monotonic() - start:.2f}s")
        finally:
            token.release()
            self.done.set()

    def _process_service(self, token: CancelToken, service: MediaService) -> None:
        logger.info(f"MEDIA_SERVICE_START name={service.name}")
        try:
            libraries = service.libraries.get_libraries(token)
        except Exception as e:
            logger.error(f"LIBRARIES_FETCH_FAILED media_service={service.name} error={e}")
            return

        for library_config in service.library_configs:
            if token.cancelled:
                raise CancelledError(f"library-{library_config.name}", token.error)
            try:
                self.library_processor.process_library(token, library_config, libraries, service.handles)
            except OverlayError as e:
                if is_deadline_error(e):
                    hint = TIMEOUT_HINT.format(
                        library=format_duration(self.library_processor.default_timeout),
                        overall=format_duration(self.config.performance.library_processing_timeout),
                    )
                    logger.error(
                        f"LIBRARY_FAILED library={library_config.name} kind={e.kind} reason=timeout "
                        f"error={e} suggestion={hint}"
                    )
                else:
                    logger.error(f"LIBRARY_FAILED library={library_config.name} kind={e.kind} error={e}")

    def shutdown(self, grace: float = SHUTDOWN_GRACE_SECONDS) -> None:
        with self._shutdown_lock:
            if self._shutdown_called:
                return
            self._shutdown_called = True

        logger.info('SHUTDOWN_START')
        self.root.cancel()
        if self.done.wait(grace):
            logger.info('SHUTDOWN_COMPLETE all processing completed')
        else:
            logger.warning(f"SHUTDOWN_TIMEOUT processing still running after {grace:.0f}s")
        logger.info('SHUTDOWN_DONE application terminated')


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='media-rating-overlay',
        description='Composite rating badges onto the movie posters of media libraries.',
    )
    parser.add_argument('--config-dir', default=DEFAULT_CONFIG_DIR,
                        help=f"directory holding {BASE_CONFIG_NAME} (default: %(default)s)")
    parser.add_argument('--env', default=None, help='environment name (default: $ENV or DEV)')
    parser.add_argument('--init-config', action='store_true',
                        help=f"write a sample {BASE_CONFIG_NAME} into --config-dir and exit")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config_dir = Path(args.config_dir)

    if args.init_config:
        target = config_dir / BASE_CONFIG_NAME
        if not write_sample_config(target):
            logger.error(f"CONFIG_EXISTS path={target} refusing to overwrite")
            return 1
        return 0

    env = (args.env or get_env()).upper()
    try:
        config = load_config(config_dir, env)
    except ConfigError as e:
        logger.error(f"CONFIG_INVALID error={e}")
        return 1

    configure_logging(config.logger, env)
    logger.info(f"APP_INIT environment={env}")

    try:
        registry = ServiceRegistry(config).initialize()
    except ServiceInitError as e:
        logger.error(f"SERVICE_INIT_FAILED error={e}")
        return 1

    max_threads = resolve_max_threads(config.performance.max_threads)
    logger.info(f"WORKER_BUDGET max_threads={max_threads}")
    budget = WorkerBudget(max_threads)

    app = App(config, registry.media_services, registry.build_library_processor(budget))
    app.install_signal_handlers()
    try:
        app.run()
    except OverlayError as e:
        logger.error(f"RUN_FAILED kind={e.kind} error={e}")
        return 1
    finally:
        app.shutdown()
    return 0


if __name__ == '__main__':
    sys.exit(main())
