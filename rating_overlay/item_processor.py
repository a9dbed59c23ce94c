"""
Item processor for Media Rating Overlay.

Runs every eligible item of a library through the fixed per-item pipeline
(ratings -> ensure original poster -> locate it -> composite) on a task
group whose workers each hold one unit of the process-wide WorkerBudget.
Results are collected by a single thread that logs progress as items
complete and counts failures for the final report.
"""

import queue
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from .cancellation import CancelToken, TaskGroup, WorkerBudget
from .config import LibraryConfig
from .constants import logger
from .errors import (
    CancelledError,
    ParallelProcessingError,
    PosterComposeError,
    PosterEnsureError,
    PosterLocateError,
    PostersNotSetError,
    RatingFetchError,
    is_cancellation,
)
from .models import Item, PosterResult
from .ratings import ItemEligibilityService, RatingBuilder

# Marks the end of the result stream for the collector
_DONE = object()


@dataclass
class ProcessingReport:
    library: str
    total: int = 0
    processed: int = 0
    ineligible: int = 0
    with_errors: int = 0
    results: List[PosterResult] = field(default_factory=list)


class ItemProcessor:
    def __init__(
        self,
        budget: WorkerBudget,
        poster_generator,
        eligibility: ItemEligibilityService,
        rating_builder: RatingBuilder,
    ):
        self.budget = budget
        self.poster_generator = poster_generator
        self.eligibility = eligibility
        self.rating_builder = rating_builder
        self.posters = None

    def set_posters(self, posters) -> None:
        """Install the posters handle of the library about to be processed."""
        self.posters = posters

    # ========================================================================
    # Batch
    # ========================================================================

    def process_items(self, token: CancelToken, items: List[Item], library_config: LibraryConfig) -> ProcessingReport:
        if self.posters is None:
            logger.error('POSTERS_NOT_SET poster service must be set before processing items')
            raise PostersNotSetError()

        posters = self.posters
        total = len(items)
        report = ProcessingReport(library=library_config.name, total=total)
        results: 'queue.Queue' = queue.Queue(maxsize=total + 1)

        collector = threading.Thread(
            target=self._collect, args=(results, report), name='result-collector', daemon=True)
        collector.start()

        group = TaskGroup(token, self.budget.size, name='item-worker')
        stopped: Optional[BaseException] = None
        for index, item in enumerate(items):
            if not self.eligibility.is_eligible(item):
                report.ineligible += 1
                continue
            if group.token.cancelled:
                stopped = group.token.error
                logger.debug(f"ITEM_SPAWN_STOPPED library={library_config.name} index={index}")
                break
            group.spawn(self._work, group.token, item.clone(), index, posters, library_config, results)

        error = group.wait() or stopped
        results.put(_DONE)
        collector.join()

        if error is not None:
            logger.error(f"PARALLEL_PROCESSING_FAILED library={library_config.name} error={error}")
            raise ParallelProcessingError('error during parallel processing', error)

        report.processed = total - report.ineligible
        logger.info(
            f"PROCESSING_REPORT library={library_config.name} total={report.total} "
            f"processed={report.processed} ineligible={report.ineligible} with_errors={report.with_errors}"
        )
        return report

    def _work(self, token: CancelToken, item: Item, index: int, posters, library_config: LibraryConfig,
              results: 'queue.Queue') -> None:
        self.budget.acquire(token)
        try:
            result = self.process_item(token, item, index, posters, library_config)
        finally:
            self.budget.release()
        # A cancelled group reports the cancellation instead of the result
        token.check()
        results.put(result)

    @staticmethod
    def _collect(results: 'queue.Queue', report: ProcessingReport) -> None:
        completed = 0
        while True:
            result = results.get()
            if result is _DONE:
                return
            completed += 1
            report.results.append(result)
            status = 'completed'
            if result.error is not None:
                status = 'cancelled' if is_cancellation(result.error) else 'failed'
                report.with_errors += 1
            logger.info(
                f"ITEM_PROCESSED progress={completed}/{report.total} title={result.title} status={status} "
                f"original={result.original_path} poster={result.overlay_path}"
                + (f" error={result.error}" if result.error is not None else '')
            )

    # ========================================================================
    # Single item
    # ========================================================================

    def process_item(self, token: CancelToken, item: Item, index: int, posters,
                     library_config: LibraryConfig) -> PosterResult:
        """
        Run one item through the pipeline.

        Never raises: a failure in any stage is recorded on the returned
        PosterResult, under that stage's error kind, together with the paths
        computed so far. Cancellation is reported by the caller.
        """
        logger.debug(f"ITEM_START index={index} id={item.id} title={item.title}")

        if token.cancelled:
            return PosterResult(item.title, error=CancelledError('rating-build', token.error))

        try:
            self.rating_builder.build_ratings(token, item)
        except Exception as e:
            return PosterResult(item.title, error=RatingFetchError('unable to build ratings', e))
        logger.debug(f"ITEM_RATINGS id={item.id} ratings={[(r.name, r.type, r.score) for r in item.ratings]}")

        try:
            posters.ensure_poster_exists(token, item, library_config)
        except Exception as e:
            return PosterResult(item.title, error=PosterEnsureError('unable to ensure poster exists', e))

        try:
            original_path = posters.get_poster_disk_position(item, library_config)
        except Exception as e:
            return PosterResult(item.title, error=PosterLocateError('unable to locate poster', e))

        if token.cancelled:
            return PosterResult(item.title, original_path, error=CancelledError('poster-compose', token.error))

        try:
            overlay_path = self.poster_generator.apply_logos(token, original_path, library_config, item)
        except Exception as e:
            return PosterResult(item.title, original_path,
                                error=PosterComposeError('unable to apply logos', e))

        if token.cancelled:
            return PosterResult(item.title, original_path, error=CancelledError('result', token.error))

        logger.debug(f"ITEM_DONE index={index} id={item.id} poster={overlay_path}")
        return PosterResult(item.title, original_path, overlay_path)
