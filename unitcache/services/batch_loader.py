"""
Batch Loader Service

Loads many units concurrently against one shared cache service, with a
bounded worker pool and exactly one result per request.
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, List, Optional, Tuple, Union

from tqdm import tqdm

from ..core.exceptions import LoadFailure
from ..core.loader import LoadCallback, UnitLoader
from ..core.models import BatchLoadResult, LoadRequest, LoadResult
from ..utils.logging_config import get_logger, log_batch_complete, log_batch_start


RequestLike = Union[LoadRequest, Tuple[str, str]]
ProgressCallback = Callable[[int, int, str], None]


class BatchLoader:
    """
    Parallel unit loader

    Features:
    - ThreadPoolExecutor sized by the throttle limit
    - Per-request failure isolation
    - Cooperative cancellation and batch timeout
    - tqdm progress bar and progress callback
    """

    def __init__(self, unit_loader: UnitLoader, default_workers: Optional[int] = None,
                 batch_timeout: Optional[float] = None, show_progress: bool = False):
        self.unit_loader = unit_loader
        self.default_workers = default_workers or os.cpu_count() or 1
        self.batch_timeout = batch_timeout
        self.show_progress = show_progress
        self.logger = get_logger('batch')

    def resolve_workers(self, request_count: int, throttle_limit: Optional[int] = None) -> int:
        """Worker count clamped to [1, request_count]"""
        workers = throttle_limit if throttle_limit is not None else self.default_workers
        return max(1, min(workers, request_count))

    def load_batch(self, requests: Iterable[RequestLike], throttle_limit: Optional[int] = None,
                   force: bool = False, load_callback: Optional[LoadCallback] = None,
                   cancel_event: Optional[threading.Event] = None, timeout: Optional[float] = None,
                   progress_callback: Optional[ProgressCallback] = None,
                   show_progress: Optional[bool] = None) -> BatchLoadResult:
        """
        Load every request and collect one LoadResult each

        Args:
            requests: LoadRequest objects or (unit_name, source_path) tuples
            throttle_limit: Maximum concurrent loads (defaults to CPU count)
            force: Bypass every cache tier
            load_callback: Overrides the loader's default callback
            cancel_event: When set, requests that have not started report LoadCancelled
            timeout: Seconds after which cancel_event is set
            progress_callback: Called as (completed, total, unit_name)
            show_progress: Display a tqdm progress bar

        Returns:
            Finalized BatchLoadResult
        """
        load_requests = [LoadRequest.coerce(request) for request in requests]
        batch_result = BatchLoadResult()

        if not load_requests:
            batch_result.finalize()
            return batch_result

        workers = self.resolve_workers(len(load_requests), throttle_limit)
        batch_result.workers = workers
        cancel_event = cancel_event or threading.Event()
        timeout = timeout if timeout is not None else self.batch_timeout
        show_progress = self.show_progress if show_progress is None else show_progress

        log_batch_start(len(load_requests), workers, force)

        timer = None
        if timeout:
            timer = threading.Timer(timeout, self._expire, args=(cancel_event, timeout))
            timer.daemon = True
            timer.start()

        try:
            self._load_parallel(
                load_requests, workers, force, load_callback, cancel_event,
                batch_result, progress_callback, show_progress
            )
        finally:
            if timer is not None:
                timer.cancel()

        batch_result.finalize()
        log_batch_complete(
            batch_result.total_requests, batch_result.successful, batch_result.failed,
            batch_result.cancelled, batch_result.total_time
        )
        return batch_result

    def _load_parallel(self, load_requests: List[LoadRequest], workers: int, force: bool,
                       load_callback: Optional[LoadCallback], cancel_event: threading.Event,
                       batch_result: BatchLoadResult, progress_callback: Optional[ProgressCallback],
                       show_progress: bool):
        """Load requests in parallel using ThreadPoolExecutor"""
        completed_count = 0
        total = len(load_requests)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='unitcache-load') as executor, \
                tqdm(total=total, desc="Loading units", unit="unit", disable=not show_progress) as progress:
            # Submit all tasks
            future_to_request = {
                executor.submit(self.unit_loader.load_request, request, force, load_callback, cancel_event): request
                for request in load_requests
            }

            # Collect completed tasks
            for future in as_completed(future_to_request):
                request = future_to_request[future]
                completed_count += 1

                try:
                    result = future.result()
                except Exception as e:
                    result = LoadResult(
                        unit_name=request.unit_name,
                        source_path=request.source_path,
                        success=False,
                        error=LoadFailure(
                            f"Worker failed: {e}",
                            unit_name=request.unit_name,
                            details=type(e).__name__,
                            source_path=request.source_path
                        )
                    )
                batch_result.add_result(result)

                progress.update(1)
                if progress_callback:
                    self._report_progress(progress_callback, completed_count, total, request.unit_name)

    def _report_progress(self, progress_callback: ProgressCallback, completed: int, total: int, unit_name: str):
        try:
            progress_callback(completed, total, unit_name)
        except Exception as e:
            self.logger.warning(f"Progress callback failed for {unit_name}: {e}")

    def _expire(self, cancel_event: threading.Event, timeout: float):
        if not cancel_event.is_set():
            self.logger.warning(f"Batch timeout after {timeout}s; cancelling requests not yet started")
            cancel_event.set()


__all__ = ['BatchLoader', 'RequestLike', 'ProgressCallback']
