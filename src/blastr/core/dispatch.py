"""
Parallel dispatcher for batches of BLAST searches.

Fans a list of query sequences out over a bounded process pool (one
aligner process per query), then merges the per-query frames into one
result collection. The pool belongs to a single run_batch() call and is
shut down before the call returns, on success and on error.

Ordering:
    With ``worker_budget <= 1`` rows come back in input order. With a
    larger budget, per-query groups arrive in completion order; sort on
    ``query_index`` if input order matters. Row order inside one query's
    group always follows the aligner.
"""

from __future__ import annotations

import glob
import logging
import os
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future, ProcessPoolExecutor, as_completed
from pathlib import Path
from types import TracebackType
from typing import Any

import polars as pl

from blastr.core.environment import ensure_tool
from blastr.core.exceptions import DatabaseNotFoundError
from blastr.core.search import search_or_placeholder
from blastr.external.conda import CondaManager
from blastr.models.blast import SearchStatus
from blastr.models.config import SearchParams

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[..., Executor]
ResultCallback = Callable[[int, pl.DataFrame], None]


class WorkerPool:
    """
    Bounded worker pool scoped to one batch.

    Wraps a ``concurrent.futures`` executor as a context manager. Leaving
    the block shuts the executor down and waits for its workers; on an
    exception, queued work is cancelled first.

    Example:
        with WorkerPool(4) as pool:
            future = pool.submit(search_or_placeholder, "ACGT", params)
            frame = future.result()
    """

    def __init__(
        self,
        workers: int,
        executor_factory: ExecutorFactory | None = None,
    ) -> None:
        if workers < 1:
            msg = f"workers must be >= 1, got {workers}"
            raise ValueError(msg)
        self.workers = workers
        self._executor_factory = executor_factory or ProcessPoolExecutor
        self._executor: Executor | None = None

    @property
    def active(self) -> bool:
        return self._executor is not None

    def __enter__(self) -> WorkerPool:
        self._executor = self._executor_factory(max_workers=self.workers)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True, cancel_futures=exc_type is not None)

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        if self._executor is None:
            msg = "WorkerPool is not active; use it as a context manager"
            raise RuntimeError(msg)
        return self._executor.submit(fn, *args, **kwargs)


def _database_dirs(prefix: Path) -> list[Path]:
    dirs = [prefix.parent]
    # Bare database names are also looked up on BLASTDB, like BLAST+ does
    if not prefix.is_absolute() and prefix.parent == Path("."):
        dirs.extend(Path(p) for p in os.environ.get("BLASTDB", "").split(os.pathsep) if p)
    return dirs


def validate_database(db_path: str) -> None:
    """
    Check that a BLAST database prefix resolves to readable files.

    ``/data/nt/nt`` is accepted when files such as ``/data/nt/nt.nal`` or
    ``/data/nt/nt.00.nhr`` exist.

    Raises:
        DatabaseNotFoundError: If no readable database file matches the prefix.
    """
    prefix = Path(db_path).expanduser()
    pattern = glob.escape(prefix.name) + ".*"
    for directory in _database_dirs(prefix):
        for candidate in directory.glob(pattern):
            if candidate.is_file() and os.access(candidate, os.R_OK):
                return
    raise DatabaseNotFoundError(db_path)


def _summarize(collection: pl.DataFrame) -> dict[str, int]:
    counts = dict.fromkeys((s.value for s in SearchStatus), 0)
    per_query = collection.group_by("query_index").agg(pl.col("status").first())
    for status in per_query["status"]:
        counts[status] += 1
    return counts


def run_batch(
    sequences: Iterable[str],
    params: SearchParams,
    worker_budget: int = 1,
    *,
    manager: CondaManager | None = None,
    pool_factory: ExecutorFactory | None = None,
    on_result: ResultCallback | None = None,
) -> pl.DataFrame:
    """
    Run one BLAST search per sequence and merge the results.

    The aligner environment is checked once and the database once, before
    anything is dispatched; either failing aborts the batch with no results.

    Args:
        sequences: Query sequences. Identity is the position in this list.
        params: Search parameters shared by every query.
        worker_budget: Maximum concurrent aligner processes. In parallel mode
            each aligner runs single-threaded.
        manager: Package manager wrapper (default: CondaManager()).
        pool_factory: Executor class or factory (default: ProcessPoolExecutor).
        on_result: Called in this process as each query finishes.

    Returns:
        Result collection with at least one row per input sequence.

    Raises:
        UnsupportedToolError, EnvironmentProvisionError, DatabaseNotFoundError,
        ToolNotFoundError: setup failures, before any search runs.
    """
    sequences = list(sequences)
    schema = params.output_schema
    manager = manager or CondaManager()

    ensure_tool(params.blast_type, params.env_name, params.verbose, manager=manager)
    validate_database(params.db_path)

    if not sequences:
        return schema.empty_collection()

    command_prefix = tuple(manager.run_prefix(params.env_name))
    frames: list[pl.DataFrame] = []

    if worker_budget <= 1:
        logger.info(
            "Running %d searches sequentially (%d threads each)",
            len(sequences),
            params.num_threads,
        )
        for index, sequence in enumerate(sequences):
            frame = search_or_placeholder(
                sequence,
                params,
                query_index=index,
                command_prefix=command_prefix,
            )
            frames.append(frame)
            if on_result is not None:
                on_result(index, frame)
    else:
        worker_params = params.model_copy(update={"num_threads": 1})
        logger.info(
            "Running %d searches on %d workers",
            len(sequences),
            worker_budget,
        )
        with WorkerPool(worker_budget, pool_factory) as pool:
            futures = {
                pool.submit(
                    search_or_placeholder,
                    sequence,
                    worker_params,
                    query_index=index,
                    command_prefix=command_prefix,
                ): index
                for index, sequence in enumerate(sequences)
            }
            for future in as_completed(futures):
                frame = future.result()
                frames.append(frame)
                if on_result is not None:
                    on_result(futures[future], frame)

    collection = pl.concat(frames, how="vertical")

    counts = _summarize(collection)
    logger.info(
        "Batch finished: %d queries, %d with hits, %d without hits, %d failed",
        len(sequences),
        counts[SearchStatus.HIT.value],
        counts[SearchStatus.NO_HIT.value],
        counts[SearchStatus.FAILED.value],
    )
    return collection
