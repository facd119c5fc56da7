"""
Unit tests for the parallel dispatcher.

Parallel runs use a ThreadPoolExecutor so the patched subprocess.run and
the fake conda manager are shared with the workers.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest.mock import MagicMock, patch

import polars as pl
import pytest

from blastr.core.dispatch import WorkerPool, run_batch, validate_database
from blastr.core.exceptions import DatabaseNotFoundError, UnsupportedToolError
from blastr.models.blast import COLLECTION_COLUMNS
from blastr.models.config import SearchParams

SEQUENCES = [
    "ACGTACGTACGTACGTACGT",
    "TTGACCANNNNGGTTAAC",
    "GGGCCCAAATTTGGGCCC",
    "ACGTXXXXACGT",
    "CCCCGGGGAAAATTTT",
]


@pytest.fixture
def params(blast_db: str) -> SearchParams:
    return SearchParams(db_path=blast_db, num_threads=4)


def _threads_used(mock_run: MagicMock) -> set[str]:
    used = set()
    for call in mock_run.call_args_list:
        cmd = call.args[0]
        used.add(cmd[cmd.index("-num_threads") + 1])
    return used


# =============================================================================
# WorkerPool
# =============================================================================


class TestWorkerPool:

    def test_rejects_zero_workers(self):
        with pytest.raises(ValueError, match="workers"):
            WorkerPool(0)

    def test_submit_outside_context(self):
        pool = WorkerPool(2, ThreadPoolExecutor)
        with pytest.raises(RuntimeError, match="not active"):
            pool.submit(len, "abc")

    def test_runs_and_shuts_down(self):
        executor = MagicMock()
        factory = MagicMock(return_value=executor)
        with WorkerPool(3, factory) as pool:
            assert pool.active
            pool.submit(len, "abc")
        factory.assert_called_once_with(max_workers=3)
        executor.submit.assert_called_once_with(len, "abc")
        executor.shutdown.assert_called_once_with(wait=True, cancel_futures=False)
        assert not pool.active

    def test_cancels_queued_work_on_error(self):
        executor = MagicMock()
        with pytest.raises(KeyError):
            with WorkerPool(2, MagicMock(return_value=executor)):
                raise KeyError("boom")
        executor.shutdown.assert_called_once_with(wait=True, cancel_futures=True)

    def test_real_executor(self):
        with WorkerPool(2, ThreadPoolExecutor) as pool:
            futures = [pool.submit(pow, 2, n) for n in range(4)]
        assert [f.result() for f in futures] == [1, 2, 4, 8]


# =============================================================================
# validate_database
# =============================================================================


class TestValidateDatabase:

    def test_prefix_with_files(self, blast_db: str):
        validate_database(blast_db)

    def test_alias_file(self, tmp_path: Path):
        (tmp_path / "nt.nal").write_text("DBLIST nt.00\n")
        validate_database(str(tmp_path / "nt"))

    def test_volume_files(self, tmp_path: Path):
        (tmp_path / "nt.00.nhr").write_text("")
        validate_database(str(tmp_path / "nt"))

    def test_missing(self, tmp_path: Path):
        with pytest.raises(DatabaseNotFoundError) as exc_info:
            validate_database(str(tmp_path / "absent"))
        assert exc_info.value.db_path == str(tmp_path / "absent")

    def test_prefix_must_match_whole_name(self, tmp_path: Path):
        (tmp_path / "nt_v5.nhr").write_text("")
        with pytest.raises(DatabaseNotFoundError):
            validate_database(str(tmp_path / "nt"))

    def test_bare_name_on_blastdb(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        (tmp_path / "16S_ribosomal_RNA.nsq").write_text("")
        monkeypatch.setenv("BLASTDB", str(tmp_path))
        monkeypatch.chdir(tmp_path.parent)
        validate_database("16S_ribosomal_RNA")


# =============================================================================
# run_batch
# =============================================================================


class TestRunBatch:

    def test_sequential_keeps_input_order(
        self, params: SearchParams, fake_manager: MagicMock, fake_blast: MagicMock
    ):
        df = run_batch(SEQUENCES, params, worker_budget=1, manager=fake_manager)
        assert df.columns[:4] == list(COLLECTION_COLUMNS)
        assert df["query_index"].unique(maintain_order=True).to_list() == [0, 1, 2, 3, 4]
        assert _threads_used(fake_blast) == {"4"}

    def test_every_query_represented(
        self, params: SearchParams, fake_manager: MagicMock, fake_blast: MagicMock
    ):
        df = run_batch(SEQUENCES, params, manager=fake_manager)
        status = dict(
            df.group_by("query_index").agg(pl.col("status").first()).iter_rows()
        )
        assert status == {0: "hit", 1: "no_hit", 2: "hit", 3: "failed", 4: "hit"}
        assert df.height == 2 + 1 + 2 + 1 + 2

    def test_parallel_matches_sequential(
        self, params: SearchParams, fake_manager: MagicMock, fake_blast: MagicMock
    ):
        sequential = run_batch(SEQUENCES, params, worker_budget=1, manager=fake_manager)
        parallel = run_batch(
            SEQUENCES,
            params,
            worker_budget=3,
            manager=fake_manager,
            pool_factory=ThreadPoolExecutor,
        )
        key = ["query_index", "sseqid"]
        assert parallel.sort(key, nulls_last=True).equals(
            sequential.sort(key, nulls_last=True)
        )

    def test_parallel_runs_single_threaded(
        self, params: SearchParams, fake_manager: MagicMock, fake_blast: MagicMock
    ):
        run_batch(
            SEQUENCES,
            params,
            worker_budget=2,
            manager=fake_manager,
            pool_factory=ThreadPoolExecutor,
        )
        assert _threads_used(fake_blast) == {"1"}

    def test_parallel_keeps_row_order_within_query(
        self, params: SearchParams, fake_manager: MagicMock, fake_blast: MagicMock
    ):
        df = run_batch(
            SEQUENCES,
            params,
            worker_budget=4,
            manager=fake_manager,
            pool_factory=ThreadPoolExecutor,
        )
        first = df.filter(pl.col("query_index") == 0)
        assert first["sseqid"].to_list() == ["ref_0", "ref_1"]

    def test_on_result_called_per_query(
        self, params: SearchParams, fake_manager: MagicMock, fake_blast: MagicMock
    ):
        seen: list[int] = []
        run_batch(
            SEQUENCES,
            params,
            worker_budget=2,
            manager=fake_manager,
            pool_factory=ThreadPoolExecutor,
            on_result=lambda index, frame: seen.append(index),
        )
        assert sorted(seen) == list(range(len(SEQUENCES)))

    def test_runs_in_configured_env(
        self, blast_db: str, fake_manager: MagicMock, fake_blast: MagicMock
    ):
        params = SearchParams(db_path=blast_db, env_name="blast-2.16")
        run_batch(SEQUENCES[:1], params, manager=fake_manager)
        cmd = fake_blast.call_args.args[0]
        assert cmd[:5] == ["conda", "run", "-n", "blast-2.16", "blastn"]
        fake_manager.env_exists.assert_called_once_with("blast-2.16")

    def test_empty_input(self, params: SearchParams, fake_manager: MagicMock):
        with patch("blastr.external.base.subprocess.run") as mock_run:
            df = run_batch([], params, manager=fake_manager)
        assert df.is_empty()
        assert df.columns == list(params.output_schema.collection_schema)
        mock_run.assert_not_called()

    def test_missing_database_aborts_before_dispatch(
        self, tmp_path: Path, fake_manager: MagicMock
    ):
        params = SearchParams(db_path=str(tmp_path / "missing"))
        with patch("blastr.external.base.subprocess.run") as mock_run:
            with pytest.raises(DatabaseNotFoundError):
                run_batch(SEQUENCES, params, manager=fake_manager)
        mock_run.assert_not_called()

    def test_provisioning_happens_once(
        self, params: SearchParams, fake_manager: MagicMock, fake_blast: MagicMock
    ):
        fake_manager.env_exists.return_value = False
        run_batch(
            SEQUENCES,
            params,
            worker_budget=3,
            manager=fake_manager,
            pool_factory=ThreadPoolExecutor,
        )
        fake_manager.create_env.assert_called_once_with(
            ["bioconda::blast==2.16"], "blast-env", verbose="silent"
        )

    def test_unsupported_tool_aborts(self, params: SearchParams, fake_manager: MagicMock):
        with patch(
            "blastr.core.dispatch.ensure_tool",
            side_effect=UnsupportedToolError("bowtie2", ("blast", "efetch")),
        ):
            with pytest.raises(UnsupportedToolError):
                run_batch(SEQUENCES, params, manager=fake_manager)
