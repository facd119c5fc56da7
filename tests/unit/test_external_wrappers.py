"""
Unit tests for the BLAST+, efetch and conda wrappers.

Command construction is checked directly; package manager calls are
mocked at subprocess.run.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from blastr.core.exceptions import EnvironmentProvisionError
from blastr.external import (
    BLAST_PROGRAMS,
    BlastN,
    BlastP,
    BlastX,
    CondaManager,
    EFetch,
    TBlastN,
    TBlastX,
    ToolExecutionError,
    blast_program,
)

PREFIX = ["conda", "run", "-n", "blast-env"]


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


class TestBlastSearch:
    """Tests for BLAST+ command construction."""

    def test_full_command(self, tmp_path: Path):
        query = tmp_path / "query_0.fasta"
        cmd = BlastN(command_prefix=PREFIX).build_command(
            query=query,
            database="/data/nt/nt",
            outfmt="6 qseqid sseqid pident",
            threads=4,
            perc_identity=97.0,
            qcov_hsp_perc=80.0,
            max_target_seqs=3,
        )
        assert cmd == [
            *PREFIX,
            "blastn",
            "-query", str(query.resolve()),
            "-db", "/data/nt/nt",
            "-outfmt", "6 qseqid sseqid pident",
            "-num_threads", "4",
            "-perc_identity", "97.0",
            "-qcov_hsp_perc", "80.0",
            "-max_target_seqs", "3",
        ]

    def test_optional_cutoffs_omitted(self, tmp_path: Path):
        cmd = BlastP(command_prefix=PREFIX).build_command(
            query=tmp_path / "q.fasta",
            database="swissprot",
            outfmt="6 qseqid",
        )
        assert "-perc_identity" not in cmd
        assert "-qcov_hsp_perc" not in cmd
        assert cmd[len(PREFIX)] == "blastp"
        assert cmd[-2:] == ["-max_target_seqs", "4"]

    def test_without_prefix_uses_path_lookup(self, tmp_path: Path):
        with patch.object(
            BlastX,
            "_executable_resolver",
            staticmethod(lambda name: f"/usr/local/bin/{name}"),
        ):
            cmd = BlastX().build_command(
                query=tmp_path / "q.fasta", database="nr", outfmt="6 qseqid"
            )
        BlastX.clear_cache()
        assert cmd[0] == "/usr/local/bin/blastx"

    @pytest.mark.parametrize(
        ("name", "cls"),
        [
            ("blastn", BlastN),
            ("blastp", BlastP),
            ("blastx", BlastX),
            ("tblastn", TBlastN),
            ("tblastx", TBlastX),
        ],
    )
    def test_program_lookup(self, name, cls):
        assert blast_program(name) is cls
        assert BLAST_PROGRAMS[name].TOOL_NAME == name

    def test_unknown_program(self):
        with pytest.raises(KeyError, match="Unknown BLAST program"):
            blast_program("megablast")

    def test_search_returns_failed_result(self, tmp_path: Path):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=_completed(2, "", "BLAST Database error"),
        ) as mock_run:
            result = BlastN(command_prefix=PREFIX).search(
                tmp_path / "q.fasta", "nt", "6 qseqid", timeout=30, threads=2
            )
        assert not result.success
        assert result.stderr == "BLAST Database error"
        assert mock_run.call_args.kwargs["timeout"] == 30
        cmd = mock_run.call_args.args[0]
        assert cmd[cmd.index("-num_threads") + 1] == "2"


class TestEFetch:

    def test_command(self):
        cmd = EFetch(command_prefix=["conda", "run", "-n", "entrez-env"]).build_command(
            accessions=["MN908947.3", "NC_045512.2"],
        )
        assert cmd == [
            "conda", "run", "-n", "entrez-env", "efetch",
            "-db", "nucleotide",
            "-id", "MN908947.3,NC_045512.2",
            "-format", "fasta",
        ]

    def test_protein_db(self):
        cmd = EFetch(command_prefix=["c"]).build_command(accessions=["P0DTC2"], db="protein")
        assert cmd[cmd.index("-db") + 1] == "protein"

    def test_requires_accessions(self):
        with pytest.raises(ValueError, match="accessions"):
            EFetch(command_prefix=["c"]).build_command(accessions=[])

    def test_fetch_returns_text(self):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=_completed(0, ">MN908947.3 SARS-CoV-2\nACGT\n"),
        ):
            text = EFetch(command_prefix=["c"]).fetch(["MN908947.3"])
        assert text.startswith(">MN908947.3")

    def test_fetch_failure_raises(self):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=_completed(1, "", "HTTP 400"),
        ):
            with pytest.raises(ToolExecutionError):
                EFetch(command_prefix=["c"]).fetch(["bogus"])


class TestCondaManager:
    """Tests for the conda wrapper."""

    @pytest.fixture
    def conda(self, conda_on_path) -> CondaManager:
        return CondaManager()

    def _env_list(self, *names: str) -> MagicMock:
        envs = ["/opt/conda"] + [f"/opt/conda/envs/{n}" for n in names]
        return _completed(0, json.dumps({"envs": envs}))

    def test_run_prefix(self, conda: CondaManager):
        assert conda.run_prefix("blast-env") == [
            "/opt/conda/bin/conda", "run", "-n", "blast-env",
        ]

    def test_falls_back_to_micromamba(self):
        CondaManager.clear_cache()
        with patch.object(
            CondaManager,
            "_executable_resolver",
            staticmethod(lambda name: "/usr/bin/micromamba" if name == "micromamba" else None),
        ):
            assert CondaManager().run_prefix("x")[0] == "/usr/bin/micromamba"
        CondaManager.clear_cache()

    def test_env_exists(self, conda: CondaManager):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=self._env_list("blast-env", "entrez-env"),
        ) as mock_run:
            assert conda.env_exists("blast-env")
            assert not conda.env_exists("other-env")
        assert mock_run.call_args.args[0] == [
            "/opt/conda/bin/conda", "env", "list", "--json",
        ]

    def test_env_list_unparseable(self, conda: CondaManager):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=_completed(0, "not json"),
        ):
            assert conda.list_envs() == []

    def test_env_list_failure_raises(self, conda: CondaManager):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=_completed(1, "", "conda broken"),
        ):
            with pytest.raises(ToolExecutionError):
                conda.list_envs()

    def test_create_env_silent(self, conda: CondaManager):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=_completed(0),
        ) as mock_run:
            conda.create_env(["bioconda::blast==2.16"], "blast-env")
        cmd = mock_run.call_args.args[0]
        assert cmd[:5] == ["/opt/conda/bin/conda", "create", "-y", "-n", "blast-env"]
        assert "--quiet" in cmd
        assert cmd[-1] == "bioconda::blast==2.16"
        assert cmd[cmd.index("-c") + 1] == "conda-forge"
        assert mock_run.call_args.kwargs["capture_output"] is True

    def test_create_env_streams_output(self, conda: CondaManager):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=_completed(0),
        ) as mock_run:
            conda.create_env([], "blast-env", verbose="output")
        cmd = mock_run.call_args.args[0]
        assert "--quiet" not in cmd
        assert cmd[-1] == "bioconda"
        assert "capture_output" not in mock_run.call_args.kwargs

    def test_create_env_overwrite_removes_first(self, conda: CondaManager):
        responses = [self._env_list("blast-env"), _completed(0), _completed(0)]
        with patch(
            "blastr.external.base.subprocess.run",
            side_effect=responses,
        ) as mock_run:
            conda.create_env(["bioconda::blast==2.16"], "blast-env", overwrite=True)
        commands = [c.args[0] for c in mock_run.call_args_list]
        assert commands[1][1:] == ["env", "remove", "-y", "-n", "blast-env"]
        assert commands[2][1] == "create"

    def test_create_env_failure(self, conda: CondaManager):
        with patch(
            "blastr.external.base.subprocess.run",
            return_value=_completed(1, "", "PackagesNotFoundError"),
        ):
            with pytest.raises(EnvironmentProvisionError) as exc_info:
                conda.create_env(["bioconda::blast==9.9"], "blast-env")
        assert "PackagesNotFoundError" in exc_info.value.message

    def test_which_uses_resolver(self, conda: CondaManager):
        assert conda.which("conda") == "/opt/conda/bin/conda"
        assert conda.which("blastn") is None
