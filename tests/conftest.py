"""
Shared pytest fixtures for blastr tests.

Provides a fake BLAST+ process, a fake conda manager and a throwaway
database directory so that no external tools are needed on the host.
"""

from __future__ import annotations

import subprocess
from collections.abc import Iterator, Sequence
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from blastr.external.base import ExternalTool
from blastr.external.conda import CondaManager

# Sequences the fake aligner treats specially
NO_HIT_MARKER = "NNNN"
FAIL_MARKER = "XXXX"

SUBJECT_PIDENT = ("99.5", "85.0")


# =============================================================================
# Tool state
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_tool_state():
    """Isolate executable lookups between tests."""
    ExternalTool.reset_executable_resolver()
    yield
    ExternalTool.reset_executable_resolver()


@pytest.fixture
def conda_on_path():
    """Resolve conda to a fixed path and every other tool to nothing."""
    ExternalTool.set_executable_resolver(
        lambda name: "/opt/conda/bin/conda" if name == "conda" else None
    )


@pytest.fixture
def fake_manager() -> MagicMock:
    """CondaManager double whose environments already exist."""
    manager = MagicMock(spec=CondaManager)
    manager.env_exists.return_value = True
    manager.which.return_value = None
    manager.list_envs.return_value = []
    manager.run_prefix.side_effect = lambda env: ["conda", "run", "-n", env]
    return manager


# =============================================================================
# BLAST database
# =============================================================================


@pytest.fixture
def blast_db(tmp_path: Path) -> str:
    """Prefix of a database directory holding makeblastdb-style files."""
    db_dir = tmp_path / "db"
    db_dir.mkdir()
    for suffix in (".nhr", ".nin", ".nsq"):
        (db_dir / f"refs{suffix}").write_text("")
    return str(db_dir / "refs")


# =============================================================================
# Fake aligner
# =============================================================================


def _option(command: Sequence[str], flag: str) -> str | None:
    if flag in command:
        return command[list(command).index(flag) + 1]
    return None


def _hit_value(column: str, qseqid: str, sequence: str, rank: int) -> str:
    values = {
        "qseqid": qseqid,
        "sseqid": f"ref_{rank}",
        "pident": SUBJECT_PIDENT[rank],
        "length": str(len(sequence)),
        "mismatch": str(rank),
        "gapopen": "0",
        "qstart": "1",
        "qend": str(len(sequence)),
        "sstart": "100",
        "send": str(99 + len(sequence)),
        "evalue": "1e-50",
        "bitscore": f"{250.0 - 20 * rank:.1f}",
        "qcovhsp": "100",
        "qlen": str(len(sequence)),
        "slen": "1500",
    }
    return values.get(column, f"{column}_{rank}")


def fake_blast_output(command: Sequence[str]) -> subprocess.CompletedProcess:
    """Emulate a BLAST+ search from its command line.

    Sequences containing NO_HIT_MARKER produce no output, sequences
    containing FAIL_MARKER exit with code 2, anything else gets two hits
    with the columns requested through -outfmt.
    """
    query = Path(_option(command, "-query"))
    header, sequence = query.read_text().split("\n", 1)
    qseqid = header.lstrip(">")
    sequence = sequence.strip()

    if FAIL_MARKER in sequence:
        return subprocess.CompletedProcess(
            command, 2, stdout="", stderr="BLAST query/options error: bad residue\n"
        )
    if NO_HIT_MARKER in sequence:
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    columns = _option(command, "-outfmt").split()[1:]
    lines = [
        "\t".join(_hit_value(c, qseqid, sequence, rank) for c in columns)
        for rank in range(len(SUBJECT_PIDENT))
    ]
    return subprocess.CompletedProcess(
        command, 0, stdout="\n".join(lines) + "\n", stderr=""
    )


@pytest.fixture
def fake_blast() -> Iterator[MagicMock]:
    """Patch subprocess.run used by the tool wrappers with the fake aligner."""

    def _side_effect(command, **kwargs):
        return fake_blast_output(command)

    with patch("blastr.external.base.subprocess.run", side_effect=_side_effect) as mock_run:
        yield mock_run


# =============================================================================
# CLI
# =============================================================================


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a CLI runner."""
    return CliRunner()


@pytest.fixture
def queries_fasta(tmp_path: Path) -> Path:
    """Three ASVs: two with hits, one without."""
    path = tmp_path / "asvs.fasta"
    path.write_text(
        ">asv_1\nACGTACGTACGTACGTACGT\n"
        f">asv_2\nTTGACCA{NO_HIT_MARKER}GGTTAAC\n"
        ">asv_3\nGGGCCCAAATTTGGGCCC\nAAATTT\n"
    )
    return path
