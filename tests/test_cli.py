"""
CLI Tests
=========
"""

from __future__ import annotations

import click
import fitz  # PyMuPDF
import pytest
from click.testing import CliRunner

from pdftools.cli import cli, parse_params


@pytest.fixture
def runner():
    return CliRunner()


class TestParseParams:

    def test_json_values(self):
        assert parse_params(("degrees=180", "text=DRAFT", "pages=[1, 2]"), None) == {
            "degrees": 180,
            "text": "DRAFT",
            "pages": [1, 2],
        }

    def test_params_json_then_pairs(self):
        assert parse_params(("opacity=0.5",), '{"text": "X", "opacity": 0.1}') == {
            "text": "X",
            "opacity": 0.5,
        }

    @pytest.mark.parametrize("pairs, raw", [(("novalue",), None), ((), "[1]"), ((), "{bad")])
    def test_invalid(self, pairs, raw):
        with pytest.raises(click.BadParameter):
            parse_params(pairs, raw)


class TestCommands:

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_tools(self, runner):
        result = runner.invoke(cli, ["tools"])
        assert result.exit_code == 0
        assert "merge-pdf" in result.output

    def test_run_rotate(self, runner, sample_pdf, tmp_path):
        out_dir = tmp_path / "cli-out"
        result = runner.invoke(
            cli, ["run", "rotate-pdf", str(sample_pdf), "-p", "degrees=180", "-o", str(out_dir)]
        )
        assert result.exit_code == 0, result.output
        (produced,) = list(out_dir.glob("rotated-*.pdf"))
        with fitz.open(produced) as doc:
            assert doc[0].rotation == 180

    def test_run_usage_error(self, runner, sample_pdf, tmp_path):
        result = runner.invoke(
            cli, ["run", "rotate-pdf", str(sample_pdf), "-p", "degrees=45", "-o", str(tmp_path / "o")]
        )
        assert result.exit_code == 1
        assert "multiple of 90" in result.output

    def test_run_unknown_operation(self, runner, sample_pdf, tmp_path):
        result = runner.invoke(cli, ["run", "shred-pdf", str(sample_pdf), "-o", str(tmp_path / "o")])
        assert result.exit_code == 2
        assert "Unknown operation" in result.output

    def test_info(self, runner, sample_pdf):
        result = runner.invoke(cli, ["info", str(sample_pdf)])
        assert result.exit_code == 0
        assert "Pages" in result.output
        assert "612 x 792" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
