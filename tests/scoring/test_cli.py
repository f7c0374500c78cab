"""
Tests for the cipherscore command line.
"""

import pytest
from click.testing import CliRunner

from cipherscore.cli import main
from cipherscore.linear.model import LinearModel
from cipherscore.linear.vectors import FeatureVector

TOL = dict(rel=1e-3, abs=1e-3)


def _floats(output):
    values = []
    for line in output.splitlines():
        try:
            values.append(float(line.strip()))
        except ValueError:
            continue
    return values


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def files(tmp_path, key_dir):
    model = LinearModel(weights=FeatureVector.dense([0.5, -0.25]), bias=0.1).save(tmp_path / "model.json")
    data = tmp_path / "rows.txt"
    data.write_text("1 4.0 2.0\n0 0:2.0 1:8.0\n")
    return {
        "model": str(model),
        "data": str(data),
        "public": str(key_dir / "PublicKey"),
        "secret": str(key_dir / "PrivateKey"),
    }


class TestUsage:
    """Argument handling and exit codes."""

    def test_no_arguments(self, runner):
        result = runner.invoke(main, [])
        assert result.exit_code == 2

    @pytest.mark.parametrize("flag", ["-h", "--help"])
    def test_help(self, runner, flag):
        result = runner.invoke(main, [flag])
        assert result.exit_code == 0
        assert "Mode arguments" in result.output
        assert "-s <EncryptedModelFile>" in result.output

    def test_missing_mode_arguments(self, runner):
        result = runner.invoke(main, ["-m", "model.json"])
        assert result.exit_code == 2
        assert "expected" in result.output

    def test_too_many_arguments(self, runner):
        result = runner.invoke(main, ["-d", "a", "b", "c"])
        assert result.exit_code == 2

    def test_unknown_mode(self, runner):
        result = runner.invoke(main, ["-x"])
        assert result.exit_code == 2

    def test_cipherscore_error_exit_code(self, runner, tmp_path, files):
        result = runner.invoke(main, ["-d", str(tmp_path / "missing.out"), files["secret"]])
        assert result.exit_code == 1
        assert "CS_IO_FAILURE" in result.output


class TestModes:
    """Each mode through the command line."""

    def test_generate_keys(self, runner, tmp_path):
        out_dir = tmp_path / "keys"
        result = runner.invoke(main, ["-g", "--out-dir", str(out_dir)])
        assert result.exit_code == 0, result.output
        assert (out_dir / "PublicKey").is_file()
        assert (out_dir / "PrivateKey").is_file()

    def test_pipeline(self, runner, files):
        result = runner.invoke(main, ["-m", files["model"], files["public"]])
        assert result.exit_code == 0, result.output
        encrypted_model = files["model"] + ".encrypted"

        result = runner.invoke(main, ["-e", encrypted_model, files["data"], files["public"]])
        assert result.exit_code == 0, result.output
        encrypted_data = files["data"] + ".encrypted"

        result = runner.invoke(main, ["-s", encrypted_model, encrypted_data, files["public"]])
        assert result.exit_code == 0, result.output
        assert "Avg. Prediction Time" in result.output

        result = runner.invoke(main, ["-d", encrypted_data + ".out", files["secret"]])
        assert result.exit_code == 0, result.output
        assert _floats(result.output) == pytest.approx([1.6, -0.9], **TOL)

    def test_verify(self, runner, files):
        result = runner.invoke(
            main,
            ["-v", files["model"], files["data"], files["secret"], "--public-key", files["public"]],
        )
        assert result.exit_code == 0, result.output
        assert "Verified 2 rows" in result.output
