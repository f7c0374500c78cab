"""
CipherScore CLI
Main entry point for encrypted model scoring.

    cipherscore <mode> [modelFile] [dataFile] [keyFile]

Exit codes: 0 on success, 1 on any CipherScore error, 2 on usage errors.
"""

import sys
from typing import Optional, Tuple

import click

from .errors import CipherScoreError
from .logging import configure_logging
from .scoring.driver import ScoringDriver
from .utils.config import settings

# mode -> (required positionals, maximum positionals, argument summary)
MODES = {
    "generate_keys": (0, 0, "-g                      keys are written to --out-dir"),
    "encrypt_model": (2, 2, "-m <ModelFile> <PublicKey>"),
    "encrypt_data": (3, 3, "-e <EncryptedModelFile> <DataFile> <PublicKey>"),
    "score": (2, 3, "-s <EncryptedModelFile> <EncryptedDataFile> [<PublicKey>]"),
    "decrypt_data": (2, 2, "-d <ResultFile> <PrivateKey>"),
    "verify": (2, 3, "-v <ModelFile> <DataFile> [<PrivateKey>]"),
}


def _usage() -> str:
    lines = ["\b", "Mode arguments:"]
    lines.extend(f"  {summary}" for _, _, summary in MODES.values())
    return "\n".join(lines)


@click.command(
    context_settings=dict(help_option_names=["-h", "--help"]),
    epilog=_usage(),
)
@click.option("-g", "mode", flag_value="generate_keys", help="Generate PublicKey and PrivateKey.")
@click.option("-m", "mode", flag_value="encrypt_model", help="Encrypt a trained model with a public key.")
@click.option("-e", "mode", flag_value="encrypt_data", help="Encrypt a data file against an encrypted model.")
@click.option("-s", "mode", flag_value="score", help="Score encrypted data with an encrypted model.")
@click.option("-d", "mode", flag_value="decrypt_data", help="Decrypt a result file with the private key.")
@click.option("-v", "mode", flag_value="verify", help="Round-trip a model and data file and compare scores.")
@click.option("--out-dir", default=".", type=click.Path(file_okay=False), help="Key output directory for -g.")
@click.option("--public-key", default=None, type=click.Path(), help="Public key for -s / -v (default: settings).")
@click.option("--log-level", default=None, help="Override CS_LOG_LEVEL.")
@click.option("--json-logs/--text-logs", default=None, help="Force JSON or text log output.")
@click.argument("files", nargs=-1, type=click.Path())
@click.pass_context
def main(
    ctx: click.Context,
    mode: Optional[str],
    out_dir: str,
    public_key: Optional[str],
    log_level: Optional[str],
    json_logs: Optional[bool],
    files: Tuple[str, ...],
):
    """CipherScore encrypted linear scoring."""
    if mode is None:
        click.echo(ctx.get_help(), err=True)
        ctx.exit(2)

    required, maximum, summary = MODES[mode]
    if not required <= len(files) <= maximum:
        raise click.UsageError(f"expected: cipherscore {summary}", ctx=ctx)

    configure_logging(level=log_level or settings.LOG_LEVEL, json_format=json_logs, stream=sys.stderr)
    public_key = public_key or settings.PUBLIC_KEY_FILE

    try:
        driver = ScoringDriver()
        if mode == "generate_keys":
            report = driver.generate_keys(out_dir)
            click.echo(f"Wrote {settings.PUBLIC_KEY_FILE} and {settings.SECRET_KEY_FILE} to {report.output_path}")
        elif mode == "encrypt_model":
            report = driver.encrypt_model(files[0], files[1])
            click.echo(f"Encrypted model written to {report.output_path}")
        elif mode == "encrypt_data":
            report = driver.encrypt_data(files[1], files[0], files[2])
            click.echo(f"Encrypted {report.rows} rows to {report.output_path}")
        elif mode == "score":
            key = files[2] if len(files) > 2 else public_key
            report = driver.score(files[0], files[1], key)
            click.echo(f"Scored {report.rows} rows to {report.output_path}")
            click.echo(f"Avg. Prediction Time : {report.avg_latency_ms:.3f}ms")
        elif mode == "decrypt_data":
            report = driver.decrypt_data(files[0], files[1])
            for score in report.scores:
                click.echo(f"{score:.6f}")
        else:
            secret_key = files[2] if len(files) > 2 else settings.SECRET_KEY_FILE
            report = driver.verify(files[0], files[1], public_key, secret_key)
            click.echo(
                f"Verified {report.rows} rows: max abs error {report.max_abs_error:.3g}, "
                f"avg {report.avg_latency_ms:.3f}ms"
            )
    except CipherScoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
