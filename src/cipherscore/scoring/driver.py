"""
Scoring Driver.

Sequences keys, models, data and the inference engine for each mode:

    generate_keys   owner creates PublicKey / PrivateKey
    encrypt_model   owner encrypts a trained model with the public key
    encrypt_data    client encrypts feature rows into <data>.encrypted
    score           host scores encrypted rows into <data>.out (public key only)
    decrypt_data    owner/client decrypts a result stream
    verify          owner-local round trip compared against plaintext scores

State machine, per run and never persisted:

    Idle -> KeysOrModelLoaded -> Streaming -> (Scoring | Encrypting | Decrypting)
         -> Flushed -> Done                 (any state may go to Failed)

There is no resumption. Output files are streamed row by row, so a failed run
leaves a partial file that downstream consumers must discard.
"""

import io
import threading
import time
import uuid
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

import numpy as np

from ..data.sources import TextDataSource
from ..errors import (
    CipherScoreError,
    DriverStateError,
    OperationCancelledError,
    StreamIOError,
    VerificationMismatchError,
)
from ..he.context import EncryptionContext
from ..he.keys import HEKeyManager
from ..he.params import SchemeParams
from ..he.serialization import ciphertext_from_bytes, ciphertext_to_bytes, iter_ciphertexts, write_ciphertext
from ..linear.encryptor import ModelEncryptor, encrypt_features
from ..linear.inference import EncryptedInferenceEngine, plaintext_score
from ..linear.model import EncryptedModel, LinearModel, encrypted_model_path
from ..linear.serialization import iter_vectors, read_vector, write_vector
from ..logging import LogContext, get_logger
from ..utils.config import CipherScoreSettings, settings as default_settings

logger = get_logger(__name__)

PathLike = Union[str, Path]

# Fixed-point resolution is 2**-16 per term, so scores near zero need an absolute bound
DEFAULT_RTOL = 1e-3
DEFAULT_ATOL = 1e-3


class DriverState(Enum):
    IDLE = "idle"
    KEYS_OR_MODEL_LOADED = "keys_or_model_loaded"
    STREAMING = "streaming"
    SCORING = "scoring"
    ENCRYPTING = "encrypting"
    DECRYPTING = "decrypting"
    FLUSHED = "flushed"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    DriverState.IDLE: {DriverState.KEYS_OR_MODEL_LOADED},
    # encrypt_model has no row stream; generate_keys goes straight to flush
    DriverState.KEYS_OR_MODEL_LOADED: {DriverState.STREAMING, DriverState.ENCRYPTING, DriverState.FLUSHED},
    DriverState.STREAMING: {DriverState.SCORING, DriverState.ENCRYPTING, DriverState.DECRYPTING},
    DriverState.SCORING: {DriverState.FLUSHED},
    DriverState.ENCRYPTING: {DriverState.FLUSHED},
    DriverState.DECRYPTING: {DriverState.FLUSHED},
    DriverState.FLUSHED: {DriverState.DONE},
    DriverState.DONE: set(),
    DriverState.FAILED: set(),
}


class CancellationToken:
    """Cooperative cancellation, checked by the driver between rows."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, rows_completed: int) -> None:
        if self._event.is_set():
            raise OperationCancelledError(rows_completed)


class LatencyTracker:
    """Per-row latency in milliseconds."""

    def __init__(self):
        self.samples_ms: List[float] = []

    @contextmanager
    def measure(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.samples_ms.append((time.perf_counter() - start) * 1000)

    def record(self, ms: float) -> None:
        self.samples_ms.append(ms)

    @property
    def count(self) -> int:
        return len(self.samples_ms)

    @property
    def avg_ms(self) -> float:
        return float(np.mean(self.samples_ms)) if self.samples_ms else 0.0

    @property
    def total_ms(self) -> float:
        return float(np.sum(self.samples_ms)) if self.samples_ms else 0.0

    def percentile(self, q: float) -> float:
        return float(np.percentile(self.samples_ms, q)) if self.samples_ms else 0.0


@dataclass
class RunReport:
    """Outcome of one driver run."""

    mode: str
    run_id: str
    states: List[DriverState] = field(default_factory=lambda: [DriverState.IDLE])
    rows: int = 0
    latency: LatencyTracker = field(default_factory=LatencyTracker)
    total_ms: float = 0.0
    output_path: Optional[Path] = None
    scores: List[float] = field(default_factory=list)
    error_code: Optional[str] = None
    mismatches: int = 0
    max_abs_error: float = 0.0

    @property
    def state(self) -> DriverState:
        return self.states[-1]

    @property
    def avg_latency_ms(self) -> float:
        return self.latency.avg_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "run_id": self.run_id,
            "states": [s.value for s in self.states],
            "rows": self.rows,
            "avg_latency_ms": self.avg_latency_ms,
            "p95_latency_ms": self.latency.percentile(95),
            "total_ms": self.total_ms,
            "output_path": str(self.output_path) if self.output_path else None,
            "error_code": self.error_code,
            "mismatches": self.mismatches,
        }


class ScoringDriver:
    """
    Runs one mode at a time. Each run builds its own contexts and closes them.

    Usage:
        driver = ScoringDriver()
        report = driver.score("model.json.encrypted", "rows.txt.encrypted", "PublicKey")
        print(report.output_path, report.avg_latency_ms)
    """

    def __init__(
        self,
        config: Optional[CipherScoreSettings] = None,
        params: Optional[SchemeParams] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.config = config or default_settings
        self.params = params or self.config.scheme_params()
        self.cancel_token = cancel_token or CancellationToken()
        self.key_manager = HEKeyManager(self.params, n_threads=self.config.N_THREADS)
        self.last_report: Optional[RunReport] = None

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def _transition(self, report: RunReport, new_state: DriverState) -> None:
        current = report.state
        if new_state is not DriverState.FAILED and new_state not in _TRANSITIONS[current]:
            raise DriverStateError(current.value, new_state.value, request_id=report.run_id)
        report.states.append(new_state)
        logger.debug(f"{current.value} -> {new_state.value}")

    def _run(self, mode: str, body: Callable[[RunReport], None]) -> RunReport:
        report = RunReport(mode=mode, run_id=uuid.uuid4().hex)
        self.last_report = report
        start = time.perf_counter()
        with LogContext(run_id=report.run_id, mode=mode):
            logger.info(f"Starting {mode}")
            try:
                body(report)
                self._transition(report, DriverState.DONE)
            except CipherScoreError as e:
                report.error_code = e.code
                if e.request_id is None:
                    e.request_id = report.run_id
                if report.state is not DriverState.FAILED:
                    report.states.append(DriverState.FAILED)
                logger.error(f"{mode} failed after {report.rows} rows: {e}")
                raise
            except Exception:
                report.error_code = "CS_INTERNAL_ERROR"
                report.states.append(DriverState.FAILED)
                logger.exception(f"{mode} failed after {report.rows} rows")
                raise
            finally:
                report.total_ms = (time.perf_counter() - start) * 1000
            logger.info(
                f"Finished {mode}: rows={report.rows} avg={report.avg_latency_ms:.2f}ms "
                f"total={report.total_ms:.1f}ms"
            )
        return report

    def _public_context(self, public_key_path: PathLike) -> EncryptionContext:
        key = self.key_manager.load_public_key(public_key_path)
        return EncryptionContext.create(self.params, public_key=key, n_threads=self.config.N_THREADS)

    def _secret_context(self, secret_key_path: PathLike) -> EncryptionContext:
        key = self.key_manager.load_secret_key(secret_key_path)
        return EncryptionContext.create(self.params, secret_key=key, n_threads=self.config.N_THREADS)

    @staticmethod
    def _open(path: Path, mode: str):
        try:
            return open(path, mode)
        except OSError as e:
            raise StreamIOError(f"cannot open {path}: {e}", path=str(path)) from e

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def generate_keys(self, out_dir: PathLike = ".") -> RunReport:
        """Generate the key pair and write PublicKey / PrivateKey."""

        def body(report: RunReport) -> None:
            pair = self.key_manager.generate()
            self._transition(report, DriverState.KEYS_OR_MODEL_LOADED)
            self.key_manager.save_key_pair(
                pair,
                out_dir,
                public_name=self.config.PUBLIC_KEY_FILE,
                secret_name=self.config.SECRET_KEY_FILE,
            )
            report.output_path = Path(out_dir)
            self._transition(report, DriverState.FLUSHED)

        return self._run("generate_keys", body)

    def encrypt_model(self, model_path: PathLike, public_key_path: PathLike) -> RunReport:
        """Encrypt a trained model; writes `<model>.encrypted`."""

        def body(report: RunReport) -> None:
            with self._public_context(public_key_path) as ctx:
                model = LinearModel.load(model_path)
                self._transition(report, DriverState.KEYS_OR_MODEL_LOADED)
                self._transition(report, DriverState.ENCRYPTING)
                with report.latency.measure():
                    encrypted = ModelEncryptor(ctx).encrypt_model(model)
                report.output_path = encrypted.save(encrypted_model_path(model_path))
                self._transition(report, DriverState.FLUSHED)

        return self._run("encrypt_model", body)

    def encrypt_data(
        self,
        data_path: PathLike,
        encrypted_model_file: PathLike,
        public_key_path: PathLike,
    ) -> RunReport:
        """Encrypt each data row into `<data>.encrypted`; the model supplies the schema."""

        def body(report: RunReport) -> None:
            with self._public_context(public_key_path) as ctx:
                model = EncryptedModel.load(encrypted_model_file, ctx)
                self._transition(report, DriverState.KEYS_OR_MODEL_LOADED)
                source = TextDataSource(data_path, num_features=model.num_features)
                out_path = Path(str(data_path) + ".encrypted")
                report.output_path = out_path
                with self._open(out_path, "wb") as out:
                    self._transition(report, DriverState.STREAMING)
                    self._transition(report, DriverState.ENCRYPTING)
                    for row in source:
                        self.cancel_token.raise_if_cancelled(report.rows)
                        with report.latency.measure():
                            write_vector(out, encrypt_features(row.features, ctx, model.schema))
                        report.rows += 1
                self._transition(report, DriverState.FLUSHED)

        return self._run("encrypt_data", body)

    def score(
        self,
        encrypted_model_file: PathLike,
        encrypted_data_path: PathLike,
        public_key_path: PathLike,
    ) -> RunReport:
        """Host-side scoring into `<data>.out`; holds the public key only."""

        def body(report: RunReport) -> None:
            with self._public_context(public_key_path) as ctx:
                model = EncryptedModel.load(encrypted_model_file, ctx)
                engine = EncryptedInferenceEngine(ctx)
                self._transition(report, DriverState.KEYS_OR_MODEL_LOADED)
                out_path = Path(str(encrypted_data_path) + ".out")
                report.output_path = out_path
                with self._open(Path(encrypted_data_path), "rb") as src, self._open(out_path, "wb") as out:
                    self._transition(report, DriverState.STREAMING)
                    self._transition(report, DriverState.SCORING)
                    for features in iter_vectors(src, ctx):
                        self.cancel_token.raise_if_cancelled(report.rows)
                        logger.debug(f"Scoring row: {report.rows + 1}")
                        with report.latency.measure():
                            result = engine.score_model(features, model)
                        write_ciphertext(out, result)
                        report.rows += 1
                self._transition(report, DriverState.FLUSHED)
                logger.info(f"Avg. Prediction Time: {report.avg_latency_ms:.2f}ms")

        return self._run("score", body)

    def decrypt_data(self, result_path: PathLike, secret_key_path: PathLike) -> RunReport:
        """Decrypt a result stream; the decoded scores land in `report.scores`."""

        def body(report: RunReport) -> None:
            with self._secret_context(secret_key_path) as ctx:
                self._transition(report, DriverState.KEYS_OR_MODEL_LOADED)
                with self._open(Path(result_path), "rb") as src:
                    self._transition(report, DriverState.STREAMING)
                    self._transition(report, DriverState.DECRYPTING)
                    for ciphertext in iter_ciphertexts(src, ctx):
                        self.cancel_token.raise_if_cancelled(report.rows)
                        with report.latency.measure():
                            report.scores.append(ctx.decrypt_value(ciphertext))
                        report.rows += 1
                self._transition(report, DriverState.FLUSHED)

        return self._run("decrypt_data", body)

    def verify(
        self,
        model_path: PathLike,
        data_path: PathLike,
        public_key_path: PathLike,
        secret_key_path: PathLike,
        rtol: float = DEFAULT_RTOL,
        atol: float = DEFAULT_ATOL,
    ) -> RunReport:
        """
        Owner-local round trip over a plaintext model and data file.

        Client, host and owner each get their own context; everything crossing
        between them goes through the wire formats. Every decrypted score is
        compared to the plaintext score.
        """

        def body(report: RunReport) -> None:
            with ExitStack() as stack:
                client_ctx = stack.enter_context(self._public_context(public_key_path))
                host_ctx = stack.enter_context(self._public_context(public_key_path))
                owner_ctx = stack.enter_context(self._secret_context(secret_key_path))

                model = LinearModel.load(model_path)
                shipped = ModelEncryptor(client_ctx).encrypt_model(model).to_dict()
                host_model = EncryptedModel.from_dict(shipped, host_ctx)
                engine = EncryptedInferenceEngine(host_ctx)
                self._transition(report, DriverState.KEYS_OR_MODEL_LOADED)

                source = TextDataSource(data_path, num_features=model.num_features)
                self._transition(report, DriverState.STREAMING)
                self._transition(report, DriverState.SCORING)
                for row in source:
                    self.cancel_token.raise_if_cancelled(report.rows)
                    wire = io.BytesIO()
                    write_vector(wire, encrypt_features(row.features, client_ctx, model.schema))
                    wire.seek(0)
                    with report.latency.measure():
                        result = engine.score_model(read_vector(wire, host_ctx), host_model)
                    encrypted_score = owner_ctx.decrypt_value(ciphertext_from_bytes(ciphertext_to_bytes(result), owner_ctx))
                    expected = plaintext_score(row.features, model)

                    error = abs(encrypted_score - expected)
                    report.max_abs_error = max(report.max_abs_error, error)
                    if not np.isclose(encrypted_score, expected, rtol=rtol, atol=atol):
                        report.mismatches += 1
                        logger.warning(f"Row {row.line_number}: encrypted score outside tolerance (abs error {error:.3g})")
                    report.scores.append(encrypted_score)
                    report.rows += 1
                self._transition(report, DriverState.FLUSHED)

            if report.mismatches:
                raise VerificationMismatchError(report.mismatches, report.rows, report.max_abs_error)

        return self._run("verify", body)
