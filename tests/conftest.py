"""
Pytest configuration and fixtures.

This file ensures proper path setup for imports. Key generation is the
expensive step, so one key pair and the contexts built from it are shared
across the whole session; tests must not close the shared contexts.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from cipherscore.he import EncryptionContext, HEKeyManager, SchemeParams  # noqa: E402
from cipherscore.logging import configure_logging  # noqa: E402


@pytest.fixture(scope="session")
def params():
    """Default scheme parameters."""
    return SchemeParams.default()


@pytest.fixture(scope="session")
def key_manager(params):
    return HEKeyManager(params)


@pytest.fixture(scope="session")
def key_pair(key_manager):
    """One generated key pair for the session."""
    return key_manager.generate()


@pytest.fixture(scope="session")
def owner_ctx(params, key_pair):
    """Context holding both keys."""
    return EncryptionContext.create(params, public_key=key_pair.public_key, secret_key=key_pair.secret_key)


@pytest.fixture(scope="session")
def public_ctx(params, key_pair):
    """Host/client context: public key only."""
    return EncryptionContext.create(params, public_key=key_pair.public_key)


@pytest.fixture(scope="session")
def secret_ctx(params, key_pair):
    """Decrypt-only context: secret key only."""
    return EncryptionContext.create(params, secret_key=key_pair.secret_key)


@pytest.fixture(scope="session")
def key_dir(tmp_path_factory, key_manager, key_pair):
    """Directory holding PublicKey and PrivateKey files for the session pair."""
    directory = tmp_path_factory.mktemp("keys")
    key_manager.save_key_pair(key_pair, directory)
    return directory


@pytest.fixture(autouse=True)
def _restore_logging():
    """CLI runs rebind the log handler to a temporary stream; put it back."""
    yield
    configure_logging(level="DEBUG", json_format=False, stream=sys.stderr)
