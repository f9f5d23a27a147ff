"""Tests for the credential cipher, log redaction, connection limiter and validators."""
import logging
import threading

import pytest

from cloudview.core.crypto import CredentialCipher
from cloudview.core.exceptions import ConnectionLimitExceeded, CredentialDecryptError
from cloudview.core.limits import ConnectionLimiter
from cloudview.core.logging_config import SecretRedactingFilter, redact_secrets
from cloudview.core.validators import sanitize_field, validate_port, validate_table_name


CREDENTIALS = {
    "driver": "pgsql",
    "host": "h",
    "port": "5432",
    "database": "d",
    "username": "u",
    "password": "hunter2",
}


def test_cipher_hides_and_restores_credentials() -> None:
    cipher = CredentialCipher("key-one")
    token = cipher.encrypt(CREDENTIALS)

    assert "hunter2" not in token
    assert "pgsql" not in token
    assert cipher.decrypt(token) == CREDENTIALS


def test_cipher_rejects_token_from_another_key() -> None:
    token = CredentialCipher("key-one").encrypt(CREDENTIALS)

    with pytest.raises(CredentialDecryptError):
        CredentialCipher("key-two").decrypt(token)


@pytest.mark.parametrize("token", ["not-a-token", "", 42, "gAAAAABé"])
def test_cipher_rejects_garbage(token) -> None:
    with pytest.raises(CredentialDecryptError):
        CredentialCipher("key-one").decrypt(token)


def test_redact_secrets_masks_urls_and_key_values() -> None:
    message = (
        "(psycopg2.OperationalError) connection to postgresql://admin:topsecret@db:5432/app "
        "failed; dsn was host=db password=topsecret user=admin"
    )
    redacted = redact_secrets(message)

    assert "topsecret" not in redacted
    assert "postgresql://admin:***@db:5432/app" in redacted
    assert "password=***" in redacted


def test_redacting_filter_rewrites_formatted_record() -> None:
    record = logging.LogRecord(
        "test", logging.ERROR, __file__, 1, "failed for %s", ("mysql+pymysql://u:pw@h/d",), None
    )

    assert SecretRedactingFilter().filter(record) is True
    assert record.getMessage() == "failed for mysql+pymysql://u:***@h/d"


def test_limiter_rejects_when_full_and_recovers() -> None:
    limiter = ConnectionLimiter(max_connections=1, acquire_timeout=0.01)
    limiter.acquire()

    with pytest.raises(ConnectionLimitExceeded):
        limiter.acquire()
    assert limiter.rejected == 1

    limiter.release()
    limiter.acquire()
    assert limiter.in_use == 1
    limiter.release()
    assert limiter.in_use == 0


def test_limiter_unblocks_waiter_on_release() -> None:
    limiter = ConnectionLimiter(max_connections=1, acquire_timeout=2.0)
    limiter.acquire()
    acquired = threading.Event()

    def waiter() -> None:
        limiter.acquire()
        acquired.set()

    thread = threading.Thread(target=waiter)
    thread.start()
    limiter.release()
    thread.join(timeout=2.0)

    assert acquired.is_set()
    limiter.release()


def test_limiter_ignores_unbalanced_release() -> None:
    limiter = ConnectionLimiter(max_connections=2)
    limiter.release()
    assert limiter.in_use == 0


def test_sanitize_field() -> None:
    assert sanitize_field("  db.example.com \n") == "db.example.com"
    assert sanitize_field("   ") is None
    assert sanitize_field(None) is None
    assert sanitize_field(5432) == "5432"
    assert sanitize_field("ho\x00st") == "host"


def test_sanitize_field_rejects_overlong_values_instead_of_cutting() -> None:
    path = "/x" * 600

    assert sanitize_field(path) is None
    assert sanitize_field(path[:1024]) == path[:1024]


@pytest.mark.parametrize(
    "port, valid",
    [
        ("5432", True),
        ("1", True),
        ("65535", True),
        ("0", False),
        ("65536", False),
        ("abc", False),
        ("", False),
        ("²", False),
        ("٥٤٣٢", False),
    ],
)
def test_validate_port(port: str, valid: bool) -> None:
    assert validate_port(port)[0] is valid


def test_validate_table_name() -> None:
    assert validate_table_name("users") == (True, None)
    assert validate_table_name("")[0] is False
    assert validate_table_name("x" * 300)[0] is False
    assert validate_table_name("bad\x00name")[0] is False
