"""Unit tests for the pasteriser command line (Frontend)."""

import base64
import io
import json

import pytest

from pasteriser.core.exceptions import INVALID_KEY_OR_DATA
from pasteriser.frontend.cli.app import (
    EXIT_ARG_ERROR,
    EXIT_AUTH_ERROR,
    EXIT_GENERIC_ERROR,
    EXIT_SUCCESS,
    main,
)


# --- Fixtures ---

@pytest.fixture(autouse=True)
def fast_env(monkeypatch):
    """Cheap key derivation and no secrets leaking in from the real environment."""
    monkeypatch.setenv("PASTERISER_PBKDF2_ITERATIONS", "1000")
    monkeypatch.setenv("PASTERISER_PBKDF2_ITERATIONS_LARGE", "500")
    monkeypatch.delenv("PASTERISER_KEY", raising=False)
    monkeypatch.delenv("PASTERISER_PASSWORD", raising=False)


@pytest.fixture
def key(capsys):
    assert main(["generate-key"]) == EXIT_SUCCESS
    return capsys.readouterr().out.strip()


# --- Tests ---

def test_generate_key(key):
    assert len(base64.b64decode(key)) == 32


@pytest.mark.parametrize("worker_flag", [[], ["--no-worker"]])
def test_encrypt_decrypt_files(tmp_path, key, worker_flag):
    plain = tmp_path / "paste.txt"
    enc = tmp_path / "paste.enc"
    out = tmp_path / "paste.out"
    plain.write_text("hello from a file\nsecond line", encoding="utf-8")

    assert main(worker_flag + ["encrypt", "--key", key, "-i", str(plain), "-o", str(enc)]) == EXIT_SUCCESS
    assert main(worker_flag + ["decrypt", "--key", key, "-i", str(enc), "-o", str(out)]) == EXIT_SUCCESS

    assert out.read_text(encoding="utf-8") == "hello from a file\nsecond line"


def test_encrypt_from_stdin_to_stdout(monkeypatch, capsys, key):
    monkeypatch.setattr("sys.stdin", io.StringIO("piped paste"))
    assert main(["--no-worker", "encrypt", "--key", key]) == EXIT_SUCCESS
    envelope = capsys.readouterr().out.strip()

    monkeypatch.setattr("sys.stdin", io.StringIO(envelope + "\n"))
    assert main(["--no-worker", "decrypt", "--key", key]) == EXIT_SUCCESS
    assert capsys.readouterr().out == "piped paste\n"


def test_key_from_environment(monkeypatch, capsys, key):
    monkeypatch.setenv("PASTERISER_KEY", key)
    monkeypatch.setattr("sys.stdin", io.StringIO("env key"))
    assert main(["--no-worker", "encrypt"]) == EXIT_SUCCESS
    envelope = capsys.readouterr().out.strip()

    monkeypatch.setattr("sys.stdin", io.StringIO(envelope))
    assert main(["--no-worker", "decrypt"]) == EXIT_SUCCESS
    assert capsys.readouterr().out.strip() == "env key"


def test_password_round_trip(monkeypatch, capsys):
    monkeypatch.setenv("PASTERISER_PASSWORD", "hunter2")
    monkeypatch.setattr("sys.stdin", io.StringIO("password paste"))
    assert main(["--no-worker", "encrypt", "--password"]) == EXIT_SUCCESS
    envelope = capsys.readouterr().out.strip()

    monkeypatch.setattr("sys.stdin", io.StringIO(envelope))
    assert main(["--no-worker", "decrypt", "--password", "hunter2"]) == EXIT_SUCCESS
    assert capsys.readouterr().out.strip() == "password paste"


def test_decrypt_wrong_key_exit_code(monkeypatch, capsys, key):
    monkeypatch.setattr("sys.stdin", io.StringIO("secret"))
    main(["--no-worker", "encrypt", "--key", key])
    envelope = capsys.readouterr().out.strip()

    other = base64.b64encode(b"\x01" * 32).decode()
    monkeypatch.setattr("sys.stdin", io.StringIO(envelope))
    assert main(["--no-worker", "decrypt", "--key", other]) == EXIT_AUTH_ERROR
    captured = capsys.readouterr()
    assert captured.out == ""
    assert INVALID_KEY_OR_DATA in captured.err


def test_short_key_has_same_message(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("secret"))
    short = base64.b64encode(b"\x01" * 31).decode()
    assert main(["--no-worker", "encrypt", "--key", short]) == EXIT_AUTH_ERROR
    assert INVALID_KEY_OR_DATA in capsys.readouterr().err


def test_missing_key_is_usage_error(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("secret"))
    assert main(["--no-worker", "encrypt"]) == EXIT_ARG_ERROR
    assert "--key or --password" in capsys.readouterr().err


def test_missing_input_file(tmp_path, capsys, key):
    missing = tmp_path / "nope.txt"
    assert main(["--no-worker", "encrypt", "--key", key, "-i", str(missing)]) == EXIT_GENERIC_ERROR
    assert "Error:" in capsys.readouterr().err


def test_key_and_password_are_exclusive(key):
    with pytest.raises(SystemExit) as excinfo:
        main(["encrypt", "--key", key, "--password", "pw"])
    assert excinfo.value.code == 2


def test_derive_key_json(capsys):
    salt = base64.b64encode(b"\x07" * 16).decode()
    assert main(["--no-worker", "derive-key", "--password", "pw", "--salt", salt]) == EXIT_SUCCESS
    first = json.loads(capsys.readouterr().out)

    assert main(["--no-worker", "derive-key", "--password", "pw", "--salt", salt]) == EXIT_SUCCESS
    second = json.loads(capsys.readouterr().out)

    assert first == second
    assert first["salt"] == salt
    assert len(base64.b64decode(first["key"])) == 32


def test_derive_key_bad_salt(capsys):
    bad = base64.b64encode(b"short").decode()
    assert main(["--no-worker", "derive-key", "--password", "pw", "--salt", bad]) == EXIT_AUTH_ERROR
    assert "Invalid salt length" in capsys.readouterr().err


def test_progress_goes_to_stderr(monkeypatch, capsys, key):
    monkeypatch.setattr("sys.stdin", io.StringIO("show me progress"))
    assert main(["encrypt", "--key", key, "--progress"]) == EXIT_SUCCESS
    captured = capsys.readouterr()
    assert "encrypt: 100%" in captured.err
    assert "%" not in captured.out
