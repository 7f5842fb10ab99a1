"""Unit tests for the CLI context (secret resolution and wiring)."""

from unittest.mock import patch

from pasteriser.core.config import EngineConfig
from pasteriser.frontend.cli.context import AppContext, build_context
from pasteriser.worker.manager import WorkerManager


def _ctx(environ=None):
    config = EngineConfig()
    return AppContext(config=config, manager=WorkerManager(config, use_worker=False), environ=environ or {})


def test_password_prefers_explicit_value():
    ctx = _ctx({"PASTERISER_PASSWORD": "from-env"})
    with patch("pasteriser.frontend.cli.context.getpass.getpass") as prompt:
        assert ctx.password("given") == "given"
        prompt.assert_not_called()


def test_password_falls_back_to_environment():
    ctx = _ctx({"PASTERISER_PASSWORD": "from-env"})
    with patch("pasteriser.frontend.cli.context.getpass.getpass") as prompt:
        assert ctx.password("") == "from-env"
        assert ctx.password(None) == "from-env"
        prompt.assert_not_called()


def test_password_prompts_last():
    ctx = _ctx()
    with patch("pasteriser.frontend.cli.context.getpass.getpass", return_value="typed") as prompt:
        assert ctx.password(None, prompt="Pw: ") == "typed"
        prompt.assert_called_once_with("Pw: ")


def test_key_resolution():
    assert _ctx().key(None) is None
    assert _ctx().key("abc") == "abc"
    assert _ctx({"PASTERISER_KEY": "envkey"}).key(None) == "envkey"
    assert _ctx({"PASTERISER_KEY": "envkey"}).key("flag") == "flag"


def test_build_context_reads_environment():
    ctx = build_context(use_worker=False, environ={"PASTERISER_PBKDF2_ITERATIONS": "42"})
    assert ctx.config.pbkdf2_iterations == 42
    assert ctx.manager.config is ctx.config
    assert ctx.manager.use_worker is False
    ctx.manager.shutdown()
