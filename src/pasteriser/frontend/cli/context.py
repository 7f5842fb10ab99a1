"""Small helper to build the runtime objects the CLI needs."""

from __future__ import annotations

import getpass
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from pasteriser.core.config import EngineConfig
from pasteriser.worker.manager import WorkerManager


@dataclass
class AppContext:
    """Container for runtime objects the commands use."""

    config: EngineConfig
    manager: WorkerManager
    environ: Mapping[str, str]

    def password(self, given: Optional[str], prompt: str = "Password: ") -> str:
        """
        Resolve a password: explicit value, then ``PASTERISER_PASSWORD``, then a prompt.
        """
        if given:
            return given
        from_env = self.environ.get("PASTERISER_PASSWORD")
        if from_env:
            return from_env
        return getpass.getpass(prompt)

    def key(self, given: Optional[str]) -> Optional[str]:
        """Resolve a Base64 key from the flag or ``PASTERISER_KEY``."""
        return given or self.environ.get("PASTERISER_KEY") or None


def build_context(
    use_worker: bool = True,
    environ: Optional[Mapping[str, str]] = None,
) -> AppContext:
    """
    Read configuration from the environment and create a worker manager.

    Engine settings come from ``PASTERISER_*`` variables (see
    :class:`pasteriser.core.config.EngineConfig`).
    """
    environ = os.environ if environ is None else environ
    config = EngineConfig.from_env(environ)
    manager = WorkerManager(config=config, use_worker=use_worker)
    return AppContext(config=config, manager=manager, environ=environ)
