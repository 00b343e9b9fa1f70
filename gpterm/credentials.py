"""Bearer token lookup and persistence."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)


class CredentialResolver:
    """
    Resolves the API token from the environment or a token file.

    The environment variable wins over the file; the file lives in the
    application folder, usually ~/.gpterm/token.
    """

    def __init__(
        self,
        env_var: str,
        app_folder: Path,
        token_file: str = "token",
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.env_var = env_var
        self.app_folder = Path(app_folder)
        self.token_file = token_file
        self._environ = os.environ if environ is None else environ

    @property
    def token_path(self) -> Path:
        return self.app_folder / self.token_file

    def resolve(self) -> str | None:
        """Return the token, or None when neither source has one."""
        token = self._environ.get(self.env_var)
        if token:
            logger.debug(f"Using API token from ${self.env_var}")
            return token

        if not self.token_path.is_file():
            return None

        try:
            token = self.token_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning(f"Could not read token file {self.token_path}: {e}")
            return None

        return token or None

    def save(self, token: str) -> Path:
        """Persist the token, creating the application folder if needed."""
        self.app_folder.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(token, encoding="utf-8")
        self.token_path.chmod(0o600)
        logger.info(f"Saved API token to {self.token_path}")
        return self.token_path
