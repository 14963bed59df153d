"""Single source of truth for CLI-level hot folder settings.

Values come from ``secrets/hotfolder.env``, or from the SOPS-encrypted
``secrets/hotfolder.env.enc`` when HOTFOLDER_USE_SOPS=true. Variables already
set in the process environment win over the file.
"""

import os
import subprocess
from io import StringIO
from pathlib import Path

from dotenv import dotenv_values

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Toggle SOPS vs plain .env (default: plain .env)
USE_SOPS = os.environ.get("HOTFOLDER_USE_SOPS", "false").lower() == "true"


def read_settings_file(path: str | Path) -> dict[str, str | None]:
    """Parse a settings file in .env syntax.

    Files ending in ``.enc`` are decrypted with ``sops --decrypt`` first; store
    credentials (``HOTFOLDER_PASSWORD``) belong in such a file. A missing plain
    file yields an empty mapping so the CLI can run on flags and environment
    variables alone.

    Raises:
        FileNotFoundError: If an encrypted file is missing.
        subprocess.CalledProcessError: If SOPS decryption fails.
    """
    path = Path(path)
    if path.suffix != ".enc":
        return dict(dotenv_values(path)) if path.exists() else {}

    if not path.exists():
        raise FileNotFoundError(f"Encrypted settings file not found: {path}")
    decrypted = subprocess.run(
        ["sops", "--decrypt", str(path)],
        capture_output=True,
        text=True,
        check=True,
    )
    return dict(dotenv_values(stream=StringIO(decrypted.stdout)))


def _settings_path(scope: str) -> Path:
    suffix = ".env.enc" if USE_SOPS else ".env"
    return PROJECT_ROOT / "secrets" / f"{scope}{suffix}"


_settings = read_settings_file(_settings_path("hotfolder"))


def _get(key: str, default: str) -> str:
    value = os.environ.get(key)
    if value is None:
        value = _settings.get(key)
    return value if value is not None else default


# --- Store connection ---
HOTFOLDER_URL: str = _get("HOTFOLDER_URL", "")
HOTFOLDER_USERNAME: str = _get("HOTFOLDER_USERNAME", "")
HOTFOLDER_PASSWORD: str = _get("HOTFOLDER_PASSWORD", "")
HOTFOLDER_POOL_SIZE: int = int(_get("HOTFOLDER_POOL_SIZE", "2"))

# --- Pipeline ---
HOTFOLDER_BASE_PATH: str = _get("HOTFOLDER_BASE_PATH", "/")
HOTFOLDER_HANDLER: str = _get("HOTFOLDER_HANDLER", "")
HOTFOLDER_PATTERNS: str = _get("HOTFOLDER_PATTERNS", "")
HOTFOLDER_AUDIT_LOG_PATH: str = _get(
    "HOTFOLDER_AUDIT_LOG_PATH", str(PROJECT_ROOT / "data" / "hotfolder_audit.log")
)
