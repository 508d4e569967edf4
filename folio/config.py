"""Single source of truth for all configuration.

All modules import from here, never from os.environ directly.

Values are read from a plain dotenv file (``folio.env`` at the project
root, or the path in FOLIO_ENV_FILE) and overridden by the process
environment. A missing dotenv file is fine; defaults apply.
"""

import os
from pathlib import Path

from dotenv import dotenv_values

from folio.schemas.tags import TaggingConfig

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _load() -> dict[str, str | None]:
    """Merge the dotenv file (if any) with the process environment."""
    env_file = Path(os.environ.get("FOLIO_ENV_FILE", PROJECT_ROOT / "folio.env"))
    values: dict[str, str | None] = {}
    if env_file.exists():
        values.update(dotenv_values(env_file))
    values.update({k: v for k, v in os.environ.items() if k.startswith("FOLIO_")})
    return values


def _flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


_settings = _load()

# --- Storage ---
DB_PATH: str = _settings.get("FOLIO_DB_PATH") or str(PROJECT_ROOT / "data" / "folio.db")
TMP_DIR: str | None = _settings.get("FOLIO_TMP_DIR") or None

# --- Auto-tagging for new documents ---
TAG_ADD_ORIGIN: bool = _flag(_settings.get("FOLIO_TAG_ADD_ORIGIN"), True)
TAG_MAIL_TO: bool = _flag(_settings.get("FOLIO_TAG_MAIL_TO"), False)
TAG_MAIL_FROM: bool = _flag(_settings.get("FOLIO_TAG_MAIL_FROM"), False)
TAG_NEW_DOCUMENT: str = _settings.get("FOLIO_TAG_NEW_DOCUMENT", "new") or ""


def load_tagging_config() -> TaggingConfig:
    """Build the auto-tagging rules from configuration."""
    return TaggingConfig(
        add_origin=TAG_ADD_ORIGIN,
        mail_to=TAG_MAIL_TO,
        mail_from=TAG_MAIL_FROM,
        new_document=[t.strip() for t in TAG_NEW_DOCUMENT.split(",") if t.strip()],
    )
