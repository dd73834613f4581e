"""Dynaconf settings configuration"""

from pathlib import Path
from dynaconf import Dynaconf, Validator

PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

settings = Dynaconf(
    envvar_prefix="APP",
    settings_files=[
        str(CONFIG_DIR / "settings.toml"),
        str(CONFIG_DIR / "settings.local.toml"),
        str(CONFIG_DIR / ".secrets.toml"),
    ],
    environments=True,
    env_switcher="APP_ENV",
)

settings.validators.register(
    Validator("DATABASE_URL", must_exist=True),
    Validator("JWT_SECRET", must_exist=True, min_len=32),
    Validator("NEGOTIATION_TTL_HOURS", "CODE_TTL_HOURS", must_exist=True, gt=0),
    Validator("FLOOR_PRICE_RATIO", must_exist=True, gt=0, lte=1),
    Validator("COUNTER_RULE", is_in=["narrow", "no_regress"]),
    Validator("CODE_ENTROPY_BYTES", gte=10),
)


def validate_settings():
    """Validate all settings on startup."""
    settings.validators.validate()
