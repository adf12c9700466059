import logging
import os

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


DEFAULTS = {
    "api": {"base_url": "http://localhost:8000/api/v1", "timeout": 30},
    "session": {"token_file": ".propwatch_token.json"},
    "reports": {"limit": 100, "high_confidence": 0.85, "medium_confidence": 0.7},
    "reference_data": {"min_year": 1995, "max_year": 2030},
}

# env var -> (section, key, cast)
ENV_OVERRIDES = {
    "PROPWATCH_API_BASE_URL": ("api", "base_url", str),
    "PROPWATCH_TIMEOUT": ("api", "timeout", float),
    "PROPWATCH_TOKEN_FILE": ("session", "token_file", str),
}


def _config_path() -> str:
    default = os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "propwatch.yml")
    return os.getenv("PROPWATCH_CONFIG", default)


def load_config() -> dict:
    try:
        with open(_config_path(), "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        cfg = {}

    # shallow merge defaults
    merged = {k: dict(v) for k, v in DEFAULTS.items()}
    for k, v in cfg.items():
        if isinstance(merged.get(k), dict):
            if not isinstance(v, dict):
                # "api:" with no keys loads as None
                if v is not None:
                    logger.warning("Ignoring config section %r: expected a mapping, got %r", k, v)
                continue
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v

    for env_name, (section, key, cast) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            merged[section][key] = cast(value)
    return merged
