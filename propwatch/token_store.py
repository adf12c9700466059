import json
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"


class TokenStore:
    """Persists the bearer token, the only piece of local state, in a JSON file."""

    def __init__(self, file_path: str = ".propwatch_token.json"):
        self.file_path = file_path

    def load(self) -> Optional[str]:
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Unreadable token file %s: %s", self.file_path, e)
            return None
        token = data.get(TOKEN_KEY) if isinstance(data, dict) else None
        return token or None

    def save(self, token: str):
        with open(self.file_path, "w", encoding="utf-8") as f:
            json.dump({TOKEN_KEY: token}, f, indent=2)

    def clear(self):
        try:
            os.remove(self.file_path)
        except FileNotFoundError:
            pass
