import time
from unittest.mock import MagicMock

import jwt
import pytest

from propwatch.session_store import SessionStore
from propwatch.token_store import TokenStore

SIGNING_KEY = "test-signing-key-that-is-long-enough-for-hs256"


def make_token(sub: str = "agency-1", exp_offset: float = 3600, **claims) -> str:
    payload = {"sub": sub, **claims}
    if exp_offset is not None:
        payload["exp"] = int(time.time() + exp_offset)
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


def make_response(status: int = 200, body=None):
    response = MagicMock()
    response.status_code = status
    if body is None:
        response.content = b""
        response.json.side_effect = ValueError("no body")
        response.text = ""
    else:
        response.content = b"{}"
        response.json.return_value = body
        response.text = str(body)
    return response


@pytest.fixture
def token_store(tmp_path):
    return TokenStore(str(tmp_path / "token.json"))


@pytest.fixture
def session_store(token_store):
    return SessionStore(token_store)
