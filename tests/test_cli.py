import copy
from unittest.mock import patch

import pytest

from conftest import make_response, make_token
from propwatch import cli
from propwatch.config_loader import DEFAULTS
from propwatch.token_store import TokenStore

CSV = b"Addr,PostCode,Client,Status,Withdrawn\n12 High St,AB1 2CD,Jane Doe,withdrawn,2024-01-02\n"


@pytest.fixture
def cfg(tmp_path):
    cfg = copy.deepcopy(DEFAULTS)
    cfg["api"]["base_url"] = "http://api.test/api/v1"
    cfg["session"]["token_file"] = str(tmp_path / "token.json")
    with patch("propwatch.cli.load_config", return_value=cfg):
        yield cfg


@pytest.fixture
def logged_in(cfg):
    TokenStore(cfg["session"]["token_file"]).save(make_token(sub="agency-1"))
    return cfg


def _router(routes):
    """Fake requests.request answering by (method, path suffix)."""
    calls = []

    def request(method, url, **kwargs):
        calls.append((method, url, kwargs))
        for (m, suffix), response in routes.items():
            if m == method and url.endswith(suffix):
                return response
        raise AssertionError(f"unexpected request {method} {url}")

    request.calls = calls
    return request


def test_login_saves_token(cfg, capsys):
    token = make_token(sub="agency-1")
    fake = _router({("POST", "/auth/login"): make_response(200, {
        "access_token": token, "agency_id": "agency-1", "agency_name": "Acme Lettings",
    })})

    with patch("propwatch.api_client.requests.request", side_effect=fake):
        code = cli.main(["login", "--username", "acme", "--password", "secret1"])

    assert code == 0
    assert "Acme Lettings" in capsys.readouterr().out
    assert TokenStore(cfg["session"]["token_file"]).load() == token


def test_command_without_session_exits_2(cfg, capsys):
    with patch("propwatch.api_client.requests.request") as mock_request:
        code = cli.main(["stats"])

    assert code == 2
    assert "propwatch login" in capsys.readouterr().out
    mock_request.assert_not_called()


def test_upload_with_auto_mapping(logged_in, tmp_path, capsys):
    path = tmp_path / "listings.csv"
    path.write_bytes(CSV)
    fake = _router({
        ("GET", "/auth/me"): make_response(200, {"id": "agency-1", "name": "Acme"}),
        ("POST", "/documents/upload"): make_response(200, {
            "upload_id": "u1", "status": "completed", "records_processed": 1, "records_skipped": 0,
        }),
    })

    with patch("propwatch.api_client.requests.request", side_effect=fake):
        code = cli.main(["upload", str(path)])

    assert code == 0
    assert "1 records processed" in capsys.readouterr().out


def test_upload_missing_field_is_not_sent(logged_in, tmp_path, capsys):
    path = tmp_path / "listings.csv"
    path.write_bytes(b"Addr,Client,Status,Withdrawn\n12 High St,Jane Doe,withdrawn,2024-01-02\n")
    fake = _router({("GET", "/auth/me"): make_response(200, {"id": "agency-1", "name": "Acme"})})

    with patch("propwatch.api_client.requests.request", side_effect=fake):
        code = cli.main(["upload", str(path)])

    out = capsys.readouterr().out
    assert code == 1
    assert "Postcode" in out
    assert [c[0] for c in fake.calls] == ["GET"]


def test_expired_session_during_command(logged_in, capsys):
    fake = _router({
        ("GET", "/auth/me"): make_response(200, {"id": "agency-1", "name": "Acme"}),
        ("GET", "/agencies/stats"): make_response(401, {"detail": "Token has expired"}),
    })

    with patch("propwatch.api_client.requests.request", side_effect=fake):
        code = cli.main(["stats"])

    assert code == 2
    assert "Token has expired" in capsys.readouterr().out
    assert TokenStore(logged_in["session"]["token_file"]).load() is None


def test_bad_map_override(logged_in, tmp_path, capsys):
    path = tmp_path / "listings.csv"
    path.write_bytes(CSV)
    fake = _router({("GET", "/auth/me"): make_response(200, {"id": "agency-1", "name": "Acme"})})

    with patch("propwatch.api_client.requests.request", side_effect=fake):
        code = cli.main(["upload", str(path), "--map", "postcode"])

    assert code == 1
    assert "Expected FIELD=VALUE" in capsys.readouterr().out
