from propwatch.config_loader import DEFAULTS, load_config


def test_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("PROPWATCH_CONFIG", str(tmp_path / "missing.yml"))
    for name in ("PROPWATCH_API_BASE_URL", "PROPWATCH_TIMEOUT", "PROPWATCH_TOKEN_FILE"):
        monkeypatch.delenv(name, raising=False)

    cfg = load_config()

    assert cfg == DEFAULTS
    assert cfg["api"] is not DEFAULTS["api"]


def test_yaml_merges_per_section(tmp_path, monkeypatch):
    path = tmp_path / "propwatch.yml"
    path.write_text("api:\n  base_url: https://fraud.example.com/api/v1\nreports:\n  limit: 25\n", encoding="utf-8")
    monkeypatch.setenv("PROPWATCH_CONFIG", str(path))
    monkeypatch.delenv("PROPWATCH_API_BASE_URL", raising=False)
    monkeypatch.delenv("PROPWATCH_TIMEOUT", raising=False)

    cfg = load_config()

    assert cfg["api"]["base_url"] == "https://fraud.example.com/api/v1"
    assert cfg["api"]["timeout"] == 30
    assert cfg["reports"]["limit"] == 25
    assert cfg["reports"]["high_confidence"] == 0.85


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "propwatch.yml"
    path.write_text("api:\n  base_url: https://from-file/api/v1\n", encoding="utf-8")
    monkeypatch.setenv("PROPWATCH_CONFIG", str(path))
    monkeypatch.setenv("PROPWATCH_API_BASE_URL", "https://from-env/api/v1")
    monkeypatch.setenv("PROPWATCH_TIMEOUT", "7.5")
    monkeypatch.setenv("PROPWATCH_TOKEN_FILE", str(tmp_path / "tok.json"))

    cfg = load_config()

    assert cfg["api"]["base_url"] == "https://from-env/api/v1"
    assert cfg["api"]["timeout"] == 7.5
    assert cfg["session"]["token_file"] == str(tmp_path / "tok.json")


def test_empty_or_scalar_section_keeps_defaults(tmp_path, monkeypatch):
    path = tmp_path / "propwatch.yml"
    path.write_text("api:\nreports: 5\nsession:\n  token_file: custom.json\n", encoding="utf-8")
    monkeypatch.setenv("PROPWATCH_CONFIG", str(path))
    monkeypatch.setenv("PROPWATCH_API_BASE_URL", "https://from-env/api/v1")
    monkeypatch.delenv("PROPWATCH_TIMEOUT", raising=False)
    monkeypatch.delenv("PROPWATCH_TOKEN_FILE", raising=False)

    cfg = load_config()

    assert cfg["api"] == {"base_url": "https://from-env/api/v1", "timeout": 30}
    assert cfg["reports"] == DEFAULTS["reports"]
    assert cfg["session"]["token_file"] == "custom.json"
