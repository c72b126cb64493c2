from docchat.config import Settings


def test_server_address_comes_from_environment(monkeypatch):
    monkeypatch.setenv("DOCCHAT_HOST", "0.0.0.0")
    monkeypatch.setenv("DOCCHAT_PORT", "8080")
    current = Settings()
    assert (current.host, current.port) == ("0.0.0.0", 8080)


def test_defaults(monkeypatch):
    for name in ("DOCCHAT_HOST", "DOCCHAT_PORT", "AWS_REGION", "BEDROCK_MODEL_ID", "CONTEXT_MAX_CHARS"):
        monkeypatch.delenv(name, raising=False)
    current = Settings(_env_file=None)
    assert current.port == 3001
    assert current.aws_region == "ap-southeast-1"
    assert current.bedrock_model_id == "anthropic.claude-v2"
    assert current.context_max_chars == 5000
