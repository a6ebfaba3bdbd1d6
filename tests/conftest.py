import pytest

SETTINGS_ENV = (
    "MI_EMAIL", "MI_PASSWORD", "EMAIL", "PASSWORD", "DEBUG", "LOG_LEVEL",
    "DIR_SCREENSHOTS", "SESSION_FILE", "INTERACTIVE", "DRYRUN", "NOWAIT",
    "NOTIFY", "NOTIFY_URL", "TIME", "TIMEOUT", "WIDTH", "HEIGHT",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate BotSettings from the developer's shell and .env file."""
    for key in SETTINGS_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch
