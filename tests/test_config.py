import pytest

from tollgate import config
from tollgate.config import Settings, reload_settings, settings
from tollgate.limiter import Limiter


@pytest.fixture(autouse=True)
def restore_settings():
    original = dict(settings.__dict__)
    yield
    settings.__dict__.update(original)


def test_defaults():
    fresh = Settings()
    assert fresh.RATE_LIMIT_ENABLED is True
    assert fresh.RATE_LIMIT_CAPACITY == 10.0
    assert fresh.RATE_LIMIT_REFILL_RATE == 1.0
    assert fresh.RATE_LIMIT_RETRY_AFTER == 5
    assert fresh.RATE_LIMIT_RETRY_MODE == "fixed"
    assert fresh.RATE_LIMIT_MAX_KEYS is None


def test_reload_reads_environment(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_CAPACITY", "3")
    monkeypatch.setenv("RATE_LIMIT_REFILL_RATE", "0.5")
    monkeypatch.setenv("RATE_LIMIT_RETRY_MODE", "deficit")
    monkeypatch.setenv("RATE_LIMIT_MAX_KEYS", "100")

    reloaded = reload_settings()

    assert reloaded is config.settings
    assert reloaded.RATE_LIMIT_CAPACITY == 3.0
    assert reloaded.RATE_LIMIT_REFILL_RATE == 0.5
    assert reloaded.RATE_LIMIT_RETRY_MODE == "deficit"
    assert reloaded.RATE_LIMIT_MAX_KEYS == 100
    limiter = Limiter.from_settings(reloaded)
    assert limiter.capacity == 3.0


@pytest.mark.parametrize(
    "name,value",
    [
        ("RATE_LIMIT_CAPACITY", "0"),
        ("RATE_LIMIT_REFILL_RATE", "-2"),
        ("RATE_LIMIT_RETRY_MODE", "sliding-window"),
        ("RATE_LIMIT_MAX_KEYS", "zero"),
    ],
)
def test_invalid_environment_raises(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(RuntimeError) as excinfo:
        reload_settings()
    assert name in str(excinfo.value)
