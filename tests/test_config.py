import importlib


def test_env_overrides_and_validation(monkeypatch, fresh_config):
    monkeypatch.setenv("WATCHTHIS_ASYNC_DELAY", "-1")  # should clamp to min
    monkeypatch.setenv("WATCHTHIS_MAX_CONCURRENT", "0")  # min clamp
    monkeypatch.setenv("WATCHTHIS_SAMPLE_SIZE", "250")
    monkeypatch.setenv("WATCHTHIS_MIN_POPULARITY", "7.5")

    cfg = importlib.reload(fresh_config)

    assert cfg.DEFAULT_ASYNC_DELAY == 0.0
    assert cfg.DEFAULT_MAX_CONCURRENT == 1
    assert cfg.DEFAULT_SAMPLE_SIZE == 250
    assert cfg.DEFAULT_MIN_POPULARITY == 7.5


def test_invalid_env_values_fall_back_to_defaults(monkeypatch, fresh_config):
    monkeypatch.setenv("WATCHTHIS_ASYNC_DELAY", "oops")
    monkeypatch.setenv("WATCHTHIS_MAX_CONCURRENT", "bad-int")
    monkeypatch.setenv("WATCHTHIS_HTTP_TIMEOUT", "soon")

    cfg = importlib.reload(fresh_config)

    assert cfg.DEFAULT_ASYNC_DELAY == 0.2
    assert cfg.DEFAULT_MAX_CONCURRENT == 5
    assert cfg.HTTP_TIMEOUT == 30.0


def test_pool_size_multipliers_are_sorted_largest_first(fresh_config):
    sizes = [size for size, _ in fresh_config.POOL_SIZE_MULTIPLIERS]
    multipliers = [m for _, m in fresh_config.POOL_SIZE_MULTIPLIERS]
    assert sizes == sorted(sizes, reverse=True)
    assert multipliers == sorted(multipliers, reverse=True)


def test_blank_env_values_are_treated_as_unset(monkeypatch, fresh_config):
    monkeypatch.setenv("WATCHTHIS_SAMPLE_SIZE", "  ")
    monkeypatch.setenv("WATCHTHIS_HTTP_TIMEOUT", " 12.5 ")

    cfg = importlib.reload(fresh_config)

    assert cfg.DEFAULT_SAMPLE_SIZE == 100
    assert cfg.HTTP_TIMEOUT == 12.5
