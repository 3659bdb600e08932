import logging

from sieveql.config import DEFAULT_CONFIG, QueryConfig


def test_defaults():
    assert DEFAULT_CONFIG.default_limit == 10
    assert DEFAULT_CONFIG.default_page == 1
    assert DEFAULT_CONFIG.default_sort == "-createdAt"
    assert DEFAULT_CONFIG.max_limit is None
    assert DEFAULT_CONFIG.reserved_keys == frozenset({"searchTerm", "sort", "page", "limit", "fields"})


def test_custom_keys_change_reserved_set():
    config = QueryConfig(search_key="q", limit_key="per_page")
    assert "q" in config.reserved_keys
    assert "per_page" in config.reserved_keys
    assert "searchTerm" not in config.reserved_keys


def test_with_overrides_ignores_none():
    config = DEFAULT_CONFIG.with_overrides(default_limit=20, max_limit=None)
    assert config.default_limit == 20
    assert config.max_limit is None
    assert DEFAULT_CONFIG.default_limit == 10


def test_from_env():
    config = QueryConfig.from_env(environ={
        "SIEVEQL_DEFAULT_LIMIT": "25",
        "SIEVEQL_MAX_LIMIT": "100",
        "SIEVEQL_DEFAULT_SORT": " -updatedAt ",
    })
    assert config.default_limit == 25
    assert config.max_limit == 100
    assert config.default_sort == "-updatedAt"


def test_from_env_custom_prefix():
    config = QueryConfig.from_env(prefix="API_", environ={"API_DEFAULT_PAGE": "2"})
    assert config.default_page == 2


def test_from_env_ignores_invalid_values(caplog):
    with caplog.at_level(logging.WARNING, logger="sieveql.config"):
        config = QueryConfig.from_env(environ={
            "SIEVEQL_DEFAULT_LIMIT": "lots",
            "SIEVEQL_MAX_LIMIT": "0",
            "SIEVEQL_DEFAULT_SORT": "   ",
        })
    assert config == QueryConfig()
    assert "SIEVEQL_DEFAULT_LIMIT" in caplog.text
    assert "SIEVEQL_MAX_LIMIT" in caplog.text
