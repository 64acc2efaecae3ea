import pytest

from jiomart_scraper.config import CrawlSettings, load_overrides, load_settings, wait_multiplier
from jiomart_scraper.errors import ConfigError


def test_defaults_match_actor_input_schema() -> None:
    settings = load_settings(None)

    assert settings.pincode == "411001"
    assert settings.search_urls == []
    assert settings.search_queries == []
    assert settings.max_products_per_search == 100
    assert settings.max_request_retries == 3
    assert settings.navigation_timeout == 90_000
    assert settings.headless is False
    assert settings.screenshot_on_error is True
    assert settings.debug_mode is False
    assert settings.scroll_count == 5
    assert settings.max_concurrency == 1
    assert settings.reload_after_location is False
    assert settings.fail_on_empty_results is False
    assert settings.proxy_configuration.use_apify_proxy is False


def test_camel_case_input_and_cleanup() -> None:
    settings = load_settings(
        {
            "pincode": 560001,
            "searchUrls": [{"url": " https://www.jiomart.com/search?q=atta "}, "", None],
            "searchQueries": "dal",
            "maxProductsPerSearch": 20,
            "proxyConfiguration": {"useApifyProxy": True, "apifyProxyGroups": ["RESIDENTIAL"]},
            "unknownKey": "ignored",
        }
    )

    assert settings.pincode == "560001"
    assert settings.search_urls == ["https://www.jiomart.com/search?q=atta"]
    assert settings.search_queries == ["dal"]
    assert settings.max_products_per_search == 20
    assert settings.proxy_configuration.use_apify_proxy is True
    dumped = settings.proxy_configuration.model_dump(by_alias=True, exclude_none=True)
    assert dumped["apifyProxyGroups"] == ["RESIDENTIAL"]


def test_custom_proxy_url_aliases() -> None:
    settings = load_settings({"proxyConfiguration": {"proxyUrl": "http://u:p@proxy.local:8000"}})
    assert settings.proxy_configuration.custom_url == "http://u:p@proxy.local:8000"


@pytest.mark.parametrize(
    "payload",
    [
        {"pincode": "41A001"},
        {"maxProductsPerSearch": 0},
        {"maxRequestRetries": -1},
        {"maxConcurrency": 0},
    ],
)
def test_invalid_input_raises_config_error(payload) -> None:
    with pytest.raises(ConfigError):
        load_settings(payload)


def test_yaml_overrides_win_over_actor_input(tmp_path) -> None:
    overrides = tmp_path / "local.yaml"
    overrides.write_text("pincode: '110001'\nsearchQueries:\n  - rice\ndebugMode: true\n", encoding="utf-8")

    settings = load_settings({"pincode": "411001", "searchQueries": ["atta"]}, overrides)

    assert settings.pincode == "110001"
    assert settings.search_queries == ["rice"]
    assert settings.debug_mode is True


def test_overrides_must_be_a_mapping(tmp_path) -> None:
    overrides = tmp_path / "list.yaml"
    overrides.write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_overrides(overrides)
    with pytest.raises(ConfigError):
        load_overrides(tmp_path / "missing.yaml")


def test_headless_env_override(monkeypatch) -> None:
    settings = CrawlSettings(headless=False)
    assert settings.effective_headless is False

    monkeypatch.setenv("JIOMART_HEADLESS", "1")
    assert settings.effective_headless is True

    monkeypatch.setenv("JIOMART_HEADLESS", "false")
    assert CrawlSettings(headless=True).effective_headless is False


def test_wait_multiplier_is_never_negative(monkeypatch) -> None:
    monkeypatch.setenv("JIOMART_WAIT_MULTIPLIER", "-2")
    assert wait_multiplier() == 0.0
    monkeypatch.setenv("JIOMART_WAIT_MULTIPLIER", "garbage")
    assert wait_multiplier() == 1.0
