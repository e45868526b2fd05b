"""Tests for settings loading and validation."""

import json

from mage2woo.config import Settings


def test_defaults():
    settings = Settings()

    assert settings.batch_size == 20
    assert settings.max_empty_pages == 3
    assert settings.max_pages == 1000


def test_from_env_coerces_types():
    settings = Settings.from_env({
        "MAGE2WOO_CONNECTOR_URL": "https://magento.test/connector.php",
        "MAGE2WOO_BATCH_SIZE": "50",
        "MAGE2WOO_VERIFY_SSL": "false",
        "MAGE2WOO_REQUEST_TIMEOUT": "12.5",
        "UNRELATED": "x",
    })

    assert settings.connector_url == "https://magento.test/connector.php"
    assert settings.batch_size == 50
    assert settings.verify_ssl is False
    assert settings.request_timeout == 12.5


def test_from_dict_ignores_unknown_keys():
    settings = Settings.from_dict({"target": "staging", "colour": "blue", "wc_url": None})

    assert settings.target == "staging"
    assert settings.wc_url == ""


def test_json_file_with_env_override(tmp_path, monkeypatch):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"connector_url": "https://a.test", "batch_size": 10}))
    monkeypatch.setenv("MAGE2WOO_BATCH_SIZE", "40")

    settings = Settings.from_json_file(str(path))

    assert settings.connector_url == "https://a.test"
    assert settings.batch_size == 40


def test_to_dict_redacts_secrets():
    settings = Settings(connector_api_key="k", wc_consumer_secret="s")

    redacted = settings.to_dict()

    assert redacted["connector_api_key"] == "***"
    assert redacted["wc_consumer_secret"] == "***"
    assert redacted["wc_consumer_key"] is None
    assert settings.to_dict(redact=False)["connector_api_key"] == "k"


class TestValidate:
    def test_staging_needs_only_connector(self, settings):
        assert settings.validate() == []

    def test_woocommerce_needs_credentials(self):
        errors = Settings(connector_url="https://a.test", connector_api_key="k").validate()

        assert "WooCommerce URL is required" in errors
        assert "WooCommerce consumer key and secret are required" in errors

    def test_bad_policy_values(self, settings):
        settings.batch_size = 0
        settings.target = "shopify"

        errors = settings.validate()

        assert "Batch size must be at least 1" in errors
        assert "Unknown target: shopify" in errors
