"""
Unit tests for application settings.
"""

from src.config.settings import Settings


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:

    def test_only_used_api_fields(self):
        """Route prefixes are fixed at /api/v1; there is no version setting."""
        assert "api_version" not in Settings.model_fields
        assert {"api_title", "api_keys"} <= set(Settings.model_fields)

    def test_api_keys_list_strips_blanks(self):
        settings = make_settings(api_keys=" a, ,b ")

        assert settings.api_keys_list == ["a", "b"]

    def test_mock_mode_fills_placeholders(self):
        settings = make_settings(b2_mock_mode=True, b2_bucket_name="")

        options = settings.storage_options()

        assert options.missing_fields() == []
        assert options.bucket.bucket_name == "mock-bucket"
        assert settings.validate_required_fields() == []

    def test_missing_fields_reported_outside_mock_mode(self, monkeypatch):
        for name in ("B2_APPLICATION_KEY_ID", "B2_APPLICATION_KEY", "B2_BUCKET_ID", "B2_BUCKET_NAME"):
            monkeypatch.delenv(name, raising=False)
        settings = make_settings(b2_mock_mode=False, b2_bucket_id="bid")

        assert settings.validate_required_fields() == [
            "B2_APPLICATION_KEY_ID",
            "B2_APPLICATION_KEY",
            "B2_BUCKET_NAME",
        ]
        assert settings.storage_options().missing_fields() == [
            "applicationKeyId",
            "applicationKey",
            "bucketName",
        ]
