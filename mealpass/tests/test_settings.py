from ..config.settings import Settings, load_settings


class TestSettings:
    """配置加载测试"""

    def test_development_environment(self):
        dev = load_settings("development")

        assert dev.debug is True
        assert dev.log_level == "DEBUG"
        assert dev.preserve_consumed_selections is True

    def test_default_environment(self):
        assert type(load_settings("production")) is Settings

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PRESERVE_CONSUMED_SELECTIONS", "false")
        monkeypatch.setenv("SEARCH_MIN_LENGTH", "3")

        settings = Settings()

        assert settings.preserve_consumed_selections is False
        assert settings.search_min_length == 3
