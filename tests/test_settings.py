"""Tests for .env loading and Settings."""
import pytest

from settings import (
    DEFAULT_DATABASES,
    ConfigurationError,
    Settings,
    load_env,
    parse_database_list,
)


class TestLoadEnv:
    def test_missing_file_is_empty(self, tmp_path):
        assert load_env(str(tmp_path / "nope.env")) == {}

    def test_parses_common_forms(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# stack configuration\n"
            "\n"
            "POSTGRES_USER=postgres\n"
            "export POSTGRES_CONTAINER=pg\n"
            'PORTAINER_PASSWORD="s3cr#t value"\n'
            "PORTAINER_USERNAME='admin'\n"
            "POSTGRES_WAIT_TIMEOUT=90  # seconds\n"
            "BARE_KEY\n"
            "EMPTY=\n"
        )
        values = load_env(str(env_file))
        assert values == {
            "POSTGRES_USER": "postgres",
            "POSTGRES_CONTAINER": "pg",
            "PORTAINER_PASSWORD": "s3cr#t value",
            "PORTAINER_USERNAME": "admin",
            "POSTGRES_WAIT_TIMEOUT": "90",
            "EMPTY": "",
        }

    def test_quoted_value_with_trailing_comment(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text('INIT_DB_DATABASES="one,two"  # services\n')
        values = load_env(str(env_file))
        assert values == {"INIT_DB_DATABASES": "one,two"}
        assert Settings.from_env(values).databases == ("one", "two")


class TestParseDatabaseList:
    def test_commas_and_spaces(self):
        assert parse_database_list("langfuse, nocodb  waha,,") == ("langfuse", "nocodb", "waha")

    def test_blank(self):
        assert parse_database_list("  ") == ()


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.container == "postgres"
        assert settings.user == "postgres"
        assert settings.max_wait == 60
        assert settings.databases == DEFAULT_DATABASES
        assert settings.portainer_url == "http://localhost:9000"
        assert settings.portainer_endpoint_id is None

    def test_overrides(self):
        settings = Settings.from_env({
            "POSTGRES_CONTAINER": "pg",
            "POSTGRES_USER": "admin",
            "POSTGRES_WAIT_TIMEOUT": "120",
            "INIT_DB_DATABASES": "a,b",
            "PORTAINER_URL": "https://portainer.example.com/",
            "PORTAINER_ENDPOINT_ID": "3",
        })
        assert settings.container == "pg"
        assert settings.user == "admin"
        assert settings.max_wait == 120
        assert settings.databases == ("a", "b")
        assert settings.portainer_url == "https://portainer.example.com"
        assert settings.portainer_endpoint_id == 3

    def test_empty_database_list_is_allowed(self):
        assert Settings.from_env({"INIT_DB_DATABASES": ""}).databases == ()

    @pytest.mark.parametrize("value", ["soon", "-5"])
    def test_invalid_timeout(self, value):
        with pytest.raises(ConfigurationError):
            Settings.from_env({"POSTGRES_WAIT_TIMEOUT": value})

    def test_invalid_endpoint_id(self):
        with pytest.raises(ConfigurationError):
            Settings.from_env({"PORTAINER_ENDPOINT_ID": "local"})

    def test_password_hidden_from_repr(self):
        settings = Settings.from_env({"PORTAINER_PASSWORD": "hunter2"})
        assert "hunter2" not in repr(settings)

    def test_process_environment_wins_over_file(self, tmp_path, clean_env):
        env_file = tmp_path / ".env"
        env_file.write_text("POSTGRES_CONTAINER=from-file\nPOSTGRES_USER=file-user\n")
        clean_env.setenv("POSTGRES_CONTAINER", "from-env")
        settings = Settings.load(str(env_file))
        assert settings.container == "from-env"
        assert settings.user == "file-user"
