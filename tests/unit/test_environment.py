"""
Unit tests for loading the deployment environment.

Tests cover:
- Selecting environment variables vs. the configuration file
- Platform-specific configuration file locations
- Example configuration creation
- Missing and malformed values
"""

from pathlib import Path

import pytest
import yaml

from login_server.src.environment import (
    UNIX_CONFIG_PATH, WINDOWS_CONFIG_PATH, Environment, default_config_path,
    describe, load_environment, load_from_file, load_from_variables,
    use_environment_variables, write_example_config
)
from login_server.src.exceptions import ConfigurationError, ExampleConfigCreated

VARIABLES = {
    "DATABASE_HOST": "db.internal:5432",
    "DATABASE_NAME": "twinsight",
    "DATABASE_USERNAME": "dashboard",
    "DATABASE_PASSWORD": "hunter2",
    "PASSWORD_PEPPER": "pepper",
}

CONFIG = {
    "database_host": "localhost",
    "database_name": "twinsight",
    "database_username": "dashboard",
    "database_password": "hunter2",
    "password_pepper": "pepper",
}


@pytest.fixture
def clean_environ(monkeypatch):
    for name in VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("USE_ENVIRONMENTAL_VARIABLES", raising=False)
    return monkeypatch


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(CONFIG), encoding="utf-8")
    return path


# ============================================================================
# SOURCE SELECTION
# ============================================================================


class TestUseEnvironmentVariables:
    """Only the exact value TRUE selects environment variables."""

    def test_true(self):
        assert use_environment_variables({"USE_ENVIRONMENTAL_VARIABLES": "TRUE"})

    @pytest.mark.parametrize("value", ["true", "True", "1", "yes", ""])
    def test_other_values(self, value):
        assert not use_environment_variables({"USE_ENVIRONMENTAL_VARIABLES": value})

    def test_unset(self):
        assert not use_environment_variables({})

    def test_reads_process_environment(self, clean_environ):
        clean_environ.setenv("USE_ENVIRONMENTAL_VARIABLES", "TRUE")
        assert use_environment_variables()


class TestDefaultConfigPath:
    """Tests for the platform-specific configuration file location."""

    def test_windows(self):
        path = default_config_path("win32")
        assert path == WINDOWS_CONFIG_PATH
        assert str(path) == r"C:\Program Files\TwinsightContentDashboard\config.yml"

    @pytest.mark.parametrize("platform", ["linux", "freebsd13", "freebsd14"])
    def test_unix(self, platform):
        assert default_config_path(platform) == UNIX_CONFIG_PATH
        assert str(UNIX_CONFIG_PATH) == "/etc/twinsight-content-dashboard/config.yml"

    def test_other_platform_uses_executable_directory(self, tmp_path):
        executable = tmp_path / "bin" / "login-server"
        path = default_config_path("darwin", str(executable))
        assert path == (tmp_path / "bin").resolve() / "config.yml"


# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================


class TestLoadFromVariables:
    """Tests for reading DATABASE_* and PASSWORD_PEPPER."""

    def test_all_set(self, clean_environ):
        for name, value in VARIABLES.items():
            clean_environ.setenv(name, value)

        environment = load_from_variables()

        assert environment.database_host == "db.internal:5432"
        assert environment.database_name == "twinsight"
        assert environment.database_username == "dashboard"
        assert environment.database_password == "hunter2"
        assert environment.password_pepper == "pepper"

    def test_missing_variables_are_named(self, clean_environ):
        clean_environ.setenv("DATABASE_HOST", "localhost")
        clean_environ.setenv("DATABASE_NAME", "twinsight")

        with pytest.raises(ConfigurationError) as exc_info:
            load_from_variables()

        assert exc_info.value.missing == [
            "DATABASE_USERNAME", "DATABASE_PASSWORD", "PASSWORD_PEPPER"
        ]
        assert "DATABASE_USERNAME" in str(exc_info.value)

    def test_reads_given_mapping(self):
        environment = load_from_variables({**VARIABLES, "DATABASE_PASSWORD": "from-mapping"})
        assert environment.database_password == "from-mapping"

    def test_names_are_upper_case(self):
        lower = {name.lower(): value for name, value in VARIABLES.items()}

        with pytest.raises(ConfigurationError) as exc_info:
            load_from_variables(lower)

        assert len(exc_info.value.missing) == len(VARIABLES)


# ============================================================================
# CONFIGURATION FILE
# ============================================================================


class TestLoadFromFile:
    """Tests for the YAML configuration file."""

    def test_valid_file(self, config_file):
        environment = load_from_file(config_file)
        assert environment == Environment(**CONFIG)

    def test_missing_file_writes_example(self, tmp_path):
        path = tmp_path / "etc" / "twinsight" / "config.yml"

        with pytest.raises(ExampleConfigCreated) as exc_info:
            load_from_file(path)

        assert exc_info.value.path == str(path)
        assert str(exc_info.value) == (
            f"An example configuration file has been created at {path}, "
            "please configure it before restarting the application."
        )
        assert yaml.safe_load(path.read_text()) == Environment.example().model_dump()

    def test_example_keeps_field_order(self, tmp_path):
        path = tmp_path / "config.yml"
        write_example_config(path)

        keys = [line.split(":")[0] for line in path.read_text().splitlines()]
        assert keys == list(CONFIG)

    def test_example_file_loads_after_creation(self, tmp_path):
        path = tmp_path / "config.yml"
        with pytest.raises(ExampleConfigCreated):
            load_from_file(path)

        assert load_from_file(path).database_host == "YOUR_DATABASE_HOST"

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")

        with pytest.raises(ConfigurationError):
            write_example_config(blocker / "config.yml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("database_host: [unclosed\n")

        with pytest.raises(ConfigurationError, match="deserializing"):
            load_from_file(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- database_host\n- database_name\n")

        with pytest.raises(ConfigurationError):
            load_from_file(path)

    def test_missing_keys(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(yaml.safe_dump({"database_host": "localhost"}))

        with pytest.raises(ConfigurationError) as exc_info:
            load_from_file(path)

        assert "password_pepper" in exc_info.value.missing
        assert "database_host" not in exc_info.value.missing

    def test_numeric_values_become_strings(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(yaml.safe_dump({**CONFIG, "database_password": 12345}))

        assert load_from_file(path).database_password == "12345"


class TestLoadEnvironment:
    """Tests for choosing the source."""

    def test_uses_file_without_flag(self, clean_environ, config_file):
        for name, value in VARIABLES.items():
            clean_environ.setenv(name, value)

        environment = load_environment(str(config_file), environ={})
        assert environment.database_host == "localhost"

    def test_uses_variables_with_flag(self, clean_environ, tmp_path):
        environment = load_environment(
            str(tmp_path / "absent.yml"),
            environ={"USE_ENVIRONMENTAL_VARIABLES": "TRUE", **VARIABLES}
        )

        assert environment.database_host == "db.internal:5432"
        assert not (tmp_path / "absent.yml").exists()

    def test_given_mapping_replaces_process_environment(self, clean_environ, tmp_path):
        for name, value in VARIABLES.items():
            clean_environ.setenv(name, value)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment(
                str(tmp_path / "absent.yml"),
                environ={"USE_ENVIRONMENTAL_VARIABLES": "TRUE", "DATABASE_HOST": "other"}
            )

        assert "DATABASE_HOST" not in exc_info.value.missing
        assert "PASSWORD_PEPPER" in exc_info.value.missing

    def test_process_environment_by_default(self, clean_environ, tmp_path):
        clean_environ.setenv("USE_ENVIRONMENTAL_VARIABLES", "TRUE")
        for name, value in VARIABLES.items():
            clean_environ.setenv(name, value)

        assert load_environment(str(tmp_path / "absent.yml")).database_name == "twinsight"


class TestSecretsNotExposed:
    """Secrets stay out of repr and log views."""

    def test_repr(self):
        text = repr(Environment(**CONFIG))
        assert "hunter2" not in text
        assert "password_pepper" not in text

    def test_describe(self):
        view = describe(Environment(**CONFIG))
        assert "database_password" not in view
        assert "password_pepper" not in view
        assert view["database_host"] == "localhost"
