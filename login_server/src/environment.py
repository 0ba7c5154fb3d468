"""
Deployment environment: database credentials and the password pepper.

The values come from one of two sources:

- Process environment variables, when USE_ENVIRONMENTAL_VARIABLES is exactly
  "TRUE" (the container image sets this).
- A YAML configuration file otherwise. A missing file is replaced by an
  example one and startup stops so the operator can fill it in.
"""

import os
import sys
from pathlib import Path, PurePath, PureWindowsPath
from typing import Any, Dict, Mapping, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from login_server.src.exceptions import ConfigurationError, ExampleConfigCreated

logger = structlog.get_logger(__name__)

USE_ENV_VARS_FLAG = "USE_ENVIRONMENTAL_VARIABLES"

WINDOWS_CONFIG_PATH = PureWindowsPath(r"C:\Program Files\TwinsightContentDashboard\config.yml")
UNIX_CONFIG_PATH = Path("/etc/twinsight-content-dashboard/config.yml")


class Environment(BaseModel):
    """Database connection details and the password pepper."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    database_host: str = Field(..., description="Database host, optionally host:port")
    database_name: str = Field(..., description="Database name")
    database_username: str = Field(..., description="Database user")
    database_password: str = Field(..., repr=False, description="Database password")
    password_pepper: str = Field(..., repr=False, description="Server-wide secret mixed into password hashes")

    @classmethod
    def example(cls) -> "Environment":
        """Placeholder values written into a freshly created configuration file."""
        return cls(
            database_host="YOUR_DATABASE_HOST",
            database_name="YOUR_DATABASE_NAME",
            database_username="YOUR_DATABASE_USERNAME",
            database_password="YOUR_DATABASE_PASSWORD",
            password_pepper="YOUR_PASSWORD_PEPPER",
        )


def use_environment_variables(environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    Decide where configuration comes from.

    Only the exact value "TRUE" selects environment variables; an unset flag or
    any other value selects the configuration file.
    """
    environ = os.environ if environ is None else environ
    return environ.get(USE_ENV_VARS_FLAG) == "TRUE"


def default_config_path(
    platform: Optional[str] = None,
    executable: Optional[str] = None,
) -> PurePath:
    """
    Platform-specific location of the configuration file.

    Args:
        platform: sys.platform value (defaults to the running platform)
        executable: Path of the running program (defaults to sys.argv[0])

    Returns:
        Path of config.yml
    """
    platform = sys.platform if platform is None else platform

    if platform == "win32":
        return WINDOWS_CONFIG_PATH
    if platform.startswith("linux") or platform.startswith("freebsd"):
        return UNIX_CONFIG_PATH

    executable = sys.argv[0] if executable is None else executable
    path = Path(executable).resolve().parent / "config.yml"
    logger.warning(
        "unsupported_platform_config_location",
        platform=platform,
        config_path=str(path),
    )
    return path


def load_from_variables(environ: Optional[Mapping[str, str]] = None) -> Environment:
    """
    Load the environment from DATABASE_HOST, DATABASE_NAME, ... variables.

    Args:
        environ: Variables to read (defaults to the process environment)

    Raises:
        ConfigurationError: Naming every required variable that is not set
    """
    environ = os.environ if environ is None else environ
    values = {
        name: environ[name.upper()]
        for name in Environment.model_fields
        if name.upper() in environ
    }

    try:
        environment = Environment.model_validate(values)
    except ValidationError as e:
        missing = [
            str(error["loc"][0]).upper()
            for error in e.errors()
            if error["type"] == "missing"
        ]
        for name in missing:
            logger.error("environment_variable_not_set", variable=name)
        raise ConfigurationError(
            f"Required environmental variables not set: {', '.join(missing)}",
            missing=missing,
        ) from e

    logger.info("environment_loaded", source="variables")
    return environment


def write_example_config(path: Path) -> None:
    """
    Create the configuration directory and write an example file.

    Raises:
        ConfigurationError: If the directory or file cannot be created
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("config_directory_create_failed", path=str(path.parent), error=str(e))
        raise ConfigurationError(
            f"An error occurred while creating the configuration file directory: {e}"
        ) from e

    content = yaml.safe_dump(Environment.example().model_dump(), sort_keys=False)
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.error("config_file_create_failed", path=str(path), error=str(e))
        raise ConfigurationError(
            f"An error occurred while creating the configuration file: {e}"
        ) from e

    logger.info("example_config_created", path=str(path))


def load_from_file(path: Path) -> Environment:
    """
    Load the environment from a YAML configuration file.

    Raises:
        ExampleConfigCreated: If the file did not exist and an example was written
        ConfigurationError: If the file cannot be read or parsed
    """
    if not path.exists():
        write_example_config(path)
        raise ExampleConfigCreated(str(path))

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("config_file_read_failed", path=str(path), error=str(e))
        raise ConfigurationError(f"Unable to read configuration file: {e}") from e

    try:
        data: Any = yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.error("config_file_parse_failed", path=str(path), error=str(e))
        raise ConfigurationError(
            f"Something went wrong deserializing the configuration file content: {e}"
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file {path} must contain a mapping of settings"
        )

    try:
        environment = Environment.model_validate(data)
    except ValidationError as e:
        missing = [str(error["loc"][0]) for error in e.errors() if error["type"] == "missing"]
        logger.error("config_file_invalid", path=str(path), missing=missing)
        raise ConfigurationError(
            f"Configuration file {path} is invalid: {e}",
            missing=missing,
        ) from e

    logger.info("environment_loaded", source="file", path=str(path))
    return environment


def load_environment(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Environment:
    """
    Load the deployment environment from the configured source.

    Args:
        config_path: Override of the platform default configuration file
        environ: Variables to read, including USE_ENVIRONMENTAL_VARIABLES
            (defaults to the process environment)

    Returns:
        Loaded environment
    """
    if use_environment_variables(environ):
        return load_from_variables(environ)

    path = Path(config_path) if config_path else Path(str(default_config_path()))
    return load_from_file(path)


def describe(environment: Environment) -> Dict[str, str]:
    """Loggable view of an environment with secrets left out."""
    return {
        "database_host": environment.database_host,
        "database_name": environment.database_name,
        "database_username": environment.database_username,
    }
