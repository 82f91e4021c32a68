# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import configparser
import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, ClassVar, Literal

from ._identity import AWSCredentialIdentity
from .exceptions import MissingExpectedParameterError
from .signers import SigV4SigningProperties

logger = logging.getLogger(__name__)

SOURCE_CONSTRUCTOR = "constructor"
SOURCE_ENVIRONMENT = "environment"
SOURCE_CREDENTIALS_FILE = "credentials_file"
SOURCE_CONFIG_FILE = "config_file"
SOURCE_DEFAULT = "default"
SOURCE_IN_CODE_UPDATE = "in_code_update"

SourceType = Literal[
    "constructor",
    "environment",
    "credentials_file",
    "config_file",
    "default",
    "in_code_update",
]

type Loader = Callable[[], Mapping[str, Any]]


class ConfigValue:
    """Configuration value with metadata about its source"""

    def __init__(self, value: Any, source: SourceType):
        self.value = value
        self.source = source


class SignerConfig:
    """Signer configuration with precedence-based resolution.

    Each field resolves from, in order: the constructor, the environment, the
    ``~/.aws/config`` profile, the ``~/.aws/credentials`` profile, and finally its
    default. The constructor uses the sentinel ``...`` so that "not provided" can be
    told apart from "explicitly set to None".

    Values are only available after :py:meth:`resolve`.
    """

    CONFIG_FIELDS: ClassVar[dict[str, dict[str, Any]]] = {
        "aws_access_key_id": {
            "env_var": "AWS_ACCESS_KEY_ID",
            "config_key": "aws_access_key_id",
            "default": None,
            "type": str | None,
        },
        "aws_secret_access_key": {
            "env_var": "AWS_SECRET_ACCESS_KEY",
            "config_key": "aws_secret_access_key",
            "default": None,
            "type": str | None,
        },
        "aws_session_token": {
            "env_var": "AWS_SESSION_TOKEN",
            "config_key": "aws_session_token",
            "default": None,
            "type": str | None,
        },
        "region": {
            "env_var": "AWS_REGION",
            "config_key": "region",
            "default": None,
            "type": str | None,
        },
        "service": {
            "default": "glacier",
            "type": str,
        },
        "content_checksum_enabled": {
            "default": True,
            "type": bool,
        },
        "tree_hash_enabled": {
            "default": True,
            "type": bool,
        },
    }

    def __init__(
        self,
        *,
        aws_access_key_id: str | None = ...,  # type: ignore[assignment]
        aws_secret_access_key: str | None = ...,  # type: ignore[assignment]
        aws_session_token: str | None = ...,  # type: ignore[assignment]
        region: str | None = ...,  # type: ignore[assignment]
        service: str = ...,  # type: ignore[assignment]
        content_checksum_enabled: bool = ...,  # type: ignore[assignment]
        tree_hash_enabled: bool = ...,  # type: ignore[assignment]
    ):
        self._constructor_values = {
            k: v for k, v in locals().items() if k != "self" and v is not ...
        }
        self._resolved = False

    def resolve(
        self,
        *,
        environment_loader: Loader | None = None,
        config_file_loader: Loader | None = None,
        credentials_file_loader: Loader | None = None,
    ) -> None:
        """Resolve configuration from all sources

        Args:
            environment_loader: Custom environment loader function
            config_file_loader: Custom config file loader function
            credentials_file_loader: Custom credentials file loader function
        """
        if self._resolved:
            raise RuntimeError(
                "Config has already been resolved. Multiple calls to resolve() are not allowed."
            )

        env_values = (environment_loader or self._load_environment_values)()
        config_file_values = (config_file_loader or self._load_config_file_values)()
        credentials_file_values = (
            credentials_file_loader or self._load_credentials_file_values
        )()

        for field_name, field_info in self.CONFIG_FIELDS.items():
            resolved_value = self._resolve_field(
                field_name,
                env_values,
                config_file_values,
                credentials_file_values,
                field_info,
            )
            setattr(self, f"_{field_name}", resolved_value)
            logger.debug("Resolved %s from %s.", field_name, resolved_value.source)

        self._resolved = True

    def _load_environment_values(self) -> Mapping[str, str]:
        return os.environ

    def _load_config_file_values(self) -> dict[str, str]:
        config_path = Path(
            os.environ.get("AWS_CONFIG_FILE", Path.home() / ".aws" / "config")
        )
        profile = os.environ.get("AWS_PROFILE", "default")
        section_name = f"profile {profile}" if profile != "default" else "default"
        return _read_profile(config_path, section_name)

    def _load_credentials_file_values(self) -> dict[str, str]:
        credentials_path = Path(
            os.environ.get(
                "AWS_SHARED_CREDENTIALS_FILE", Path.home() / ".aws" / "credentials"
            )
        )
        profile = os.environ.get("AWS_PROFILE", "default")
        return _read_profile(credentials_path, profile)

    def _resolve_field(
        self,
        field_name: str,
        env_values: Mapping[str, Any],
        config_file_values: Mapping[str, Any],
        credentials_file_values: Mapping[str, Any],
        field_config: dict[str, Any],
    ) -> ConfigValue:
        env_var = field_config.get("env_var")
        config_key = field_config.get("config_key")

        if field_name in self._constructor_values:
            value = self._constructor_values[field_name]
            source = SOURCE_CONSTRUCTOR
        elif env_var and env_var in env_values:
            value = env_values[env_var]
            source = SOURCE_ENVIRONMENT
        elif config_key and config_key in config_file_values:
            value = config_file_values[config_key]
            source = SOURCE_CONFIG_FILE
        elif config_key and config_key in credentials_file_values:
            value = credentials_file_values[config_key]
            source = SOURCE_CREDENTIALS_FILE
        else:
            value = field_config["default"]
            source = SOURCE_DEFAULT

        expected_type = field_config["type"]
        if not isinstance(value, expected_type):
            actual_name = type(value).__name__
            expected_name = getattr(expected_type, "__name__", str(expected_type))
            raise TypeError(f"{field_name} must be {expected_name}, got {actual_name}")

        return ConfigValue(value, source)

    def get_config_value_object(self, field_name: str) -> ConfigValue:
        """Get the raw ConfigValue object for a field"""
        if not self._resolved:
            raise RuntimeError("Config must be resolved before accessing values")
        return getattr(self, f"_{field_name}")

    def identity(self) -> AWSCredentialIdentity:
        """Build the credentials identity used to sign requests.

        :raises MissingExpectedParameterError: If the access key id or secret access
            key could not be resolved.
        """
        if self.aws_access_key_id is None or self.aws_secret_access_key is None:
            raise MissingExpectedParameterError(
                "aws_access_key_id and aws_secret_access_key are required"
            )
        return AWSCredentialIdentity(
            access_key_id=self.aws_access_key_id,
            secret_access_key=self.aws_secret_access_key,
            session_token=self.aws_session_token,
        )

    def signing_properties(self) -> SigV4SigningProperties:
        """Build the signing properties for the configured region and service.

        :raises MissingExpectedParameterError: If no region could be resolved.
        """
        if self.region is None:
            raise MissingExpectedParameterError(
                "A region is required to sign requests. Set it on the config or in "
                "the AWS_REGION environment variable."
            )
        return SigV4SigningProperties(
            region=self.region,
            service=self.service,
            content_checksum_enabled=self.content_checksum_enabled,
            tree_hash_enabled=self.tree_hash_enabled,
        )

    @property
    def aws_access_key_id(self) -> str | None:
        return self.get_config_value_object("aws_access_key_id").value

    @aws_access_key_id.setter
    def aws_access_key_id(self, value: str | None) -> None:
        self._aws_access_key_id = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def aws_secret_access_key(self) -> str | None:
        return self.get_config_value_object("aws_secret_access_key").value

    @aws_secret_access_key.setter
    def aws_secret_access_key(self, value: str | None) -> None:
        self._aws_secret_access_key = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def aws_session_token(self) -> str | None:
        return self.get_config_value_object("aws_session_token").value

    @aws_session_token.setter
    def aws_session_token(self, value: str | None) -> None:
        self._aws_session_token = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def region(self) -> str | None:
        return self.get_config_value_object("region").value

    @region.setter
    def region(self, value: str | None) -> None:
        self._region = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def service(self) -> str:
        return self.get_config_value_object("service").value

    @service.setter
    def service(self, value: str) -> None:
        self._service = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def content_checksum_enabled(self) -> bool:
        return self.get_config_value_object("content_checksum_enabled").value

    @content_checksum_enabled.setter
    def content_checksum_enabled(self, value: bool) -> None:
        self._content_checksum_enabled = ConfigValue(value, SOURCE_IN_CODE_UPDATE)

    @property
    def tree_hash_enabled(self) -> bool:
        return self.get_config_value_object("tree_hash_enabled").value

    @tree_hash_enabled.setter
    def tree_hash_enabled(self, value: bool) -> None:
        self._tree_hash_enabled = ConfigValue(value, SOURCE_IN_CODE_UPDATE)


def _read_profile(path: Path, section_name: str) -> dict[str, str]:
    if not path.exists():
        return {}

    parser = configparser.ConfigParser()
    parser.read(path)

    if section_name not in parser:
        return {}

    return dict(parser[section_name])
