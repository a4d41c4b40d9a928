"""
AWS Secrets Manager provider.

A secret holding a JSON object loads as one key per entry. Any other secret
loads as a single key named after the last segment of the secret name.
"""

import json
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from ..environ import EnvStore
from ..exceptions import FailedToError, MissingError, RequiredError
from ..options import KeyFunc, WriteFunc
from ..provider import Provider
from .aws import AWS_ERRORS, AWSConfig, error_code, new_client, secret_key_of

NAME = "awssm"


class SecretInformation(BaseModel):
    secret_names: List[str] = Field(min_length=1)


class AWSSM(Provider):
    def __init__(
        self,
        config: AWSConfig,
        secret_information: SecretInformation,
        override: bool = False,
        raw_value: bool = False,
        client: Any = None,
        env: Optional[EnvStore] = None,
    ):
        if config is None:
            raise RequiredError("config")
        if secret_information is None:
            raise RequiredError("secret information")

        super().__init__(NAME, override=override, raw_value=raw_value, env=env)

        self.config = config
        self.secret_information = secret_information
        self.client = (
            client if client is not None else new_client("secretsmanager", config)
        )

    def load(self, *key_funcs: KeyFunc) -> Dict[str, str]:
        final_values: Dict[str, str] = {}

        for secret_name in self.secret_information.secret_names:
            try:
                result = self.client.get_secret_value(SecretId=secret_name)
            except AWS_ERRORS as e:
                raise FailedToError(f"get secret {secret_name!r}", e) from e

            secret_string = result.get("SecretString")
            if secret_string is None:
                raise MissingError(f"secret string for {secret_name!r}")

            try:
                data = json.loads(secret_string)
            except ValueError:
                data = None

            if not isinstance(data, dict):
                data = {secret_key_of(secret_name): secret_string}

            final_values.update(self.export_all(data, key_funcs))

        return final_values

    def write(self, values: Mapping[str, Any], *write_funcs: WriteFunc) -> None:
        if values is None:
            raise RequiredError("values")

        self.write_options(write_funcs)

        secret_name = self.secret_information.secret_names[0]
        secret_data = json.dumps(dict(values), default=str)

        try:
            self.client.get_secret_value(SecretId=secret_name)
        except AWS_ERRORS as e:
            if error_code(e) != "ResourceNotFoundException":
                raise FailedToError(f"get secret {secret_name!r}", e) from e

            try:
                self.client.create_secret(Name=secret_name, SecretString=secret_data)
            except AWS_ERRORS as e:
                raise FailedToError("create secret", e) from e

            self.logger.info("Created secret", secret=secret_name)
            return

        try:
            self.client.update_secret(SecretId=secret_name, SecretString=secret_data)
        except AWS_ERRORS as e:
            raise FailedToError("update secret", e) from e

        self.logger.info("Updated secret", secret=secret_name)
