"""
AWS Systems Manager Parameter Store provider.

Parameters are loaded by path prefix, by explicit names, or both. The last
segment of a parameter name becomes the key: ``/myapp/prod/DB_HOST`` loads
as ``DB_HOST``.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel

from ..environ import EnvStore
from ..exceptions import FailedToError, NotFoundError, RequiredError
from ..options import KeyFunc, WriteFunc
from ..provider import Provider, format_value
from .aws import AWS_ERRORS, AWSConfig, new_client, secret_key_of

NAME = "awsssm"

# GetParameters accepts at most 10 names per call.
NAMES_BATCH_SIZE = 10


class ParameterInformation(BaseModel):
    parameter_names: List[str] = []
    path: str = ""
    recursive: bool = False
    with_decryption: bool = True


class AWSSSM(Provider):
    def __init__(
        self,
        config: AWSConfig,
        parameter_information: ParameterInformation,
        override: bool = False,
        raw_value: bool = False,
        client: Any = None,
        env: Optional[EnvStore] = None,
    ):
        if config is None:
            raise RequiredError("config")
        if parameter_information is None:
            raise RequiredError("parameter information")
        if not parameter_information.path and not parameter_information.parameter_names:
            raise RequiredError("either path or parameter_names")

        super().__init__(NAME, override=override, raw_value=raw_value, env=env)

        self.config = config
        self.parameter_information = parameter_information
        self.client = client if client is not None else new_client("ssm", config)

    def load(self, *key_funcs: KeyFunc) -> Dict[str, str]:
        final_values: Dict[str, str] = {}

        if self.parameter_information.path:
            final_values.update(self._load_by_path(key_funcs))

        if self.parameter_information.parameter_names:
            final_values.update(self._load_by_names(key_funcs))

        return final_values

    def _export_parameters(self, parameters: List[Dict[str, Any]], key_funcs) -> Dict[str, str]:
        values = {
            secret_key_of(param["Name"]): param["Value"]
            for param in parameters
            if param.get("Name") is not None and param.get("Value") is not None
        }
        return self.export_all(values, key_funcs)

    def _load_by_path(self, key_funcs) -> Dict[str, str]:
        path = self.parameter_information.path
        final_values: Dict[str, str] = {}

        paginator = self.client.get_paginator("get_parameters_by_path")
        try:
            for page in paginator.paginate(
                Path=path,
                Recursive=self.parameter_information.recursive,
                WithDecryption=self.parameter_information.with_decryption,
            ):
                final_values.update(
                    self._export_parameters(page.get("Parameters", []), key_funcs)
                )
        except AWS_ERRORS as e:
            raise FailedToError(f"get parameters by path {path!r}", e) from e

        return final_values

    def _load_by_names(self, key_funcs) -> Dict[str, str]:
        names = self.parameter_information.parameter_names
        final_values: Dict[str, str] = {}

        for start in range(0, len(names), NAMES_BATCH_SIZE):
            batch = names[start : start + NAMES_BATCH_SIZE]

            try:
                output = self.client.get_parameters(
                    Names=batch,
                    WithDecryption=self.parameter_information.with_decryption,
                )
            except AWS_ERRORS as e:
                raise FailedToError("get parameters", e) from e

            invalid = output.get("InvalidParameters") or []
            if invalid:
                raise NotFoundError(f"parameters: {', '.join(invalid)}")

            final_values.update(
                self._export_parameters(output.get("Parameters", []), key_funcs)
            )

        return final_values

    def base_path(self) -> str:
        """Path new parameters are written under."""
        base = self.parameter_information.path
        names = self.parameter_information.parameter_names
        if not base and names:
            parent, sep, _ = names[0].rpartition("/")
            if sep:
                base = parent

        base = base or "/"
        if not base.startswith("/"):
            base = "/" + base
        return base.rstrip("/")

    def write(self, values: Mapping[str, Any], *write_funcs: WriteFunc) -> None:
        if values is None:
            raise RequiredError("values")

        self.write_options(write_funcs)
        base = self.base_path()

        for key, value in values.items():
            name = f"{base}/{key}"

            if isinstance(value, (list, tuple)):
                value = ",".join(format_value(v) for v in value)
            else:
                value = format_value(value)

            try:
                self.client.put_parameter(
                    Name=name, Value=value, Type="SecureString", Overwrite=True
                )
            except AWS_ERRORS as e:
                raise FailedToError(f"put parameter {name!r}", e) from e

            self.logger.debug("Wrote parameter", name=name)
