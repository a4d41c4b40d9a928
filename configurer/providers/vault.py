"""
HashiCorp Vault KV v2 provider.

Authenticates with a token, or with AppRole when ``app_role`` is set. The
namespace header is sent when ``namespace`` is set.
"""

from typing import Any, Dict, Mapping, Optional

import httpx
from pydantic import BaseModel, Field

from ..environ import EnvStore
from ..exceptions import FailedToError, MissingError, RequiredError
from ..options import KeyFunc, WriteFunc
from ..provider import Provider
from .http import HTTPClient, decode_json

NAME = "vault"

TOKEN_HEADER = "X-Vault-Token"
NAMESPACE_HEADER = "X-Vault-Namespace"
APPROLE_LOGIN_PATH = "/v1/auth/approle/login"


class VaultAuth(BaseModel):
    address: str = Field(min_length=1)
    app_role: str = ""
    namespace: str = ""
    role_id: str = ""
    secret_id: str = ""
    token: str = ""


class SecretInformation(BaseModel):
    mount_path: str = Field(min_length=1)
    secret_path: str = Field(min_length=1)


class Vault(Provider):
    def __init__(
        self,
        auth: VaultAuth,
        secret_information: SecretInformation,
        override: bool = False,
        raw_value: bool = False,
        transport: Optional[httpx.BaseTransport] = None,
        env: Optional[EnvStore] = None,
    ):
        if auth is None:
            raise RequiredError("auth information")
        if secret_information is None:
            raise RequiredError("secret information")

        super().__init__(NAME, override=override, raw_value=raw_value, env=env)

        self.auth = auth
        self.secret_information = secret_information

        headers = {}
        if auth.namespace:
            headers[NAMESPACE_HEADER] = auth.namespace

        self.http = HTTPClient(auth.address, headers=headers, transport=transport)
        try:
            self.http.set_header(TOKEN_HEADER, self._login())
        except Exception:
            self.http.close()
            raise

    def close(self) -> None:
        self.http.close()

    def _login(self) -> str:
        if not self.auth.app_role:
            if not self.auth.token:
                raise RequiredError("token (login with token)")
            return self.auth.token

        if not self.auth.role_id or not self.auth.secret_id:
            raise RequiredError("role_id and secret_id (login with approle)")

        try:
            response = self.http.post(
                APPROLE_LOGIN_PATH,
                json={"role_id": self.auth.role_id, "secret_id": self.auth.secret_id},
            )
        except httpx.HTTPError as e:
            raise FailedToError("login with approle", e) from e

        body = decode_json(response, "login with approle")
        client_token = (body.get("auth") or {}).get("client_token")
        if not client_token:
            raise MissingError("client token (login with approle)")

        self.logger.debug("Logged in with approle", app_role=self.auth.app_role)
        return client_token

    @property
    def data_path(self) -> str:
        mount = self.secret_information.mount_path.strip("/")
        secret = self.secret_information.secret_path.strip("/")
        return f"/v1/{mount}/data/{secret}"

    def load(self, *key_funcs: KeyFunc) -> Dict[str, str]:
        try:
            response = self.http.get(self.data_path)
        except httpx.HTTPError as e:
            raise FailedToError("get secret", e) from e

        data = (decode_json(response, "get secret").get("data") or {}).get("data")
        if data is None:
            raise MissingError(f"secret data at {self.data_path}")

        return self.export_all(data, key_funcs)

    def write(self, values: Mapping[str, Any], *write_funcs: WriteFunc) -> None:
        if values is None:
            raise RequiredError("values")

        self.write_options(write_funcs)

        try:
            self.http.post(self.data_path, json={"data": dict(values)})
        except httpx.HTTPError as e:
            raise FailedToError("write secret", e) from e

        self.logger.info("Wrote secret", path=self.data_path, keys=len(values))
