"""
GitHub Actions secrets and variables provider (write only).

Secrets are sealed with the repository's public key before upload.
Requests go out in batches of 10 with a random pause between batches to
stay under GitHub's secondary rate limits.
"""

import asyncio
import random
from base64 import b64decode, b64encode
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from nacl.public import PublicKey, SealedBox

from ..environ import EnvStore
from ..exceptions import FailedToError, NotSupportedError, RequiredError
from ..options import KeyFunc, WriteFunc
from ..provider import Provider, format_value
from .http import HTTPClient, decode_json

NAME = "github"

API_URL = "https://api.github.com"
TOKEN_ENV = "GITHUB_TOKEN"

BATCH_SIZE = 10
BATCH_DELAY = (0.1, 0.7)

Request = Tuple[str, str, Optional[Dict[str, Any]]]


def encrypt(public_key: str, secret: str) -> str:
    """Seal ``secret`` for the base64 encoded Curve25519 ``public_key``."""
    try:
        key = PublicKey(b64decode(public_key))
    except ValueError as e:
        raise FailedToError("decode public key", e) from e

    encrypted = SealedBox(key).encrypt(secret.encode("utf-8"))
    return b64encode(encrypted).decode("utf-8")


class GitHub(Provider):
    def __init__(
        self,
        owner: str,
        repo: str,
        override: bool = False,
        transport: Optional[httpx.BaseTransport] = None,
        env: Optional[EnvStore] = None,
        batch_delay: Tuple[float, float] = BATCH_DELAY,
    ):
        super().__init__(NAME, override=override, env=env)

        if not owner:
            raise RequiredError("owner")
        if not repo:
            raise RequiredError("repo")

        token = self.env.get(TOKEN_ENV)
        if not token:
            raise RequiredError(f"{TOKEN_ENV} env var")

        self.owner = owner
        self.repo = repo
        self.batch_delay = batch_delay

        self.http = HTTPClient(
            API_URL,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
            },
            transport=transport,
        )

        try:
            public_key = self.http.get(f"{self.repo_path}/actions/secrets/public-key").json()
            self.key = public_key["key"]
            self.key_id = public_key["key_id"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            self.http.close()
            raise RequiredError("public key information") from e

    def close(self) -> None:
        self.http.close()

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def get_repository_id(self) -> int:
        try:
            return self.http.get(self.repo_path).json()["id"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise FailedToError("get repository", e) from e

    def list_secrets(self) -> List[str]:
        """Names of the repository's Actions secrets."""
        try:
            response = self.http.get(f"{self.repo_path}/actions/secrets")
        except httpx.HTTPError as e:
            raise FailedToError("list secrets", e) from e
        secrets = decode_json(response, "list secrets").get("secrets") or []
        return [secret["name"] for secret in secrets]

    def delete_secrets(self, *names: str) -> None:
        requests: List[Request] = [
            ("DELETE", f"{self.repo_path}/actions/secrets/{name}", None) for name in names
        ]
        self._send(requests, "delete secrets")

    def load(self, *key_funcs: KeyFunc) -> Dict[str, str]:
        raise NotSupportedError(f"{NAME} load")

    def build_request(
        self, key: str, value: Any, variable: bool, repository_id: Optional[int], environment: str
    ) -> Request:
        """Method, URL and body writing one secret or variable."""
        value = format_value(value)

        if variable:
            body: Dict[str, Any] = {"name": key, "value": value}
            if repository_id is not None:
                url = f"/repositories/{repository_id}/environments/{environment}/variables"
            else:
                url = f"{self.repo_path}/actions/variables"
            return "POST", url, body

        body = {"encrypted_value": encrypt(self.key, value), "key_id": self.key_id}
        if repository_id is not None:
            url = f"/repositories/{repository_id}/environments/{environment}/secrets/{key}"
        else:
            url = f"{self.repo_path}/actions/secrets/{key}"
        return "PUT", url, body

    def write(self, values: Mapping[str, Any], *write_funcs: WriteFunc) -> None:
        if values is None:
            raise RequiredError("values")

        options = self.write_options(write_funcs)

        repository_id = None
        if options.environment:
            repository_id = self.get_repository_id()

        requests = [
            self.build_request(key, value, options.variable, repository_id, options.environment)
            for key, value in values.items()
        ]
        self._send(requests, "write to GitHub")

        self.logger.info(
            "Wrote to GitHub",
            repo=f"{self.owner}/{self.repo}",
            keys=len(requests),
            variable=options.variable,
            environment=options.environment or None,
        )

    def _send(self, requests: List[Request], action: str) -> None:
        try:
            asyncio.run(self._send_batches(requests))
        except httpx.HTTPError as e:
            raise FailedToError(action, e) from e

    async def _send_batches(self, requests: List[Request]) -> None:
        async with self.http.async_client() as client:
            for start in range(0, len(requests), BATCH_SIZE):
                if start:
                    await asyncio.sleep(random.uniform(*self.batch_delay))

                batch = requests[start : start + BATCH_SIZE]
                await asyncio.gather(
                    *(
                        self.http.arequest(client, method, url, json=body)
                        for method, url, body in batch
                    )
                )
