"""
Tests for the concrete providers.

AWS clients are replaced with mocks, Vault and GitHub are served by an
``httpx.MockTransport``.
"""

import json
from base64 import b64decode, b64encode
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError
from nacl.public import PrivateKey, SealedBox

from configurer.environ import MemoryEnvStore
from configurer.exceptions import (
    FailedToError,
    InvalidError,
    MissingError,
    NotFoundError,
    NotSupportedError,
    RequiredError,
)
from configurer.options import (
    with_environment,
    with_key_caser,
    with_key_prefixer,
    with_target,
    with_variable,
)
from configurer.providers import (
    AWSSM,
    AWSSSM,
    AWSConfig,
    AWSSMSecretInformation,
    DotEnv,
    GitHub,
    NoOp,
    ParameterInformation,
    Text,
    Vault,
    VaultAuth,
    VaultSecretInformation,
)
from configurer.providers.github import encrypt
from configurer.providers.http import HTTPClient, decode_json


def client_error(code: str, operation: str = "GetSecretValue") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestDotEnv:
    """Test the .env file provider."""

    def test_load(self, temp_dir, env):
        """Later files win over earlier ones."""
        first = temp_dir / "first.env"
        second = temp_dir / "second.env"
        first.write_text("HOST=localhost\nPORT=5432\n")
        second.write_text("PORT=6543\n")

        values = DotEnv(first, second, env=env).load()

        assert values == {"HOST": "localhost", "PORT": "6543"}
        assert env.get("PORT") == "6543"

    def test_load_keeps_existing_env(self, temp_dir):
        path = temp_dir / ".env"
        path.write_text("HOST=file\n")
        env = MemoryEnvStore({"HOST": "shell"})

        assert DotEnv(path, env=env).load() == {"HOST": "shell"}
        assert DotEnv(path, override=True, env=env).load() == {"HOST": "file"}

    def test_load_with_key_funcs(self, temp_dir, env):
        path = temp_dir / ".env"
        path.write_text("db_host=x\n")

        values = DotEnv(path, env=env).load(with_key_prefixer("app_"), with_key_caser("upper"))

        assert values == {"APP_DB_HOST": "x"}

    def test_missing_file(self, temp_dir, env):
        with pytest.raises(FailedToError, match="read path"):
            DotEnv(temp_dir / "missing.env", env=env).load()

    def test_file_paths_required(self, env):
        with pytest.raises(RequiredError, match="file_paths"):
            DotEnv(env=env)

    def test_write(self, temp_dir, env):
        """Written files load back to the same values."""
        path = temp_dir / ".env"
        path.write_text("STALE=1\n")
        provider = DotEnv(path, env=env)

        provider.write({"NAME": "my app", "PORT": 80, "DEBUG": True})

        assert "STALE" not in path.read_text()
        assert provider.read() == {"DEBUG": "true", "NAME": "my app", "PORT": "80"}

    def test_write_target(self, temp_dir, env):
        """A target option picks the file when several are configured."""
        target = temp_dir / "out.env"
        provider = DotEnv(temp_dir / "a.env", temp_dir / "b.env", env=env)

        provider.write({"A": "1"}, with_target(str(target)))

        assert DotEnv(target, env=env).read() == {"A": "1"}

    def test_write_ambiguous(self, temp_dir, env):
        provider = DotEnv(temp_dir / "a.env", temp_dir / "b.env", env=env)

        with pytest.raises(InvalidError, match="only one file"):
            provider.write({"A": "1"})

    def test_write_requires_values(self, temp_dir, env):
        with pytest.raises(RequiredError, match="values"):
            DotEnv(temp_dir / ".env", env=env).write(None)


class TestNoOpAndText:
    """Test the environment and text providers."""

    def test_noop_reexports_environment(self):
        env = MemoryEnvStore({"db_host": "x"})

        values = NoOp(env=env).load(with_key_caser("upper"))

        assert values == {"DB_HOST": "x"}
        assert env.get("DB_HOST") == "x"
        assert env.get("db_host") == "x"

    def test_noop_write_not_supported(self, env):
        with pytest.raises(NotSupportedError):
            NoOp(env=env).write({"A": "1"})

    @pytest.mark.parametrize(
        "fmt,content",
        [
            ("env", "A=1\nB=two\n"),
            ("json", '{"A": 1, "B": "two"}'),
            ("yaml", "A: 1\nB: two\n"),
            ("toml", 'A = 1\nB = "two"\n'),
        ],
    )
    def test_text_formats(self, fmt, content, env):
        assert Text(fmt, content, env=env).load() == {"A": "1", "B": "two"}

    def test_text_raw_value(self, env):
        values = Text("json", '{"A": 1, "B": "two"}', raw_value=True, env=env).load()
        assert values == {"A": "1", "B": '"two"'}

    def test_text_nested_values_are_json(self, env):
        values = Text("yaml", "A:\n  b: 1\n", env=env).load()
        assert json.loads(values["A"]) == {"b": 1}

    def test_text_unknown_format(self, env):
        with pytest.raises(InvalidError, match="format"):
            Text("ini", "A=1", env=env)


class TestAWSConfig:
    """Test AWS credential checks."""

    @pytest.mark.parametrize(
        "config",
        [
            AWSConfig(region="eu-west-1"),
            AWSConfig(profile="dev"),
            AWSConfig(region="eu-west-1", access_key="AK", secret_key="SK"),
        ],
    )
    def test_valid(self, config):
        config.check()

    @pytest.mark.parametrize(
        "config",
        [
            AWSConfig(),
            AWSConfig(profile="dev", access_key="AK", secret_key="SK"),
            AWSConfig(region="eu-west-1", access_key="AK"),
        ],
    )
    def test_invalid(self, config):
        with pytest.raises(InvalidError):
            config.check()


class TestAWSSSM:
    """Test the Parameter Store provider."""

    config = AWSConfig(region="eu-west-1")

    def test_load_by_path(self, env):
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Parameters": [{"Name": "/app/prod/DB_HOST", "Value": "db"}]},
            {"Parameters": [{"Name": "/app/prod/DB_PORT", "Value": "5432"}]},
        ]
        info = ParameterInformation(path="/app/prod", recursive=True)

        values = AWSSSM(self.config, info, client=client, env=env).load()

        assert values == {"DB_HOST": "db", "DB_PORT": "5432"}
        client.get_paginator.assert_called_once_with("get_parameters_by_path")
        client.get_paginator.return_value.paginate.assert_called_once_with(
            Path="/app/prod", Recursive=True, WithDecryption=True
        )

    def test_load_by_names_in_batches(self, env):
        names = [f"/app/KEY_{i}" for i in range(12)]
        client = MagicMock()
        client.get_parameters.side_effect = lambda Names, WithDecryption: {
            "Parameters": [{"Name": name, "Value": name[-1]} for name in Names]
        }

        values = AWSSSM(
            self.config, ParameterInformation(parameter_names=names), client=client, env=env
        ).load()

        assert len(values) == 12
        assert client.get_parameters.call_count == 2
        assert len(client.get_parameters.call_args_list[0].kwargs["Names"]) == 10

    def test_invalid_parameters(self, env):
        client = MagicMock()
        client.get_parameters.return_value = {
            "Parameters": [],
            "InvalidParameters": ["/app/MISSING"],
        }
        provider = AWSSSM(
            self.config,
            ParameterInformation(parameter_names=["/app/MISSING"]),
            client=client,
            env=env,
        )

        with pytest.raises(NotFoundError, match="/app/MISSING"):
            provider.load()

    def test_api_error(self, env):
        client = MagicMock()
        client.get_paginator.return_value.paginate.side_effect = client_error(
            "AccessDeniedException", "GetParametersByPath"
        )
        provider = AWSSSM(self.config, ParameterInformation(path="/app"), client=client, env=env)

        with pytest.raises(FailedToError, match="get parameters by path"):
            provider.load()

    def test_path_or_names_required(self, env):
        with pytest.raises(RequiredError, match="either path or parameter_names"):
            AWSSSM(self.config, ParameterInformation(), client=MagicMock(), env=env)

    @pytest.mark.parametrize(
        "info,expected",
        [
            (ParameterInformation(path="app/prod/"), "/app/prod"),
            (ParameterInformation(parameter_names=["/svc/KEY"]), "/svc"),
            (ParameterInformation(parameter_names=["KEY"]), ""),
        ],
    )
    def test_base_path(self, info, expected, env):
        assert AWSSSM(self.config, info, client=MagicMock(), env=env).base_path() == expected

    def test_write(self, env):
        client = MagicMock()
        provider = AWSSSM(self.config, ParameterInformation(path="/app"), client=client, env=env)

        provider.write({"HOSTS": ["a", "b"], "PORT": 80})

        client.put_parameter.assert_any_call(
            Name="/app/HOSTS", Value="a,b", Type="SecureString", Overwrite=True
        )
        client.put_parameter.assert_any_call(
            Name="/app/PORT", Value="80", Type="SecureString", Overwrite=True
        )


class TestAWSSM:
    """Test the Secrets Manager provider."""

    config = AWSConfig(region="eu-west-1")

    def provider(self, client, env, names=("prod/app",)):
        return AWSSM(
            self.config,
            AWSSMSecretInformation(secret_names=list(names)),
            client=client,
            env=env,
        )

    def test_load_json_secret(self, env):
        client = MagicMock()
        client.get_secret_value.return_value = {
            "SecretString": json.dumps({"USER": "admin", "PASS": "secret"})
        }

        assert self.provider(client, env).load() == {"USER": "admin", "PASS": "secret"}

    def test_load_plain_secret(self, env):
        client = MagicMock()
        client.get_secret_value.return_value = {"SecretString": "token-value"}

        assert self.provider(client, env).load() == {"app": "token-value"}

    def test_binary_secret_is_missing(self, env):
        client = MagicMock()
        client.get_secret_value.return_value = {"SecretBinary": b"x"}

        with pytest.raises(MissingError, match="secret string"):
            self.provider(client, env).load()

    def test_load_error(self, env):
        client = MagicMock()
        client.get_secret_value.side_effect = client_error("AccessDeniedException")

        with pytest.raises(FailedToError, match="get secret"):
            self.provider(client, env).load()

    def test_secret_names_required(self):
        with pytest.raises(ValueError):
            AWSSMSecretInformation(secret_names=[])

    def test_write_creates_missing_secret(self, env):
        client = MagicMock()
        client.get_secret_value.side_effect = client_error("ResourceNotFoundException")

        self.provider(client, env).write({"A": "1"})

        client.create_secret.assert_called_once_with(
            Name="prod/app", SecretString='{"A": "1"}'
        )
        client.update_secret.assert_not_called()

    def test_write_updates_existing_secret(self, env):
        client = MagicMock()
        client.get_secret_value.return_value = {"SecretString": "{}"}

        self.provider(client, env).write({"A": "1"})

        client.update_secret.assert_called_once_with(
            SecretId="prod/app", SecretString='{"A": "1"}'
        )
        client.create_secret.assert_not_called()

    def test_write_other_error(self, env):
        client = MagicMock()
        client.get_secret_value.side_effect = client_error("AccessDeniedException")

        with pytest.raises(FailedToError):
            self.provider(client, env).write({"A": "1"})

        client.create_secret.assert_not_called()


class VaultServer:
    """Minimal KV v2 server."""

    def __init__(self):
        self.requests = []
        self.secrets = {"/v1/secret/data/app": {"HOST": "db"}}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/v1/auth/approle/login":
            return httpx.Response(200, json={"auth": {"client_token": "approle-token"}})

        if request.headers.get("X-Vault-Token") not in ("root", "approle-token"):
            return httpx.Response(403, json={"errors": ["permission denied"]})

        if request.method == "POST":
            self.secrets[path] = json.loads(request.content)["data"]
            return httpx.Response(200, json={})

        if path not in self.secrets:
            return httpx.Response(404, json={"errors": []})
        return httpx.Response(200, json={"data": {"data": self.secrets[path]}})


class TestVault:
    """Test the Vault provider."""

    info = VaultSecretInformation(mount_path="secret", secret_path="app")

    def test_load_with_token(self, env):
        server = VaultServer()
        provider = Vault(
            VaultAuth(address="http://vault:8200", token="root", namespace="team"),
            self.info,
            transport=httpx.MockTransport(server),
            env=env,
        )

        assert provider.load() == {"HOST": "db"}
        assert server.requests[0].headers["X-Vault-Namespace"] == "team"

    def test_load_with_approle(self, env):
        server = VaultServer()
        auth = VaultAuth(
            address="http://vault:8200", app_role="ci", role_id="r", secret_id="s"
        )
        provider = Vault(auth, self.info, transport=httpx.MockTransport(server), env=env)

        assert provider.load() == {"HOST": "db"}
        assert json.loads(server.requests[0].content) == {"role_id": "r", "secret_id": "s"}

    def test_token_required(self, env):
        with pytest.raises(RequiredError, match="token"):
            Vault(VaultAuth(address="http://vault:8200"), self.info, env=env)

    def test_approle_ids_required(self, env):
        with pytest.raises(RequiredError, match="role_id and secret_id"):
            Vault(
                VaultAuth(address="http://vault:8200", app_role="ci"), self.info, env=env
            )

    def test_missing_secret(self, env):
        provider = Vault(
            VaultAuth(address="http://vault:8200", token="root"),
            VaultSecretInformation(mount_path="secret", secret_path="other"),
            transport=httpx.MockTransport(VaultServer()),
            env=env,
        )

        with pytest.raises(FailedToError, match="get secret"):
            provider.load()

    def test_write(self, env):
        server = VaultServer()
        provider = Vault(
            VaultAuth(address="http://vault:8200", token="root"),
            self.info,
            transport=httpx.MockTransport(server),
            env=env,
        )

        provider.write({"HOST": "new"})

        assert server.secrets["/v1/secret/data/app"] == {"HOST": "new"}

    def test_non_json_login_response(self, env):
        """A login reply that isn't JSON fails the login."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        auth = VaultAuth(
            address="http://vault:8200", app_role="ci", role_id="r", secret_id="s"
        )

        with pytest.raises(FailedToError, match="login with approle"):
            Vault(auth, self.info, transport=transport, env=env)

    def test_non_json_secret_response(self, env):
        """A secret reply that isn't JSON fails the load."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="maintenance"))
        provider = Vault(
            VaultAuth(address="http://vault:8200", token="root"),
            self.info,
            transport=transport,
            env=env,
        )

        with pytest.raises(FailedToError, match="get secret"):
            provider.load()

    def test_context_manager_closes_client(self, env):
        with Vault(
            VaultAuth(address="http://vault:8200", token="root"),
            self.info,
            transport=httpx.MockTransport(VaultServer()),
            env=env,
        ) as provider:
            assert provider.load() == {"HOST": "db"}

        assert provider.http.client.is_closed


class GitHubServer:
    """Records GitHub API calls."""

    def __init__(self, public_key: str):
        self.public_key = public_key
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/actions/secrets/public-key"):
            return httpx.Response(200, json={"key": self.public_key, "key_id": "kid"})
        if path == "/repos/acme/api":
            return httpx.Response(200, json={"id": 42})
        if path == "/repos/acme/api/actions/secrets" and request.method == "GET":
            return httpx.Response(200, json={"secrets": [{"name": "A"}, {"name": "B"}]})
        return httpx.Response(201 if request.method == "POST" else 204)

    def writes(self):
        return [r for r in self.requests if r.method in ("PUT", "POST", "DELETE")]


@pytest.fixture
def private_key():
    return PrivateKey.generate()


@pytest.fixture
def github_server(private_key):
    return GitHubServer(b64encode(bytes(private_key.public_key)).decode())


@pytest.fixture
def github(github_server):
    return GitHub(
        "acme",
        "api",
        transport=httpx.MockTransport(github_server),
        env=MemoryEnvStore({"GITHUB_TOKEN": "ghp_test"}),
        batch_delay=(0, 0),
    )


class TestGitHub:
    """Test the GitHub Actions provider."""

    def test_encrypt(self, private_key):
        """Sealed values open with the matching private key."""
        public_key = b64encode(bytes(private_key.public_key)).decode()

        sealed = encrypt(public_key, "s3cret")

        assert SealedBox(private_key).decrypt(b64decode(sealed)) == b"s3cret"

    def test_encrypt_bad_key(self):
        with pytest.raises(FailedToError, match="decode public key"):
            encrypt(b64encode(b"short").decode(), "s3cret")

    def test_token_required(self, github_server):
        with pytest.raises(RequiredError, match="GITHUB_TOKEN"):
            GitHub("acme", "api", transport=httpx.MockTransport(github_server), env=MemoryEnvStore())

    def test_public_key_required(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))

        with pytest.raises(RequiredError, match="public key"):
            GitHub(
                "acme",
                "api",
                transport=transport,
                env=MemoryEnvStore({"GITHUB_TOKEN": "t"}),
            )

    def test_load_not_supported(self, github):
        with pytest.raises(NotSupportedError):
            github.load()

    def test_write_secrets(self, github, github_server, private_key):
        github.write({"API_KEY": "k1"})

        (request,) = github_server.writes()
        body = json.loads(request.content)
        assert request.method == "PUT"
        assert request.url.path == "/repos/acme/api/actions/secrets/API_KEY"
        assert request.headers["Authorization"] == "Bearer ghp_test"
        assert body["key_id"] == "kid"
        assert SealedBox(private_key).decrypt(b64decode(body["encrypted_value"])) == b"k1"

    def test_write_variables_to_environment(self, github, github_server):
        github.write({"REGION": "eu"}, with_variable(True), with_environment("prod"))

        (request,) = github_server.writes()
        assert request.method == "POST"
        assert request.url.path == "/repositories/42/environments/prod/variables"
        assert json.loads(request.content) == {"name": "REGION", "value": "eu"}

    def test_write_in_batches(self, github, github_server):
        github.write({f"K{i}": str(i) for i in range(25)}, with_variable(True))

        assert len(github_server.writes()) == 25

    def test_write_failure(self, private_key):
        public_key = b64encode(bytes(private_key.public_key)).decode()

        def handler(request):
            if request.url.path.endswith("public-key"):
                return httpx.Response(200, json={"key": public_key, "key_id": "kid"})
            return httpx.Response(422)

        provider = GitHub(
            "acme",
            "api",
            transport=httpx.MockTransport(handler),
            env=MemoryEnvStore({"GITHUB_TOKEN": "t"}),
            batch_delay=(0, 0),
        )

        with pytest.raises(FailedToError, match="write to GitHub"):
            provider.write({"A": "1"})

    def test_list_and_delete_secrets(self, github, github_server):
        assert github.list_secrets() == ["A", "B"]

        github.delete_secrets("A", "B")

        assert sorted(r.url.path for r in github_server.writes()) == [
            "/repos/acme/api/actions/secrets/A",
            "/repos/acme/api/actions/secrets/B",
        ]

    def test_non_json_secret_list(self, private_key):
        """A secret list reply that isn't JSON fails the listing."""
        public_key = b64encode(bytes(private_key.public_key)).decode()

        def handler(request):
            if request.url.path.endswith("public-key"):
                return httpx.Response(200, json={"key": public_key, "key_id": "kid"})
            return httpx.Response(200, text="<html>rate limited</html>")

        provider = GitHub(
            "acme",
            "api",
            transport=httpx.MockTransport(handler),
            env=MemoryEnvStore({"GITHUB_TOKEN": "t"}),
        )

        with pytest.raises(FailedToError, match="list secrets"):
            provider.list_secrets()

    def test_context_manager_closes_client(self, github):
        with github:
            assert github.list_secrets() == ["A", "B"]

        assert github.http.client.is_closed


class TestHTTPClient:
    """Test the shared HTTP client."""

    def test_close(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True}))

        with HTTPClient("http://api.local/", transport=transport) as client:
            assert decode_json(client.get("/status"), "get status") == {"ok": True}

        assert client.client.is_closed

    @pytest.mark.parametrize("body", ["<html>", "[1, 2]"])
    def test_decode_json_requires_object(self, body):
        response = httpx.Response(200, text=body)

        with pytest.raises(FailedToError, match="get status"):
            decode_json(response, "get status")

    def test_decode_json_empty_body(self):
        assert decode_json(httpx.Response(200, text="null"), "get status") == {}
