"""
Command-line interface for configurer.

``configurer load <provider> -- <command>`` loads values from a provider,
exports them to the environment and runs the command with it.
``configurer write <provider> -s <file>`` writes a file's values to a
provider.
"""

import functools
import sys
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Tuple

import click
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..config import ConfigurerSettings, ExecMode, LogFormat, LogLevel
from ..exceptions import ConfigurerError
from ..formats import DUMP_EXTENSIONS, PARSE_FORMATS, dump_to_file, parse_file
from ..logger import LogConfig, get_logger, setup_logging
from ..options import (
    ALLOWED_CASES,
    KeyFunc,
    with_environment,
    with_key_caser,
    with_key_prefixer,
    with_key_suffixer,
    with_target,
    with_variable,
)
from ..processing.coercion import parse_duration
from ..provider import Provider
from ..providers import (
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
from .runner import CommandRunner, parse_commands, split_command

console = Console(stderr=True)


class Duration(click.ParamType):
    """Duration literal such as ``30s`` or ``1m30s``."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, timedelta):
            return value
        try:
            return parse_duration(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


DURATION = Duration()


class AliasedGroup(click.Group):
    """Group resolving short aliases of its subcommands."""

    def __init__(self, *args, aliases: Optional[Dict[str, str]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = aliases or {}

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

    def resolve_command(self, ctx, args):
        _, cmd, args = super().resolve_command(ctx, args)
        return (cmd.name if cmd else None), cmd, args


def handle_errors(func: Callable) -> Callable:
    """Print configurer errors in red and exit 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ConfigurerError, PydanticValidationError) as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            get_logger().debug("command failed", exc_info=True)
            sys.exit(1)

    return wrapper


@click.group(cls=AliasedGroup, aliases={"l": "load", "w": "write"})
@click.version_option(version=__version__, prog_name="configurer")
@click.option(
    "--log-level",
    type=click.Choice([level.value for level in LogLevel], case_sensitive=False),
    help="Logging level",
)
@click.option(
    "--log-format",
    type=click.Choice([fmt.value for fmt in LogFormat]),
    help="Log renderer",
)
@click.option(
    "--exec-mode",
    type=click.Choice([mode.value for mode in ExecMode]),
    help="How multiple commands are run",
)
@click.option(
    "--sequential-delay", type=DURATION, help="Time between one command and another"
)
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: Optional[str],
    log_format: Optional[str],
    exec_mode: Optional[str],
    sequential_delay: Optional[timedelta],
):
    """
    Load configuration and secrets from different sources (providers) and
    export them as env vars, then run one or more commands with them.
    """
    overrides = {
        "log_level": log_level.upper() if log_level else None,
        "log_format": log_format,
        "exec_mode": exec_mode,
        "sequential_delay": sequential_delay,
    }
    settings = ConfigurerSettings(**{k: v for k, v in overrides.items() if v is not None})

    setup_logging(
        LogConfig(
            service_version=__version__,
            level=settings.log_level,
            format_type=settings.log_format,
        )
    )

    ctx.obj = settings


@dataclass
class LoadOptions:
    commands: Tuple[str, ...]
    override: bool
    dump: Optional[str]
    shutdown_timeout: Optional[timedelta]
    key_caser: Optional[str]
    key_prefixer: Optional[str]
    key_suffixer: Optional[str]
    raw_value: bool
    argv: Tuple[str, ...]

    def key_funcs(self) -> List[KeyFunc]:
        key_funcs = []
        if self.key_caser:
            key_funcs.append(with_key_caser(self.key_caser))
        if self.key_prefixer:
            key_funcs.append(with_key_prefixer(self.key_prefixer))
        if self.key_suffixer:
            key_funcs.append(with_key_suffixer(self.key_suffixer))
        return key_funcs


LOAD_OPTION_NAMES = (
    "commands",
    "override",
    "dump",
    "shutdown_timeout",
    "key_caser",
    "key_prefixer",
    "key_suffixer",
    "raw_value",
    "argv",
)


def load_options(func: Callable) -> Callable:
    """Options shared by every load provider, packed into ``LoadOptions``."""
    decorators = [
        click.option(
            "-c", "--commands", multiple=True, help="Command to run, repeatable"
        ),
        click.option(
            "--override", is_flag=True, help="Override env vars with loaded values"
        ),
        click.option(
            "-d",
            "--dump",
            help=f"Dump loaded values to a file ({', '.join(DUMP_EXTENSIONS)})",
        ),
        click.option(
            "-s",
            "--shutdown-timeout",
            type=DURATION,
            help="Grace period before commands are killed on shutdown",
        ),
        click.option(
            "-k",
            "--key-caser",
            type=click.Choice(ALLOWED_CASES),
            help="Key casing",
        ),
        click.option("-x", "--key-prefixer", help="Key prefix"),
        click.option("--key-suffixer", help="Key suffix"),
        click.option(
            "--raw-value", is_flag=True, help="Export values as quoted literals"
        ),
        click.argument("argv", nargs=-1, type=click.UNPROCESSED),
    ]

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        options = LoadOptions(**{name: kwargs.pop(name) for name in LOAD_OPTION_NAMES})
        return func(*args, options=options, **kwargs)

    for decorator in reversed(decorators):
        wrapper = decorator(wrapper)

    return wrapper


def aws_options(func: Callable) -> Callable:
    decorators = [
        click.option(
            "-r", "--region", envvar="AWS_REGION", default="", help="AWS region"
        ),
        click.option(
            "-p", "--profile", envvar="AWS_PROFILE", default="", help="AWS profile"
        ),
        click.option(
            "--access-key",
            envvar="AWS_ACCESS_KEY_ID",
            default="",
            help="AWS access key ID",
        ),
        click.option(
            "--secret-key",
            envvar="AWS_SECRET_ACCESS_KEY",
            default="",
            help="AWS secret access key",
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def vault_options(func: Callable) -> Callable:
    specs = [
        (("-a", "--address"), "VAULT_ADDR", "Vault address"),
        (("-r", "--app-role"), "VAULT_APP_ROLE", "AppRole to log in with"),
        (("-n", "--namespace"), "VAULT_NAMESPACE", "Vault namespace"),
        (("-t", "--token"), "VAULT_TOKEN", "Vault token"),
        (("--role-id",), "VAULT_APP_ROLE_ID", "AppRole role ID"),
        (("--secret-id",), "VAULT_APP_SECRET_ID", "AppRole secret ID"),
        (("-m", "--mount-path"), "VAULT_MOUNT_PATH", "Secret mount path"),
        (("-p", "--secret-path"), "VAULT_SECRET_PATH", "Secret path"),
    ]
    for flags, envvar, help_text in reversed(specs):
        func = click.option(*flags, envvar=envvar, default="", help=help_text)(func)
    return func


def aws_config(region: str, profile: str, access_key: str, secret_key: str) -> AWSConfig:
    config = AWSConfig(
        region=region, profile=profile, access_key=access_key, secret_key=secret_key
    )
    config.check()
    return config


def new_vault(override: bool, raw_value: bool, **kwargs) -> Vault:
    auth = VaultAuth(
        address=kwargs["address"],
        app_role=kwargs["app_role"],
        namespace=kwargs["namespace"],
        token=kwargs["token"],
        role_id=kwargs["role_id"],
        secret_id=kwargs["secret_id"],
    )
    secret_information = VaultSecretInformation(
        mount_path=kwargs["mount_path"], secret_path=kwargs["secret_path"]
    )
    return Vault(auth, secret_information, override=override, raw_value=raw_value)


def run_load(settings: ConfigurerSettings, provider: Provider, options: LoadOptions) -> None:
    """Load, optionally dump, then run the commands and exit with their status."""
    values = provider.load(*options.key_funcs())
    provider.get_logger().info("Loaded values", keys=len(values))

    if options.dump:
        dump_to_file(options.dump, values, provider.get_raw_value())

    # -c takes precedence over the command after "--".
    if options.commands:
        commands = parse_commands(options.commands)
    elif options.argv:
        commands = [split_command(options.argv)]
    else:
        return

    runner = CommandRunner(
        exec_mode=settings.exec_mode,
        sequential_delay=settings.sequential_delay,
        shutdown_timeout=options.shutdown_timeout or settings.shutdown_timeout,
        logger=provider.get_logger(),
    )
    sys.exit(runner.run(commands))


@cli.group(
    cls=AliasedGroup,
    aliases={
        "d": "dotenv",
        "env": "dotenv",
        "n": "noop",
        "t": "text",
        "ssm": "awsssm",
        "asm": "awssm",
        "v": "vault",
    },
)
def load():
    """Load the configuration from the specified provider."""


@load.command("dotenv")
@click.option(
    "-f", "--files", multiple=True, default=(".env",), show_default=True,
    help="Env files to load, later files win",
)
@load_options
@click.pass_obj
@handle_errors
def load_dotenv(settings: ConfigurerSettings, files: Tuple[str, ...], options: LoadOptions):
    """Load values from .env files."""
    provider = DotEnv(*files, override=options.override, raw_value=options.raw_value)
    run_load(settings, provider, options)


@load.command("noop")
@load_options
@click.pass_obj
@handle_errors
def load_noop(settings: ConfigurerSettings, options: LoadOptions):
    """Re-export the current environment, applying key options."""
    run_load(settings, NoOp(override=options.override), options)


@load.command("text")
@click.option(
    "-f", "--format", "content_format", type=click.Choice(PARSE_FORMATS),
    default="env", show_default=True, help="Format of the text read from stdin",
)
@load_options
@click.pass_obj
@handle_errors
def load_text(settings: ConfigurerSettings, content_format: str, options: LoadOptions):
    """Load values from text read from stdin."""
    content = click.get_text_stream("stdin").read()
    provider = Text(
        content_format, content, override=options.override, raw_value=options.raw_value
    )
    run_load(settings, provider, options)


@load.command("awsssm")
@aws_options
@click.option("--path", envvar="AWSSSM_PATH", default="", help="Parameter path prefix")
@click.option(
    "--parameter-name", "parameter_names", multiple=True, envvar="AWSSSM_PARAMETER_NAME",
    help="Parameter name, repeatable",
)
@click.option("--recursive", is_flag=True, help="Load parameters under the path recursively")
@click.option("--no-decrypt", is_flag=True, help="Don't decrypt SecureString parameters")
@load_options
@click.pass_obj
@handle_errors
def load_awsssm(
    settings: ConfigurerSettings,
    region: str,
    profile: str,
    access_key: str,
    secret_key: str,
    path: str,
    parameter_names: Tuple[str, ...],
    recursive: bool,
    no_decrypt: bool,
    options: LoadOptions,
):
    """Load parameters from AWS Systems Manager Parameter Store."""
    provider = AWSSSM(
        aws_config(region, profile, access_key, secret_key),
        ParameterInformation(
            path=path,
            parameter_names=list(parameter_names),
            recursive=recursive,
            with_decryption=not no_decrypt,
        ),
        override=options.override,
        raw_value=options.raw_value,
    )
    run_load(settings, provider, options)


@load.command("awssm")
@aws_options
@click.option(
    "-n", "--secret-name", "secret_names", multiple=True, envvar="AWSSM_SECRET_NAME",
    required=True, help="Secret name, repeatable",
)
@load_options
@click.pass_obj
@handle_errors
def load_awssm(
    settings: ConfigurerSettings,
    region: str,
    profile: str,
    access_key: str,
    secret_key: str,
    secret_names: Tuple[str, ...],
    options: LoadOptions,
):
    """Load secrets from AWS Secrets Manager."""
    provider = AWSSM(
        aws_config(region, profile, access_key, secret_key),
        AWSSMSecretInformation(secret_names=list(secret_names)),
        override=options.override,
        raw_value=options.raw_value,
    )
    run_load(settings, provider, options)


@load.command("vault")
@vault_options
@load_options
@click.pass_obj
@handle_errors
def load_vault(settings: ConfigurerSettings, options: LoadOptions, **kwargs):
    """Load a secret from HashiCorp Vault (KV v2)."""
    with new_vault(options.override, options.raw_value, **kwargs) as provider:
        run_load(settings, provider, options)


@cli.group(
    cls=AliasedGroup,
    aliases={"d": "dotenv", "env": "dotenv", "a": "awssm", "v": "vault", "g": "github"},
)
def write():
    """Write the configuration to the specified provider."""


def source_option(func: Callable) -> Callable:
    return click.option(
        "-s", "--source", required=True,
        help=f"Configuration source file ({', '.join(PARSE_FORMATS)})",
    )(func)


@write.command("dotenv")
@source_option
@click.option("-t", "--target", default=".env", show_default=True, help="Env file to write")
@handle_errors
def write_dotenv(source: str, target: str):
    """Write values to a .env file."""
    DotEnv(target).write(parse_file(source), with_target(target))
    console.print(f"[green]✓[/green] Wrote {source} to {target}")


@write.command("awsssm")
@source_option
@aws_options
@click.option("--path", envvar="AWSSSM_PATH", default="", help="Parameter path prefix")
@click.option(
    "--parameter-name", "parameter_names", multiple=True, envvar="AWSSSM_PARAMETER_NAME",
    help="Parameter name, its parent path is used as the prefix",
)
@handle_errors
def write_awsssm(
    source: str,
    region: str,
    profile: str,
    access_key: str,
    secret_key: str,
    path: str,
    parameter_names: Tuple[str, ...],
):
    """Write values to AWS Systems Manager Parameter Store."""
    provider = AWSSSM(
        aws_config(region, profile, access_key, secret_key),
        ParameterInformation(path=path, parameter_names=list(parameter_names)),
    )
    provider.write(parse_file(source))
    console.print(f"[green]✓[/green] Wrote {source} under {provider.base_path()}")


@write.command("awssm")
@source_option
@aws_options
@click.option(
    "-n", "--secret-name", envvar="AWSSM_SECRET_NAME", required=True, help="Secret name"
)
@handle_errors
def write_awssm(
    source: str,
    region: str,
    profile: str,
    access_key: str,
    secret_key: str,
    secret_name: str,
):
    """Write values to an AWS Secrets Manager secret."""
    provider = AWSSM(
        aws_config(region, profile, access_key, secret_key),
        AWSSMSecretInformation(secret_names=[secret_name]),
    )
    provider.write(parse_file(source))
    console.print(f"[green]✓[/green] Wrote {source} to {secret_name}")


@write.command("vault")
@source_option
@vault_options
@handle_errors
def write_vault(source: str, **kwargs):
    """Write values to HashiCorp Vault (KV v2)."""
    with new_vault(False, False, **kwargs) as provider:
        provider.write(parse_file(source))
    console.print(f"[green]✓[/green] Wrote {source} to {provider.data_path}")


@write.command("github")
@source_option
@click.option("-o", "--owner", required=True, help="Repository owner")
@click.option("-p", "--repo", required=True, help="Repository name")
@click.option("-e", "--environment", default="", help="Deployment environment")
@click.option("--variable", is_flag=True, help="Write variables instead of secrets")
@handle_errors
def write_github(source: str, owner: str, repo: str, environment: str, variable: bool):
    """Write values as GitHub Actions secrets or variables."""
    write_funcs = [with_variable(variable)]
    if environment:
        write_funcs.append(with_environment(environment))

    values = parse_file(source)
    with GitHub(owner, repo) as github:
        github.write(values, *write_funcs)

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Name")
    table.add_column("Kind")
    for key in values:
        table.add_row(key, "variable" if variable else "secret")
    console.print(table)


@cli.command()
def version():
    """Show version information."""
    console.print("[bold blue]configurer[/bold blue]")
    console.print(f"Version: {__version__}")


def main():
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    main()
