"""AWS credentials shared by the Parameter Store and Secrets Manager providers."""

from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from ..exceptions import FailedToError, InvalidError

AWS_ERRORS = (BotoCoreError, ClientError)


class AWSConfig(BaseModel):
    """Region and credentials; empty fields fall back to the SDK's chain."""

    region: str = ""
    profile: str = ""
    access_key: str = ""
    secret_key: str = ""

    def check(self) -> None:
        """Reject contradictory credential combinations."""
        if self.profile and (self.access_key or self.secret_key):
            raise InvalidError(
                "credentials", "profile and access/secret keys are mutually exclusive"
            )
        if not self.profile and not self.region:
            raise InvalidError("region", "it's required when no profile is set")
        if bool(self.access_key) != bool(self.secret_key):
            raise InvalidError("credentials", "access and secret keys go together")


def error_code(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return ""


def new_client(service: str, config: AWSConfig) -> Any:
    """Create a boto3 client for ``service`` from ``config``."""
    try:
        session = boto3.Session(
            profile_name=config.profile or None,
            region_name=config.region or None,
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
        )
        return session.client(service)
    except BotoCoreError as e:
        raise FailedToError("load AWS config", e) from e


def secret_key_of(name: str) -> str:
    """Last segment of a slash-separated parameter or secret name."""
    return name.rsplit("/", 1)[-1]


__all__ = ["AWSConfig", "AWS_ERRORS", "error_code", "new_client", "secret_key_of"]
