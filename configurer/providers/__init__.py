"""
Configuration providers.

Each provider loads flat key/value data from one kind of store and exports
it to the environment; some can also write values back.
"""

from .aws import AWSConfig
from .awssm import AWSSM
from .awssm import SecretInformation as AWSSMSecretInformation
from .awsssm import AWSSSM, ParameterInformation
from .dotenv import DotEnv
from .github import GitHub
from .noop import NoOp
from .text import Text
from .vault import SecretInformation as VaultSecretInformation
from .vault import Vault, VaultAuth

__all__ = [
    "AWSConfig",
    "AWSSM",
    "AWSSMSecretInformation",
    "AWSSSM",
    "DotEnv",
    "GitHub",
    "NoOp",
    "ParameterInformation",
    "Text",
    "Vault",
    "VaultAuth",
    "VaultSecretInformation",
]
