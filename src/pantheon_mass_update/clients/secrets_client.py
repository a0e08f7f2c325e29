"""
AWS Secrets Manager client interface
"""

import json
import os
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from pantheon_mass_update import SERVICE_NAME
from pantheon_mass_update.exceptions import SecretsManagerError

logger = Logger(service=SERVICE_NAME, child=True)

TOKEN_ENV_VAR = 'PANTHEON_MACHINE_TOKEN'


class SecretsClientInterface(ABC):
    """
    Interface for machine token retrieval
    """

    @abstractmethod
    def get_machine_token(self) -> str:
        """
        Retrieve the Pantheon machine token

        Returns:
            str: The machine token

        Raises:
            SecretsManagerError: If the token cannot be retrieved
        """
        pass


class SecretsClient(SecretsClientInterface):
    """
    Reads the machine token from the environment, falling back to Secrets Manager
    """

    def __init__(self, secret_name: Optional[str] = None, region_name: str = 'us-east-1'):
        """
        Initialize Secrets Manager client

        Args:
            secret_name: Name of the secret holding the machine token
            region_name: AWS region name
        """
        self.secret_name = secret_name
        self.region_name = region_name
        self._client = None

    @property
    def client(self):
        """Lazy initialization of boto3 client"""
        if self._client is None:
            try:
                self._client = boto3.client('secretsmanager', region_name=self.region_name)
            except NoCredentialsError as e:
                logger.error("AWS credentials not found")
                raise SecretsManagerError("AWS credentials not configured") from e
            except BotoCoreError as e:
                logger.error("Failed to initialize Secrets Manager client")
                raise SecretsManagerError(f"Failed to initialize Secrets Manager client: {e}") from e
        return self._client

    def get_machine_token(self) -> str:
        """
        Retrieve the Pantheon machine token

        For local use, PANTHEON_MACHINE_TOKEN takes precedence over the secret.
        The secret may be a bare token or JSON with a 'machine_token' key.
        """
        env_token = os.environ.get(TOKEN_ENV_VAR, '').strip()
        if env_token:
            logger.info("Using machine token from environment")
            return env_token

        if not self.secret_name:
            raise SecretsManagerError(
                f"No machine token available: set {TOKEN_ENV_VAR} or MACHINE_TOKEN_SECRET_NAME"
            )

        try:
            logger.info(f"Retrieving secret: {self.secret_name}")
            response = self.client.get_secret_value(SecretId=self.secret_name)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code == 'ResourceNotFoundException':
                raise SecretsManagerError(f"Secret '{self.secret_name}' not found") from e
            elif error_code == 'DecryptionFailureException':
                raise SecretsManagerError("Failed to decrypt secret") from e
            elif error_code in ['UnauthorizedOperation', 'AccessDeniedException', 'AccessDenied']:
                raise SecretsManagerError("Access denied to Secrets Manager") from e
            logger.error(f"Unexpected Secrets Manager error: {error_code}")
            raise SecretsManagerError(f"Secrets Manager error: {e.response['Error']['Message']}") from e
        except BotoCoreError as e:
            raise SecretsManagerError(f"AWS SDK error: {e}") from e

        secret_string = (response.get('SecretString') or '').strip()
        if not secret_string:
            raise SecretsManagerError("Secret value is empty")

        if not secret_string.startswith('{'):
            return secret_string

        try:
            secret_data = json.loads(secret_string)
        except json.JSONDecodeError as e:
            raise SecretsManagerError("Secret is not valid JSON") from e

        token = secret_data.get('machine_token')
        if not token:
            raise SecretsManagerError("Missing 'machine_token' in secret")
        return token
