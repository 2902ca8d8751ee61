# services/secrets.py
"""
Secret loading for the delivery configuration

Values come from the process environment (seeded from a .env file when one is
present) and, when SECRETS_PROVIDER=aws, from a JSON secret in AWS Secrets
Manager whose keys override the environment.
"""

import json
import logging
import os
from typing import Dict, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from config.delivery import DeliveryConfig
from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PROVIDER_ENV = 'env'
PROVIDER_AWS = 'aws'

CONFIG_KEYS = (
    'SMTP_HOST', 'SMTP_PORT', 'SMTP_SECURE', 'SMTP_USER', 'SMTP_PASS',
    'SMTP_FROM', 'SMTP_FROM_NAME', 'CONTACT_RECEIVER_EMAIL', 'FRONTEND_ORIGIN',
    'PORT', 'SMTP_TIMEOUT', 'SMTP_RETRY_ONCE', 'SMTP_VERIFY_ON_STARTUP',
)


def fetch_aws_secret(secret_id: str, region_name: Optional[str] = None,
                     client=None) -> Dict[str, str]:
    """
    Fetch a JSON key/value secret from AWS Secrets Manager

    Args:
        secret_id: Secret name or ARN
        region_name: AWS region, boto3 default resolution when None
        client: Preconfigured secretsmanager client

    Raises:
        ConfigurationError: when the secret cannot be read or is not a JSON object
    """
    client = client or boto3.client('secretsmanager', region_name=region_name)

    try:
        response = client.get_secret_value(SecretId=secret_id)
    except (BotoCoreError, ClientError) as e:
        raise ConfigurationError(f"Could not read secret {secret_id}: {str(e)}") from e

    raw = response.get('SecretString')
    if not raw:
        raise ConfigurationError(f"Secret {secret_id} has no SecretString")

    try:
        values = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Secret {secret_id} is not valid JSON: {str(e)}") from e

    if not isinstance(values, dict):
        raise ConfigurationError(f"Secret {secret_id} must be a JSON object")

    return {str(key): str(value) for key, value in values.items() if value is not None}


def load_secret_values(environ: Optional[Mapping[str, str]] = None,
                       client=None) -> Dict[str, str]:
    """
    Collect configuration values from the environment and the configured store
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    values = {key: environ[key] for key in CONFIG_KEYS if environ.get(key) is not None}
    provider = (environ.get('SECRETS_PROVIDER') or PROVIDER_ENV).strip().lower()

    if provider == PROVIDER_ENV:
        logger.info("Loading delivery configuration from environment")
    elif provider == PROVIDER_AWS:
        secret_id = environ.get('SECRET_ID')
        if not secret_id:
            raise ConfigurationError('SECRETS_PROVIDER=aws requires SECRET_ID')
        logger.info(f"Loading delivery configuration from AWS secret {secret_id}")
        values.update(fetch_aws_secret(secret_id, environ.get('AWS_REGION'), client=client))
    else:
        raise ConfigurationError(f"Unknown SECRETS_PROVIDER {provider!r}")

    return values


def load_delivery_config(environ: Optional[Mapping[str, str]] = None,
                         client=None) -> DeliveryConfig:
    """Load and validate the delivery configuration; blocking, called once at startup"""
    config = DeliveryConfig.from_mapping(load_secret_values(environ, client=client))
    logger.info(f"Delivery configuration loaded: {config!r}")
    return config
