"""
AWS Secrets Manager access for tenant connection strings.
"""
import json
import logging
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from app.aws.client import get_aws_client

logger = logging.getLogger(__name__)


class SecretReader:
    """Reads string secrets through a Secrets Manager client."""

    def __init__(self, secretsmanager_client):
        self.client = secretsmanager_client

    def read(self, secret_name: str) -> str:
        """
        Fetch the SecretString of a secret.

        Raises:
            ClientError: secret missing, access denied, or service error
        """
        try:
            response = self.client.get_secret_value(SecretId=secret_name)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            logger.error(f"Secret {secret_name} could not be read ({code}).")
            raise
        logger.info(f"Secret {secret_name} retrieved.")
        return response["SecretString"]


def get_secret(secret_name: str, region_name: Optional[str] = None, client=None) -> Dict[str, Any]:
    """
    Fetch a secret and parse it as a JSON object.

    Args:
        secret_name: Name/path of the secret
        region_name: AWS region (defaults to settings.AWS_REGION)
        client: Pre-built secretsmanager client (tests)
    """
    reader = SecretReader(client or get_aws_client("secretsmanager", region_name=region_name))
    return json.loads(reader.read(secret_name))
