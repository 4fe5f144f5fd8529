"""
AWS client factory.
"""
import boto3
from typing import Optional
from app.core.config import settings


def get_aws_client(service_name: str, region_name: Optional[str] = None):
    """
    Create a boto3 client for an AWS service.

    Args:
        service_name: AWS service name (e.g. 'secretsmanager')
        region_name: AWS region (defaults to AWS_REGION from settings)
    """
    return boto3.client(service_name, region_name=region_name or settings.AWS_REGION)
