import logging
from typing import Optional

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_ec2.client import EC2Client
from mypy_boto3_ec2.type_defs import DescribeInstancesResultTypeDef

from node_cleanup.util.util import env

logger = logging.getLogger()

INSTANCE_METADATA_URL = "http://169.254.169.254/latest"
INSTANCE_NOT_FOUND_ERROR_CODE = "InvalidInstanceID.NotFound"
INSTANCE_STATE_RUNNING = "running"


class ProviderQueryError(Exception):
    pass


class InstanceNotFoundInResponseError(Exception):
    pass


def get_instance_region(
    client: Optional[httpx.Client] = None, timeout: float = 2.0
) -> str:
    http = client or httpx.Client(timeout=timeout)
    try:
        headers: dict[str, str] = {}
        try:
            token_response = http.put(
                f"{INSTANCE_METADATA_URL}/api/token",
                headers={"X-aws-ec2-metadata-token-ttl-seconds": "60"},
            )
            token_response.raise_for_status()
            headers["X-aws-ec2-metadata-token"] = token_response.text
        except httpx.HTTPError as error:
            # Pods behind the default hop limit of 1 never get a token.
            logger.debug("No IMDSv2 token, falling back to IMDSv1: %s", repr(error))
        region_response = http.get(
            f"{INSTANCE_METADATA_URL}/meta-data/placement/region",
            headers=headers,
        )
        region_response.raise_for_status()
    except httpx.HTTPError as error:
        logger.exception("Error requesting instance metadata: %s", repr(error))
        raise RuntimeError("Unable to determine the AWS region.") from error
    finally:
        if client is None:
            http.close()
    region = region_response.text.strip()
    logger.info("AWS region from instance metadata: %s", region)
    return region


class AWSService:
    _ec2_client: EC2Client

    def __init__(self, ec2_client: Optional[EC2Client] = None) -> None:
        if ec2_client is None:
            ec2_client = boto3.client(
                "ec2",
                aws_access_key_id=env("AWS_ACCESS_KEY_ID", default=None),
                aws_secret_access_key=env("AWS_SECRET_ACCESS_KEY", default=None),
                region_name=env("AWS_REGION", default=None) or get_instance_region(),
            )
        self._ec2_client = ec2_client

    def is_instance_running(self, instance_id: str) -> bool:
        if not instance_id:
            raise ValueError("Instance ID cannot be empty.")
        try:
            result: DescribeInstancesResultTypeDef = (
                self._ec2_client.describe_instances(InstanceIds=[instance_id])
            )
        except ClientError as error:
            if error.response["Error"]["Code"] == INSTANCE_NOT_FOUND_ERROR_CODE:
                logger.debug("EC2: instance %s does not exist.", instance_id)
                return False
            raise ProviderQueryError(
                f"EC2: error describing instance {instance_id}: {error}"
            ) from error
        except BotoCoreError as error:
            raise ProviderQueryError(
                f"EC2: error describing instance {instance_id}: {error}"
            ) from error

        # No reservations means the instance is gone.
        reservations = result.get("Reservations", [])
        if not reservations:
            logger.debug("EC2: no reservations for instance %s.", instance_id)
            return False

        for reservation in reservations:
            for instance in reservation.get("Instances", []):
                if instance.get("InstanceId") != instance_id:
                    continue
                state = instance["State"]["Name"]
                logger.debug("EC2: instance %s is %s.", instance_id, state)
                return state == INSTANCE_STATE_RUNNING

        raise InstanceNotFoundInResponseError(
            f"EC2: instance {instance_id} missing from the returned reservations."
        )
