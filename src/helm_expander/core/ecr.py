"""AWS ECR login for private OCI chart registries."""

from __future__ import annotations

import base64
import logging
import re

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from helm_expander.core.errors import AuthError

logger = logging.getLogger(__name__)

ECR_HOST_PATTERN = re.compile(r"^[0-9]+\.dkr\.ecr\.(?P<region>[a-z0-9-]+)\.amazonaws\.com$")


def is_ecr_host(host: str) -> bool:
    return bool(ECR_HOST_PATTERN.match(host))


def ecr_login(host: str) -> tuple[str, str]:
    """Return registry username and password for ``host`` from ECR.

    The region is taken from the host name when it follows the ECR pattern,
    otherwise from the default boto3 session.
    """
    m = ECR_HOST_PATTERN.match(host)
    session = boto3.Session()
    region = m.group("region") if m else session.region_name
    try:
        client = session.client("ecr", region_name=region)
        response = client.get_authorization_token()
    except (ClientError, BotoCoreError) as e:
        raise AuthError(f"unable to log in to AWS registry {host}: {e}") from e

    data = response.get("authorizationData") or []
    if not data:
        raise AuthError(f"unable to log in to AWS registry {host}: no authorization data returned")
    token = base64.b64decode(data[0]["authorizationToken"]).decode()
    username, _, password = token.partition(":")
    logger.debug("Obtained ECR credentials for %s in %s", host, region)
    return username, password
