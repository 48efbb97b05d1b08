"""AWS SageMaker backend with SigV4-signed requests."""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, AsyncIterator, Mapping, Optional

import httpx
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials

from llm_gateway.config.models import SageMakerEndpoint
from llm_gateway.services.backend import EndpointBackend, post_buffered

DEFAULT_REGION = "us-east-1"
SIGNING_SERVICE = "sagemaker"

_REGION_IN_HOST = re.compile(r"\.([a-z0-9-]+)\.amazonaws\.com(?:\.cn)?$")


def region_from_url(url: str) -> str:
    """Infer the AWS region from a SageMaker runtime URL host."""

    match = _REGION_IN_HOST.search(httpx.URL(url).host)
    return match.group(1) if match else DEFAULT_REGION


class SageMakerBackend(EndpointBackend):
    host = "sagemaker"

    def __init__(self, endpoint: SageMakerEndpoint, client: httpx.AsyncClient) -> None:
        self._endpoint = endpoint
        self._client = client
        self._credentials = Credentials(
            access_key=endpoint.access_key,
            secret_key=endpoint.secret_key,
            token=endpoint.session_token,
        )
        self._region = endpoint.region or region_from_url(endpoint.url)

    def sign(self, body: bytes) -> dict[str, str]:
        """Return the headers of a SigV4-signed POST of ``body``."""

        request = AWSRequest(
            method="POST",
            url=self._endpoint.url,
            data=body,
            headers={"Content-Type": "application/json"},
        )
        SigV4Auth(self._credentials, SIGNING_SERVICE, self._region).add_auth(request)
        return dict(request.headers.items())

    async def dispatch(
        self,
        prompt: str,
        parameters: Mapping[str, Any],
        *,
        model_id: str,
        abort: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[str]:
        body = json.dumps({**parameters, "inputs": prompt}).encode("utf-8")

        yield await post_buffered(
            self._client,
            host=self.host,
            url=self._endpoint.url,
            content=body,
            headers=self.sign(body),
            abort=abort,
        )
