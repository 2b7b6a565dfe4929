"""Outbound HTTP request and webhook blocks."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..contracts import BlockType, Node, ValidationResult
from .base import BlockHandler, ExecutionContext

logger = logging.getLogger(__name__)

METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}


class HttpRequestHandler(BlockHandler):
    """Send one HTTP request and return the response.

    ``url``, ``headers``, ``params`` and the body may reference upstream
    outputs through templates. Webhook blocks default to ``POST``.
    """

    block_types = (BlockType.HTTP_REQUEST.value, BlockType.WEBHOOK.value)

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = client
        self._transport = transport

    async def execute(self, node: Node, context: ExecutionContext) -> Any:
        config = context.render(node.config)
        if not config.get("url"):
            raise ValueError(f"Node {node.id} has no url configured")
        default_method = "POST" if node.block_type == BlockType.WEBHOOK.value else "GET"
        method = str(config.get("method", default_method)).upper()
        request: Dict[str, Any] = {
            "headers": config.get("headers") or None,
            "params": config.get("params") or None,
        }
        if "json" in config:
            request["json"] = config["json"]
        elif "body" in config:
            body = config["body"]
            if isinstance(body, (dict, list)):
                request["json"] = body
            else:
                request["content"] = str(body)

        await context.log("info", f"{method} {config['url']}")
        if self._client is not None:
            response = await self._client.request(method, config["url"], **request)
        else:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.request(method, config["url"], **request)

        if response.status_code >= 400:
            raise RuntimeError(f"HTTP {response.status_code}: {response.reason_phrase}")

        return {
            "status_code": response.status_code,
            "headers": dict(response.headers),
            "body": _decode(response),
        }

    def validate(self, config: Mapping[str, Any]) -> ValidationResult:
        errors = self.require(config, ["url"])
        url = config.get("url")
        if isinstance(url, str) and "{{" not in url and not url.startswith(
            ("http://", "https://")
        ):
            errors.append("url must start with http:// or https://")
        method = config.get("method")
        if method is not None and str(method).upper() not in METHODS:
            errors.append(f"Unsupported HTTP method: {method}")
        return ValidationResult.from_errors(errors)


def _decode(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            logger.warning("Response declared JSON but could not be parsed")
    return response.text
