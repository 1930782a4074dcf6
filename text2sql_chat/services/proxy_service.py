from text2sql_chat.client.text2sql_client import UPSTREAM_PATH
from text2sql_chat.core.config import Settings
from text2sql_chat.core.errors import ApiError, ConfigurationError
from text2sql_chat.core.logging import get_logger
from typing import Any, Dict, Optional
import httpx

logger = get_logger(__name__)


class ProxyService:
    """Forwards client requests to the Text2SQL API with the server's credentials."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def build_upstream_body(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Client body as sent, plus the server connection id, with execution always on."""
        upstream_body = dict(body)
        if self.settings.TEXT2SQL_CONNECTION_ID:
            upstream_body["connectionID"] = self.settings.TEXT2SQL_CONNECTION_ID
        upstream_body["runQuery"] = True
        return upstream_body

    async def forward(self, body: Any) -> Dict[str, Any]:
        """Send the client's JSON body upstream and shape the reply for the client.

        Unknown fields pass through untouched; only ``connectionID`` and
        ``runQuery`` are overwritten.
        """
        if not isinstance(body, dict):
            raise ValueError("Request body must be a JSON object")

        api_key = self.settings.TEXT2SQL_API_KEY
        if not api_key:
            raise ConfigurationError("TEXT2SQL_API_KEY is not configured")

        upstream_body = self.build_upstream_body(body)
        logger.info(
            f"Forwarding text2sql request | mode={body.get('mode')} "
            f"runQuery(client)={bool(body.get('runQuery'))} limit={body.get('limit')}"
        )

        async with httpx.AsyncClient(
            base_url=self.settings.TEXT2SQL_API_BASE_URL,
            timeout=self.settings.REQUEST_TIMEOUT_SECONDS,
            transport=self.transport,
        ) as client:
            response = await client.post(
                UPSTREAM_PATH,
                json=upstream_body,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
            )

        if not response.is_success:
            raise ApiError(
                f"Text2SQL API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        data = response.json()
        if not isinstance(data, dict):
            raise ApiError("Text2SQL API returned a non-object body", status_code=response.status_code)

        # Execution always happens upstream; rows only go back when asked for.
        if not body.get("runQuery"):
            data.pop("results", None)

        return data
