from text2sql_chat.api.models import Text2SQLRequest, Text2SQLResponse
from text2sql_chat.core.config import Settings
from text2sql_chat.core.errors import ApiError, NetworkError
from text2sql_chat.core.logging import get_logger
from pydantic import ValidationError
from typing import Dict, Optional
import httpx

logger = get_logger(__name__)

PROXY_PATH = "/api/text2sql"
UPSTREAM_PATH = "/api/external/generate-sql"


class Text2SQLClient:
    """Async client for SQL generation, against the proxy or the upstream API.

    ``is_loading`` stays true while any call made through this instance is
    in flight. Failures are logged and re-raised; nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        path: str = PROXY_PATH,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.path = path
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self._in_flight = 0

    @classmethod
    def for_proxy(cls, proxy_url: str, timeout: float = 60.0, transport=None) -> "Text2SQLClient":
        return cls(proxy_url, PROXY_PATH, timeout=timeout, transport=transport)

    @classmethod
    def for_upstream(cls, settings: Settings, transport=None) -> "Text2SQLClient":
        return cls(
            settings.TEXT2SQL_API_BASE_URL,
            UPSTREAM_PATH,
            api_key=settings.TEXT2SQL_API_KEY,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport=None) -> "Text2SQLClient":
        """Proxy client when ``TEXT2SQL_PROXY_URL`` is set, upstream client otherwise."""
        if settings.TEXT2SQL_PROXY_URL:
            return cls.for_proxy(settings.TEXT2SQL_PROXY_URL, settings.REQUEST_TIMEOUT_SECONDS, transport)
        return cls.for_upstream(settings, transport)

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key is not None:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def generate_sql(self, request: Text2SQLRequest) -> Text2SQLResponse:
        self._in_flight += 1
        try:
            try:
                async with httpx.AsyncClient(
                    base_url=self.base_url, timeout=self.timeout, transport=self.transport
                ) as client:
                    response = await client.post(self.path, json=request.to_payload(), headers=self._headers())
            except httpx.TransportError as e:
                raise NetworkError(f"Could not reach {self.base_url}: {e}") from e

            if not response.is_success:
                raise ApiError(self._error_message(response), status_code=response.status_code)

            try:
                return Text2SQLResponse.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                raise ApiError(f"Invalid response from {self.base_url}: {e}", status_code=response.status_code) from e

        except (NetworkError, ApiError) as e:
            logger.error(f"Text2SQL API error: {e}")
            raise
        finally:
            self._in_flight -= 1

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"API request failed: {response.status_code} {response.reason_phrase}"
