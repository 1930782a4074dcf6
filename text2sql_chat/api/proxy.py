from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from text2sql_chat.api.deps import get_proxy_service
from text2sql_chat.api.models import HealthResponse, Text2SQLRequest
from text2sql_chat.core.config import Settings, get_settings
from text2sql_chat.core.errors import ConfigurationError
from text2sql_chat.core.logging import get_logger
from text2sql_chat.services.proxy_service import ProxyService

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["Text2SQL Proxy"])


@router.post(
    "/text2sql",
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": Text2SQLRequest.model_json_schema(by_alias=True)}},
        }
    },
)
async def text2sql(
    request: Request,
    proxy: ProxyService = Depends(get_proxy_service),
):
    """
    Forward a generation request upstream with the server's API key and connection.
    Rows are only returned when the caller asked for ``runQuery``.
    Every failure, including an unreadable body, answers 500 with ``{"error": ...}``.
    """
    try:
        body = await request.json()
        data = await proxy.forward(body)
        return JSONResponse(data)
    except ConfigurationError as e:
        logger.error(f"Text2SQL proxy misconfigured: {e}")
        return JSONResponse({"error": str(e)}, status_code=500)
    except Exception as e:
        logger.error(f"Text2SQL API error: {e!r}")
        return JSONResponse({"error": "Failed to process request"}, status_code=500)


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)):
    """Report whether the proxy has what it needs to reach the upstream API."""
    configured = bool(settings.TEXT2SQL_API_KEY)
    return HealthResponse(
        status="ok" if configured else "degraded",
        upstream=settings.TEXT2SQL_API_BASE_URL,
        api_key_configured=configured,
    )
