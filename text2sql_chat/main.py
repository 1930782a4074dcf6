from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional

from text2sql_chat.api import deps, endpoints, pages, proxy

from text2sql_chat.client.text2sql_client import Text2SQLClient
from text2sql_chat.core.config import Settings, get_settings, settings as default_settings
from text2sql_chat.core.logging import get_logger
from text2sql_chat.services.chat_service import ChatService
from text2sql_chat.services.proxy_service import ProxyService
from text2sql_chat.store.chat_store import ChatStore
from text2sql_chat.store.storage import FileStorage

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(" Starting Text2SQL Chat...")
    if not app.state.settings.TEXT2SQL_API_KEY:
        logger.warning(" TEXT2SQL_API_KEY is not set, the proxy will reject requests")

    yield

    logger.info(" Shutting down Text2SQL Chat...")
    app.state.chat_service.store.close()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ChatStore] = None,
    client: Optional[Text2SQLClient] = None,
    proxy_service: Optional[ProxyService] = None,
) -> FastAPI:
    """Build the app; anything not passed in is created from ``settings``."""
    settings = settings or default_settings
    store = store if store is not None else ChatStore(FileStorage(settings.CHAT_STORAGE_DIR))
    client = client or Text2SQLClient.from_settings(settings)
    proxy_service = proxy_service or ProxyService(settings)
    chat_service = ChatService(store, client, connection_id=settings.TEXT2SQL_CONNECTION_ID)

    app = FastAPI(
        title="Text2SQL Chat",
        description="Chat demo for the Text2SQL.ai SQL generation API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.chat_service = chat_service

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[deps.get_proxy_service] = lambda: proxy_service
    app.dependency_overrides[deps.get_chat_service] = lambda: chat_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(proxy.router)
    app.include_router(endpoints.router)
    app.include_router(pages.router)

    @app.get("/")
    async def root():
        return {
            "service": "Text2SQL Chat",
            "version": app.version,
            "chat": "/chat",
            "docs": "/docs",
            "health": "/api/health",
            "proxy": "/api/text2sql",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001)
