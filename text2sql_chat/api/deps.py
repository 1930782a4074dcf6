from text2sql_chat.services.chat_service import ChatService
from text2sql_chat.services.proxy_service import ProxyService

# Placeholders; create_app() installs the real instances via dependency_overrides.


def get_proxy_service() -> ProxyService:
    raise RuntimeError("ProxyService not initialized")


def get_chat_service() -> ChatService:
    raise RuntimeError("ChatService not initialized")
