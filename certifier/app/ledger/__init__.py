from .gateway import LedgerGateway
from .il2_client import IL2LedgerClient, build_http_client, build_ssl_context

__all__ = [
    "LedgerGateway",
    "IL2LedgerClient",
    "build_http_client",
    "build_ssl_context",
]
