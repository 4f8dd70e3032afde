from __future__ import annotations

from .cache import CacheKey, ManifestCache
from .client import ManifestClient
from .gateway import GatewayResponse, ManifestGateway
from .models import ManifestColumn, TableManifest
from .parser import parse_manifest

__all__ = [
    "CacheKey",
    "ManifestCache",
    "ManifestClient",
    "GatewayResponse",
    "ManifestGateway",
    "ManifestColumn",
    "TableManifest",
    "parse_manifest",
]
