"""Streaming provider registry.

``build_providers`` turns the ranked ``providers.order`` list from the
config into provider instances, highest rank first.
"""

from __future__ import annotations

from typing import Any, Dict, List

from anideck.core.constants import CONSUMET_PROVIDERS, HTML_PROVIDERS
from anideck.services.providers.base import Candidate, StreamProvider
from anideck.services.providers.consumet import ConsumetProvider
from anideck.services.providers.gogoanime import GogoanimeProvider
from anideck.utils.http_client import HttpClient

__all__ = [
    "Candidate",
    "ConsumetProvider",
    "GogoanimeProvider",
    "StreamProvider",
    "build_providers",
]


def build_providers(cfg: Dict[str, Any], http: HttpClient) -> List[StreamProvider]:
    prov_cfg = cfg.get("providers", {})
    providers: List[StreamProvider] = []
    for name in prov_cfg.get("order", []):
        if name in HTML_PROVIDERS:
            providers.append(GogoanimeProvider(prov_cfg["gogoanime_url"], http))
        elif name in CONSUMET_PROVIDERS:
            providers.append(ConsumetProvider(name, prov_cfg["consumet_url"], http))
        else:
            raise ValueError(f"Unsupported provider: {name}")
    return providers
