# auth_service/services/container.py
from dataclasses import dataclass
from typing import Optional

import requests

from auth_service.core.config import Settings
from auth_service.core.tokens import TokenIssuer
from auth_service.services.identity import IdentityResolver
from auth_service.services.ledger import RefreshTokenLedger
from auth_service.services.providers import ProviderRegistry, build_providers


@dataclass
class Services:
    """Collaborators built once at startup and shared by every request."""

    settings: Settings
    ledger: RefreshTokenLedger
    issuer: TokenIssuer
    resolver: IdentityResolver
    providers: ProviderRegistry


def build_services(
    settings: Settings,
    *,
    providers: Optional[ProviderRegistry] = None,
    http: Optional[requests.Session] = None,
) -> Services:
    ledger = RefreshTokenLedger(settings)
    return Services(
        settings=settings,
        ledger=ledger,
        issuer=TokenIssuer(settings, ledger),
        resolver=IdentityResolver(),
        providers=providers if providers is not None else build_providers(settings, http),
    )
