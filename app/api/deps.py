"""Shared FastAPI dependencies.

Everything that talks to the gateway or the ledger is built here so tests
can swap a single provider (usually ``get_http_client`` or
``get_session_factory``) through ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Callable, Optional

import httpx
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.core.config import Settings, settings
from app.core.database import SessionLocal, get_db
from app.services.payment.gateway import GatewayClient, build_http_client
from app.services.payment.poller import ReconciliationPoller
from app.services.payment.signature import SignatureEngine
from app.services.payment.store import TransactionStore


def get_settings() -> Settings:
    return settings


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that outlives the request (poller, jobs)."""
    return SessionLocal


def get_http_client(request: Request) -> httpx.Client:
    """The process-wide gateway HTTP client opened by the app lifespan."""
    client = getattr(request.app.state, "http_client", None)
    if client is None:
        client = build_http_client(settings)
        request.app.state.http_client = client
    return client


def get_store(db: Session = Depends(get_db)) -> TransactionStore:
    return TransactionStore(db)


def get_signer(config: Settings = Depends(get_settings)) -> SignatureEngine:
    return SignatureEngine(config.gateway_merchant_code, config.gateway_private_key)


def make_client_factory(
    http: httpx.Client,
    signer: SignatureEngine,
    config: Settings,
) -> Callable[[TransactionStore], GatewayClient]:
    """Bind everything but the store, which belongs to the caller's session."""

    def factory(store: TransactionStore) -> GatewayClient:
        return GatewayClient(http=http, store=store, signer=signer, config=config)

    return factory


def get_gateway_client(
    http: httpx.Client = Depends(get_http_client),
    store: TransactionStore = Depends(get_store),
    signer: SignatureEngine = Depends(get_signer),
    config: Settings = Depends(get_settings),
) -> GatewayClient:
    return GatewayClient(http=http, store=store, signer=signer, config=config)


def get_poller(
    http: httpx.Client = Depends(get_http_client),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    signer: SignatureEngine = Depends(get_signer),
    config: Settings = Depends(get_settings),
) -> ReconciliationPoller:
    return ReconciliationPoller(
        session_factory=session_factory,
        client_factory=make_client_factory(http, signer, config),
        config=config,
    )


def get_current_user_id(
    x_user_id: Optional[str] = Header(
        None, description="Member id set by the authenticating proxy"
    ),
) -> Optional[str]:
    return x_user_id or None
