"""
Dependency providers. One httpx.Client per request, handed to the exchange client;
tests swap any of these through app.dependency_overrides.
"""
from collections.abc import Iterator

import httpx
from fastapi import Depends

from handoff_web.callback import CallbackResolver
from handoff_web.config import ANON_KEY, AUTH_BASE, CLIENT_ID, HTTP_TIMEOUT
from handoff_web.delivery import DeliveryDispatcher
from handoff_web.exchange import ExchangeClient
from handoff_web.flow_store import FlowStore, flows
from handoff_web.rate_limit import SlidingWindowLimiter, password_limiter
from handoff_web.session_store import SessionStore, sessions


def get_http_client() -> Iterator[httpx.Client]:
    with httpx.Client(timeout=HTTP_TIMEOUT) as client:
        yield client


def get_exchange_client(http: httpx.Client = Depends(get_http_client)) -> ExchangeClient:
    return ExchangeClient(http, auth_base=AUTH_BASE, api_key=ANON_KEY, client_id=CLIENT_ID)


def get_session_store() -> SessionStore:
    return sessions


def get_flow_store() -> FlowStore:
    return flows


def get_password_limiter() -> SlidingWindowLimiter:
    return password_limiter


def get_dispatcher(store: SessionStore = Depends(get_session_store)) -> DeliveryDispatcher:
    return DeliveryDispatcher(store)


def get_resolver(
    exchange: ExchangeClient = Depends(get_exchange_client),
    pending: FlowStore = Depends(get_flow_store),
) -> CallbackResolver:
    return CallbackResolver(exchange, pending)
