"""Dependency injection for FastAPI endpoints"""

from typing import Optional

import httpx
from fastapi import Depends, Request
from donation_gateway.config import settings
from donation_gateway.domain.rate_limit import RateLimiter
from donation_gateway.infrastructure.clients.gateway import GatewayClient
from donation_gateway.infrastructure.clients.mail import MailTransferClient

# Process-local; every worker process keeps its own windows
payment_rate_limiter = RateLimiter(
    max_attempts=settings.rate_limit_max_attempts,
    window_seconds=settings.rate_limit_window_seconds,
)


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the peer address"""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def get_rate_limiter() -> RateLimiter:
    """Provide the shared payment rate limiter"""
    return payment_rate_limiter


def get_gateway_transport() -> Optional[httpx.AsyncBaseTransport]:
    """HTTP transport for gateway calls; None uses the network"""
    return None


def get_gateway_client(transport: Optional[httpx.AsyncBaseTransport] = Depends(get_gateway_transport)) -> GatewayClient:
    """Provide payment gateway client configured from settings"""
    return GatewayClient(transport=transport)


def get_mail_client() -> MailTransferClient:
    """Provide mail transfer client configured from settings"""
    return MailTransferClient()
