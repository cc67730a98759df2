"""HTTP client construction for the Orchestrator REST APIs."""

from __future__ import annotations

from typing import Optional

import httpx
import structlog

from o11n_deploy.core.models import Credentials


logger = structlog.get_logger()


def new_client(
    insecure_tls: bool,
    credentials: Optional[Credentials] = None,
    timeout: float = 30.0,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create an HTTP client for one Orchestrator service.

    Orchestrator appliances ship with self-signed certificates whose CN rarely
    matches the address used to reach them. With ``insecure_tls`` the client
    accepts any certificate chain and any hostname.

    The caller owns the client and must close it (use it as a context manager).
    """
    auth = httpx.BasicAuth(*credentials.as_tuple()) if credentials is not None else None
    if insecure_tls:
        logger.debug("TLS certificate and hostname verification disabled")
    return httpx.Client(
        auth=auth,
        verify=not insecure_tls,
        timeout=httpx.Timeout(timeout),
        transport=transport,
    )
