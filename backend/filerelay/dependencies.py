"""FastAPI dependencies shared by the routers.

The stores and the transfer service are built once by ``create_app`` and
hung off ``app.state``; handlers reach them only through these functions.
"""
from fastapi import Depends, Request, Response

from .config import RelayConfig
from .files.service import TransferService


def get_service(request: Request) -> TransferService:
    return request.app.state.service


def get_relay_config(request: Request) -> RelayConfig:
    return request.app.state.config


def set_session_cookie(response: Response, config: RelayConfig, session_id: str) -> None:
    response.set_cookie(
        key=config.sessions.cookie_name,
        value=session_id,
        max_age=config.sessions.cookie_max_age_seconds,
        path="/",
        samesite="strict",
        httponly=True,
    )


def current_session(
    request: Request,
    response: Response,
    service: TransferService = Depends(get_service),
    config: RelayConfig = Depends(get_relay_config),
) -> str:
    """Resolve the caller's session, issuing a new cookie if the token is absent or unknown."""
    token = request.cookies.get(config.sessions.cookie_name)
    session_id, is_new = service.sessions.get_or_create(token)
    if is_new:
        set_session_cookie(response, config, session_id)
    return session_id
