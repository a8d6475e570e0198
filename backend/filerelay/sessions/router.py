"""FastAPI router for session management."""
from fastapi import APIRouter, Depends, Request, Response

from ..config import RelayConfig
from ..dependencies import get_relay_config, get_service, set_session_cookie
from ..files.schemas import MessageResponse
from ..files.service import TransferService

router = APIRouter(prefix="/api", tags=["sessions"])


@router.post("/reset-session", response_model=MessageResponse)
async def reset_session(
    request: Request,
    response: Response,
    service: TransferService = Depends(get_service),
    config: RelayConfig = Depends(get_relay_config),
):
    """Delete the caller's session and all its files, then issue a new session cookie."""
    token = request.cookies.get(config.sessions.cookie_name)
    new_session_id = await service.reset_session(token)
    set_session_cookie(response, config, new_session_id)
    return MessageResponse(message="Session reset successfully")
