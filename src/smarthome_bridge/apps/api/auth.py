from fastapi import Depends, Header, HTTPException, Request, status

from smarthome_bridge.services.bridge import SmartHomeBridge

NOT_AUTHORIZED = "not authorized"


def get_bridge(request: Request) -> SmartHomeBridge:
    bridge = getattr(request.app.state, "bridge", None)
    if bridge is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="bridge not started")
    return bridge


def _deny() -> HTTPException:
    # one response for every failure so callers cannot tell what was wrong
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=NOT_AUTHORIZED,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_access_token(
    authorization: str | None = Header(default=None),
    bridge: SmartHomeBridge = Depends(get_bridge),
) -> str:
    """
    Accept ``Authorization: Bearer <token>`` and return the token when it is known.
    """
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not token or not bridge.check_access_token(token):
        raise _deny()
    return token


async def require_client(
    client_id: str,
    client_secret: str | None = None,
    bridge: SmartHomeBridge = Depends(get_bridge),
) -> str:
    if not bridge.check_client_credentials(client_id, client_secret):
        raise _deny()
    return client_id
