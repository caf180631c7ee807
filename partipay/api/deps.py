from fastapi import Depends, HTTPException, Request
from starlette.requests import HTTPConnection

from partipay.core.exceptions import SplitSessionError
from partipay.db.mongo import get_db
from partipay.realtime.broadcaster import SessionBroadcaster
from partipay.repositories.session_repo import SessionRepository
from partipay.services.settlement_service import SettlementService


def get_broadcaster(connection: HTTPConnection) -> SessionBroadcaster:
    """Broadcaster of the running application, for HTTP and WebSocket routes."""
    return connection.app.state.broadcaster


def get_settlement_service(
    request: Request,
    db = Depends(get_db),
    broadcaster: SessionBroadcaster = Depends(get_broadcaster)
) -> SettlementService:
    """Settlement service bound to this application's broadcaster and locks."""
    return SettlementService(
        SessionRepository(db),
        broadcaster,
        request.app.state.session_locks,
        request.app.state.bank_service
    )


def to_http_exception(error: SplitSessionError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.detail)
