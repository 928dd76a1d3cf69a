"""
Reglas de permisos sobre turnos de caja
"""
from app.common.exceptions import ForbiddenError
from app.modules.auth.schemas import AuthContext
from app.modules.pos.models import POSSession


def can_operate_session(session: POSSession, auth: AuthContext) -> bool:
    """El dueño del turno o un admin/manager de la empresa"""
    return session.user_id == auth.user_id or auth.is_supervisor


def ensure_can_operate_session(session: POSSession, auth: AuthContext, action: str) -> None:
    if not can_operate_session(session, auth):
        raise ForbiddenError(f"Solo el cajero del turno o un supervisor puede {action}")
