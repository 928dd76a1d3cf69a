"""
Dependencias de autenticación para FastAPI.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt
import logging

from app.database.database import get_db
from app.modules.auth.models import User, UserCompany, UserRole
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import decode_token

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer()

class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación completo con tenant.

        El tenant sale del token de contexto y el rol de la membresía
        activa del usuario en esa empresa.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = decode_token(credentials.credentials)
            user_id = UUID(payload.get("sub"))
            tenant_id = UUID(payload.get("tenant_id"))
        except (jwt.PyJWTError, TypeError, ValueError):
            raise credentials_exception

        user = db.query(User).filter(User.id == user_id).first()
        if user is None or not user.is_active:
            raise credentials_exception

        membership = db.query(UserCompany).filter(
            UserCompany.user_id == user_id,
            UserCompany.company_id == tenant_id,
            UserCompany.is_active == True
        ).first()

        if not membership:
            logger.warning(f"User {user_id} has no active membership in tenant {tenant_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No tienes acceso a esta empresa"
            )

        return AuthContext(
            user_id=user_id,
            tenant_id=tenant_id,
            user_role=membership.role
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_supervisor():
        """Dependencia para requerir rol de manager o admin."""
        return AuthDependencies.require_role(UserRole.SUPERVISORS)

    @staticmethod
    def require_any_role():
        """Dependencia que requiere cualquier rol activo en una empresa."""
        return AuthDependencies.require_role(UserRole.ALL)

