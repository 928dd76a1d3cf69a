from pydantic import BaseModel, Field
from uuid import UUID


class UserSummary(BaseModel):
    """Datos mínimos de usuario embebidos en otras respuestas"""
    id: UUID
    first_name: str
    last_name: str
    email: str

    model_config = {"from_attributes": True}


class AuthContext(BaseModel):
    """
    Contexto de autenticación resuelto a partir del JWT.

    tenant_id viene siempre del token, nunca de parámetros del cliente.
    user_role es el rol activo del usuario dentro de esa empresa.
    """
    user_id: UUID
    tenant_id: UUID
    user_role: str = Field(description="admin, manager o employee")

    @property
    def is_supervisor(self) -> bool:
        from app.modules.auth.models import UserRole
        return self.user_role in UserRole.SUPERVISORS

