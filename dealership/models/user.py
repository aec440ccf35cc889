"""User model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String
from dealership.database import Base

ROLE_ADMIN = "admin"
ROLE_CLIENT = "cliente"
VALID_ROLES = (ROLE_ADMIN, ROLE_CLIENT)


class User(Base):
    """A dealership client or administrator, keyed by national ID."""
    __tablename__ = "usuarios"

    dni = Column(String(20), primary_key=True)
    nombre = Column(String(100), nullable=False)
    apellido = Column(String(100), nullable=False)
    telefono = Column(String(20), unique=True, index=True, nullable=False)
    password_hash = Column("password", String(255), nullable=False)
    rol = Column(String(20), default=ROLE_CLIENT, nullable=False)  # admin/cliente
    activo = Column(Boolean, default=True, nullable=False)
    fecha_registro = Column(DateTime, default=datetime.now)

    @property
    def is_admin(self) -> bool:
        return self.rol == ROLE_ADMIN
