import logging

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dealership.database import ensure_appointment_schema
from dealership.models.user import User

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = 'Error del servidor'


class MessageResponse(BaseModel):
    success: bool = True
    message: str


def strip_optional(value) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def server_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=SERVER_ERROR_MESSAGE,
    )


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        logger.exception('Appointment schema check failed')
        raise server_error() from exc


def require_admin(
    db: Session,
    dni: str | None,
    missing_detail: str = 'Administrador no encontrado',
    forbidden_detail: str = 'Acceso denegado. Se requiere rol admin',
) -> User:
    """Return the acting admin or raise 403."""
    user = db.query(User).filter(User.dni == dni).first() if dni else None

    if user is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=missing_detail)

    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=forbidden_detail)

    return user
