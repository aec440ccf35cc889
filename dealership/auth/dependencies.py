import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from dealership.auth import jwt_handler
from dealership.database import get_db
from dealership.models.user import User

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Token inválido") from exc

    dni = payload.get("sub")
    if not dni:
        raise HTTPException(status_code=401, detail="Token sin usuario")

    user = db.query(User).filter(User.dni == dni).first()
    if user is None or not user.activo:
        raise HTTPException(status_code=401, detail="Usuario no encontrado")
    return user
