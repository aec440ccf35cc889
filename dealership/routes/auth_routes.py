import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dealership.auth import jwt_handler
from dealership.auth.dependencies import get_current_user
from dealership.auth.passwords import MAX_PASSWORD_BYTES, hash_password, verify_password
from dealership.core import config
from dealership.database import get_db
from dealership.models.user import ROLE_ADMIN, ROLE_CLIENT, VALID_ROLES, User
from dealership.routes.common import MessageResponse, bad_request, server_error, strip_optional

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = 'Credenciales incorrectas'


def _strip(value) -> str:
    if value is None:
        return ''
    return str(value).strip()


class NewUserFields(BaseModel):
    dni: str = ''
    nombre: str = ''
    apellido: str = ''
    telefono: str = ''
    password: str = ''

    @field_validator('dni', 'nombre', 'apellido', 'telefono', mode='before')
    @classmethod
    def normalize_text(cls, value) -> str:
        return _strip(value)

    @field_validator('password', mode='before')
    @classmethod
    def normalize_password(cls, value) -> str:
        return '' if value is None else str(value)


class RegisterRequest(NewUserFields):
    rol: str | None = None
    creator_dni: str | None = Field(default=None, alias='creatorDni')

    class Config:
        populate_by_name = True

    @field_validator('rol', mode='before')
    @classmethod
    def normalize_role(cls, value) -> str | None:
        normalized = strip_optional(value)
        return normalized.lower() if normalized else None

    @field_validator('creator_dni', mode='before')
    @classmethod
    def normalize_creator(cls, value) -> str | None:
        return strip_optional(value)


class CreateAdminRequest(NewUserFields):
    creator_dni: str = Field(default='', alias='creatorDni')

    class Config:
        populate_by_name = True

    @field_validator('creator_dni', mode='before')
    @classmethod
    def normalize_creator(cls, value) -> str:
        return _strip(value)


class LoginRequest(BaseModel):
    dni: str = ''
    password: str = ''

    @field_validator('dni', mode='before')
    @classmethod
    def normalize_dni(cls, value) -> str:
        return _strip(value)

    @field_validator('password', mode='before')
    @classmethod
    def normalize_password(cls, value) -> str:
        return '' if value is None else str(value)


class UserPublic(BaseModel):
    dni: str
    nombre: str
    apellido: str
    telefono: str
    rol: str
    activo: bool

    class Config:
        from_attributes = True


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    dni: str
    role: str


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    user: UserPublic
    access_token: str
    token_type: str = 'bearer'


class CurrentUserResponse(BaseModel):
    success: bool = True
    user: UserPublic


def validate_new_user_fields(data: NewUserFields, required_message: str) -> None:
    if not all((data.dni, data.nombre, data.apellido, data.telefono, data.password)):
        raise bad_request(required_message)

    if len(data.password) < config.MIN_PASSWORD_LENGTH:
        raise bad_request(f'La contraseña debe tener al menos {config.MIN_PASSWORD_LENGTH} caracteres')

    # bcrypt limit is in bytes, not characters.
    if len(data.password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        raise bad_request('La contraseña es demasiado larga')


def create_user(db: Session, data: NewUserFields, role: str) -> User:
    """Insert a user after checking DNI and phone uniqueness."""
    if db.query(User.dni).filter(User.dni == data.dni).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Ya existe una cuenta con este DNI',
        )

    if db.query(User.dni).filter(User.telefono == data.telefono).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Ya existe una cuenta con este teléfono',
        )

    user = User(
        dni=data.dni,
        nombre=data.nombre,
        apellido=data.apellido,
        telefono=data.telefono,
        password_hash=hash_password(data.password),
        rol=role,
        activo=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Ya existe una cuenta con este DNI o teléfono',
        ) from exc
    db.refresh(user)

    logger.info('Registered user %s with role %s', user.dni, user.rol)
    return user


@router.post('/register', response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    validate_new_user_fields(data, 'DNI, nombre, apellido, teléfono y contraseña son obligatorios')

    if data.rol and data.rol not in VALID_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='El rol debe ser "admin" o "cliente"',
        )

    try:
        if data.creator_dni:
            creator = db.query(User).filter(User.dni == data.creator_dni).first()
            if creator is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail='Acceso denegado. Usuario creador no encontrado.',
                )
            final_role = ROLE_ADMIN if creator.is_admin else ROLE_CLIENT
        elif data.rol == ROLE_ADMIN:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='No está permitido crear administradores desde el registro público.',
            )
        else:
            final_role = ROLE_CLIENT

        user = create_user(db, data, final_role)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Registration failed for %s', data.dni)
        raise server_error() from exc

    return RegisterResponse(
        message='Usuario registrado exitosamente',
        dni=user.dni,
        role=user.rol,
    )


@router.post('/admins', response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def create_admin(data: CreateAdminRequest, db: Session = Depends(get_db)):
    validate_new_user_fields(
        data,
        'dni, nombre, apellido, telefono, password y creatorDni son obligatorios',
    )
    if not data.creator_dni:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='dni, nombre, apellido, telefono, password y creatorDni son obligatorios',
        )

    try:
        creator = db.query(User).filter(User.dni == data.creator_dni).first()
        if creator is None or not creator.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Acceso denegado. Solo administradores pueden crear nuevos administradores.',
            )

        create_user(db, data, ROLE_ADMIN)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Admin creation failed for %s', data.dni)
        raise server_error() from exc

    return MessageResponse(message='Administrador creado exitosamente')


@router.post('/login', response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    if not data.dni or not data.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='DNI y contraseña son obligatorios',
        )

    try:
        user = db.query(User).filter(User.dni == data.dni).first()
    except SQLAlchemyError as exc:
        logger.exception('Login lookup failed for %s', data.dni)
        raise server_error() from exc

    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    if not user.activo:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Cuenta desactivada')

    if not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    return LoginResponse(
        message='Login exitoso',
        user=UserPublic.model_validate(user),
        access_token=jwt_handler.create_access_token(subject=user.dni, role=user.rol),
    )


@router.get('/me', response_model=CurrentUserResponse)
def me(current_user: User = Depends(get_current_user)):
    return CurrentUserResponse(user=UserPublic.model_validate(current_user))
