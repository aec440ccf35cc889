"""Default accounts created on first start outside production."""

import logging

from sqlalchemy.orm import Session

from dealership.auth.passwords import hash_password
from dealership.models.user import ROLE_ADMIN, ROLE_CLIENT, User

logger = logging.getLogger(__name__)

DEFAULT_USERS = (
    {
        'dni': '12345678',
        'nombre': 'Administrador',
        'apellido': 'Sistema',
        'telefono': '3411234567',
        'password': 'admin123',
        'rol': ROLE_ADMIN,
    },
    {
        'dni': '87654321',
        'nombre': 'Juan',
        'apellido': 'Perez',
        'telefono': '3417654321',
        'password': 'cliente123',
        'rol': ROLE_CLIENT,
    },
)


def seed_default_users(db: Session) -> int:
    created = 0
    for account in DEFAULT_USERS:
        exists = db.query(User.dni).filter(
            (User.dni == account['dni']) | (User.telefono == account['telefono'])
        ).first()
        if exists:
            continue

        db.add(
            User(
                dni=account['dni'],
                nombre=account['nombre'],
                apellido=account['apellido'],
                telefono=account['telefono'],
                password_hash=hash_password(account['password']),
                rol=account['rol'],
                activo=True,
            )
        )
        created += 1

    if created:
        db.commit()
        logger.info('Seeded %d default user(s)', created)
    return created
