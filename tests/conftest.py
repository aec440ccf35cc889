import os
import tempfile

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('UPLOAD_DIR', tempfile.mkdtemp(prefix='dealership-uploads-'))
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('SEED_DEFAULT_USERS', 'false')

from dealership.auth.passwords import hash_password  # noqa: E402
from dealership.database import Base  # noqa: E402
from dealership.models.appointment import Appointment  # noqa: E402,F401
from dealership.models.user import ROLE_ADMIN, ROLE_CLIENT, User  # noqa: E402
from dealership.models.vehicle import Vehicle  # noqa: E402


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('dealership.routes.appointment_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    def _make_user(dni: str, telefono: str, rol: str = ROLE_CLIENT, password: str = 'secreto1', activo: bool = True) -> User:
        user = User(
            dni=dni,
            nombre='Nombre',
            apellido='Apellido',
            telefono=telefono,
            password_hash=hash_password(password),
            rol=rol,
            activo=activo,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user('11111111', '3410000001', rol=ROLE_ADMIN)


@pytest.fixture
def client_user(make_user) -> User:
    return make_user('22222222', '3410000002')


@pytest.fixture
def make_vehicle(db_session):
    def _make_vehicle(vehicle_id: str, activo: bool = True, **overrides) -> Vehicle:
        values = {
            'marca': 'Toyota',
            'modelo': 'Corolla',
            'anio': 2022,
            'precio': 25000,
            'km': 15000,
            'stock': 1,
        }
        values.update(overrides)
        vehicle = Vehicle(id_vehiculo=vehicle_id, activo=activo, **values)
        vehicle.photo_urls = []
        db_session.add(vehicle)
        db_session.commit()
        db_session.refresh(vehicle)
        return vehicle

    return _make_vehicle
