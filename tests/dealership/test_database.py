from datetime import date

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dealership import database
from dealership.auth.passwords import hash_password, verify_password
from dealership.models.user import User
from dealership.routes.appointment_routes import (
    CreateAppointmentRequest,
    compute_availability,
    create_appointment,
)

# Tables of an existing deployment, translated to SQLite.
LEGACY_TABLES = (
    """
    CREATE TABLE usuarios (
        dni VARCHAR(20) PRIMARY KEY,
        nombre VARCHAR(100) NOT NULL,
        apellido VARCHAR(100) NOT NULL,
        telefono VARCHAR(20) NOT NULL UNIQUE,
        password VARCHAR(255) NOT NULL,
        rol VARCHAR(20) DEFAULT 'cliente',
        activo BOOLEAN DEFAULT 1,
        fecha_registro TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE vehiculos (
        idVehiculo VARCHAR(50) PRIMARY KEY,
        marca VARCHAR(100) NOT NULL,
        modelo VARCHAR(100) NOT NULL,
        anio INT NOT NULL,
        precio DECIMAL(12,2) NOT NULL,
        km INT NOT NULL,
        stock INT DEFAULT 1,
        color VARCHAR(30) DEFAULT NULL,
        fotos TEXT,
        descripcion TEXT,
        activo BOOLEAN DEFAULT 1,
        fecha_creacion TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        fecha_actualizacion TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE citas (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        dni VARCHAR(20) NOT NULL,
        idVehiculo VARCHAR(50) DEFAULT NULL,
        fecha_hora DATETIME NOT NULL,
        motivo VARCHAR(255) NOT NULL,
        estado VARCHAR(50) DEFAULT 'pendiente',
        admin_dni VARCHAR(20) DEFAULT NULL,
        admin_message TEXT DEFAULT NULL,
        creado_en TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        actualizado_en TIMESTAMP NULL DEFAULT NULL
    )
    """,
)


@pytest.fixture
def legacy_engine(monkeypatch: pytest.MonkeyPatch):
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    with engine.begin() as connection:
        for statement in LEGACY_TABLES:
            connection.execute(text(statement))
        connection.execute(
            text(
                'INSERT INTO usuarios (dni, nombre, apellido, telefono, password, rol) '
                "VALUES ('30111222', 'Eva', 'Paz', '3415551234', :password, 'cliente')"
            ),
            {'password': hash_password('clave123')},
        )
        connection.execute(
            text(
                'INSERT INTO vehiculos (idVehiculo, marca, modelo, anio, precio, km, fotos) '
                "VALUES ('veh_legacy', 'Ford', 'Focus', 2020, 15000, 40000, '[]')"
            )
        )

    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_appointment_schema_checked', False)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def legacy_session(legacy_engine):
    db = sessionmaker(autocommit=False, autoflush=False, bind=legacy_engine)()
    try:
        yield db
    finally:
        db.close()


def test_ensure_appointment_schema_adds_slot_guard(legacy_engine) -> None:
    database.ensure_appointment_schema()

    inspector = inspect(legacy_engine)
    columns = {column['name'] for column in inspector.get_columns('citas')}
    indexes = {index['name']: index for index in inspector.get_indexes('citas')}

    assert 'slot_key' in columns
    assert indexes['uq_citas_slot_key']['unique']
    assert 'idx_citas_fecha_hora' in indexes


def test_ensure_appointment_schema_runs_once(legacy_engine) -> None:
    database.ensure_appointment_schema()
    database.ensure_appointment_schema()

    columns = [column['name'] for column in inspect(legacy_engine).get_columns('citas')]
    assert columns.count('slot_key') == 1


def test_existing_tables_serve_login_and_booking(legacy_engine, legacy_session) -> None:
    database.ensure_appointment_schema()

    user = legacy_session.query(User).filter(User.dni == '30111222').one()
    assert verify_password('clave123', user.password_hash)

    response = create_appointment(
        CreateAppointmentRequest(
            dni='30111222',
            idVehiculo='veh_legacy',
            fecha='2024-01-15',
            hora='10:00',
            motivo='Test drive',
        ),
        db=legacy_session,
    )

    assert response.cita.id_vehiculo == 'veh_legacy'
    assert response.cita.marca == 'Ford'

    slots = compute_availability(legacy_session, date(2024, 1, 15), 'veh_legacy')
    assert {slot.time: slot.available for slot in slots}['10:00'] is False

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            CreateAppointmentRequest(
                dni='30111222',
                idVehiculo='veh_legacy',
                fecha='2024-01-15',
                hora='10:00',
                motivo='Otra vez',
            ),
            db=legacy_session,
        )

    assert exception_info.value.status_code == 409

    with legacy_engine.connect() as connection:
        stored = connection.execute(text('SELECT idVehiculo, slot_key FROM citas')).one()
    assert stored == ('veh_legacy', 'veh_legacy|2024-01-15 10:00')
