import json
from datetime import datetime

import pytest
from fastapi import HTTPException

from dealership.models.vehicle import Vehicle
from dealership.routes import vehicle_routes
from dealership.routes.vehicle_routes import (
    CreateVehicleRequest,
    UpdateVehicleRequest,
    create_vehicle,
    deactivate_vehicle,
    get_vehicle,
    list_vehicles,
    update_vehicle,
)


def new_vehicle(**overrides) -> CreateVehicleRequest:
    payload = {
        'marca': 'Ford',
        'modelo': 'Focus',
        'anio': 2020,
        'precio': 18500.5,
        'km': 42000,
        'fotos': ['http://localhost:3001/uploads/files-1.jpg'],
    }
    payload.update(overrides)
    return CreateVehicleRequest(**payload)


def test_create_vehicle_generates_id_and_encodes_photos(db_session) -> None:
    response = create_vehicle(new_vehicle(), db=db_session)

    assert response.vehiculo.id_vehiculo.startswith('veh_')
    assert response.vehiculo.fotos == ['http://localhost:3001/uploads/files-1.jpg']
    assert response.vehiculo.stock == 0
    assert response.vehiculo.precio == 18500.5

    stored = db_session.query(Vehicle).one()
    assert json.loads(stored.fotos) == ['http://localhost:3001/uploads/files-1.jpg']


def test_create_vehicle_keeps_supplied_id(db_session) -> None:
    response = create_vehicle(new_vehicle(idVehiculo='veh_custom'), db=db_session)

    assert response.vehiculo.id_vehiculo == 'veh_custom'


def test_create_vehicle_regenerates_colliding_id(db_session, make_vehicle, monkeypatch: pytest.MonkeyPatch) -> None:
    make_vehicle('veh_taken')
    monkeypatch.setattr(vehicle_routes, 'generate_vehicle_id', lambda: 'veh_fresh')

    response = create_vehicle(new_vehicle(idVehiculo='veh_taken'), db=db_session)

    assert response.vehiculo.id_vehiculo == 'veh_fresh'
    assert db_session.query(Vehicle).count() == 2


@pytest.mark.parametrize(
    ('overrides', 'error_detail'),
    [
        ({'marca': '  '}, 'Todos los campos obligatorios deben ser completados'),
        ({'km': None}, 'Todos los campos obligatorios deben ser completados'),
        ({'es0km': True, 'stock': 0}, 'Stock requerido para vehículos 0 km'),
        ({'anio': 1850}, 'El año debe ser válido'),
        ({'anio': datetime.now().year + 2}, 'El año debe ser válido'),
        ({'precio': -10}, 'El precio debe ser mayor a 0'),
        ({'km': -1}, 'El kilometraje no puede ser negativo'),
    ],
)
def test_create_vehicle_rejects_invalid_values(overrides: dict, error_detail: str) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_vehicle(new_vehicle(**overrides), db=None)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == error_detail


def test_list_vehicles_returns_active_newest_first(db_session, make_vehicle) -> None:
    make_vehicle('veh_old', fecha_creacion=datetime(2024, 1, 1))
    make_vehicle('veh_new', fecha_creacion=datetime(2024, 3, 1))
    make_vehicle('veh_gone', activo=False, fecha_creacion=datetime(2024, 2, 1))

    response = list_vehicles(db=db_session)

    assert [vehicle.id_vehiculo for vehicle in response.vehiculos] == ['veh_new', 'veh_old']


def test_update_vehicle_requires_admin(db_session, client_user, make_vehicle) -> None:
    make_vehicle('veh_a')

    with pytest.raises(HTTPException) as exception_info:
        update_vehicle('veh_a', UpdateVehicleRequest(precio=1), admin_dni=client_user.dni, db=db_session)

    assert exception_info.value.status_code == 403


def test_update_vehicle_applies_partial_changes(db_session, admin_user, make_vehicle) -> None:
    make_vehicle('veh_a')

    response = update_vehicle(
        'veh_a',
        UpdateVehicleRequest(precio=19999, fotos=['http://x/uploads/a.png'], color='Rojo'),
        admin_dni=admin_user.dni,
        db=db_session,
    )

    assert response.vehiculo.precio == 19999
    assert response.vehiculo.fotos == ['http://x/uploads/a.png']
    assert response.vehiculo.color == 'Rojo'
    assert response.vehiculo.marca == 'Toyota'


def test_update_vehicle_returns_not_found(db_session, admin_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_vehicle('veh_missing', UpdateVehicleRequest(km=10), admin_dni=admin_user.dni, db=db_session)

    assert exception_info.value.status_code == 404


def test_deactivate_vehicle_soft_deletes(db_session, admin_user, make_vehicle) -> None:
    make_vehicle('veh_a')

    deactivate_vehicle('veh_a', admin_dni=admin_user.dni, db=db_session)

    assert db_session.query(Vehicle).filter(Vehicle.id_vehiculo == 'veh_a').one().activo is False
    assert list_vehicles(db=db_session).vehiculos == []
    with pytest.raises(HTTPException) as exception_info:
        get_vehicle('veh_a', db=db_session)
    assert exception_info.value.status_code == 404
