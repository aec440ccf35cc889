import logging
import random
import time
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dealership.database import get_db
from dealership.models.vehicle import Vehicle
from dealership.routes.common import (
    MessageResponse,
    bad_request,
    require_admin,
    server_error,
    strip_optional,
)

router = APIRouter(tags=['vehiculos'])

logger = logging.getLogger(__name__)

MIN_VEHICLE_YEAR = 1900
VEHICLE_NOT_FOUND = 'Vehículo no encontrado'


class VehicleFields(BaseModel):
    marca: str | None = None
    modelo: str | None = None
    anio: int | None = None
    precio: float | None = None
    km: int | None = None
    stock: int | None = None
    color: str | None = None
    fotos: list[str] | None = None
    descripcion: str | None = None

    @field_validator('marca', 'modelo', 'color', 'descripcion', mode='before')
    @classmethod
    def normalize_text(cls, value) -> str | None:
        return strip_optional(value)


class CreateVehicleRequest(VehicleFields):
    id_vehiculo: str | None = Field(default=None, alias='idVehiculo')
    es_0km: bool = Field(default=False, alias='es0km')

    class Config:
        populate_by_name = True


class UpdateVehicleRequest(VehicleFields):
    activo: bool | None = None


class VehicleResponse(BaseModel):
    id_vehiculo: str = Field(alias='idVehiculo')
    marca: str
    modelo: str
    anio: int
    precio: float
    km: int
    stock: int | None = None
    color: str | None = None
    fotos: list[str]
    descripcion: str | None = None
    activo: bool
    fecha_creacion: datetime | None = None
    fecha_actualizacion: datetime | None = None

    class Config:
        populate_by_name = True


class VehicleEnvelope(BaseModel):
    success: bool = True
    message: str | None = None
    vehiculo: VehicleResponse


class VehicleListResponse(BaseModel):
    success: bool = True
    vehiculos: list[VehicleResponse]


def generate_vehicle_id() -> str:
    return f'veh_{int(time.time() * 1000)}_{random.randint(100, 999)}'


def to_vehicle_response(vehicle: Vehicle) -> VehicleResponse:
    return VehicleResponse(
        id_vehiculo=vehicle.id_vehiculo,
        marca=vehicle.marca,
        modelo=vehicle.modelo,
        anio=vehicle.anio,
        precio=float(vehicle.precio),
        km=vehicle.km,
        stock=vehicle.stock,
        color=vehicle.color,
        fotos=vehicle.photo_urls,
        descripcion=vehicle.descripcion,
        activo=bool(vehicle.activo),
        fecha_creacion=vehicle.fecha_creacion,
        fecha_actualizacion=vehicle.fecha_actualizacion,
    )


def validate_vehicle_values(data: VehicleFields, today: date | None = None) -> None:
    """Range checks shared by create and update; unset fields are skipped."""
    today = today or date.today()

    if data.anio is not None and not MIN_VEHICLE_YEAR <= data.anio <= today.year + 1:
        raise bad_request('El año debe ser válido')

    if data.precio is not None and data.precio <= 0:
        raise bad_request('El precio debe ser mayor a 0')

    if data.km is not None and data.km < 0:
        raise bad_request('El kilometraje no puede ser negativo')

    if data.stock is not None and data.stock < 0:
        raise bad_request('El stock no puede ser negativo')


def get_active_vehicle(db: Session, vehicle_id: str) -> Vehicle:
    vehicle = db.query(Vehicle).filter(
        Vehicle.id_vehiculo == vehicle_id,
        Vehicle.activo.is_(True),
    ).first()

    if vehicle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=VEHICLE_NOT_FOUND)

    return vehicle


@router.get('/vehiculos', response_model=VehicleListResponse)
def list_vehicles(db: Session = Depends(get_db)):
    try:
        vehicles = db.query(Vehicle).filter(
            Vehicle.activo.is_(True),
        ).order_by(Vehicle.fecha_creacion.desc()).all()
    except SQLAlchemyError as exc:
        logger.exception('Listing vehicles failed')
        raise server_error() from exc

    return VehicleListResponse(vehiculos=[to_vehicle_response(vehicle) for vehicle in vehicles])


@router.get('/vehiculos/{vehicle_id}', response_model=VehicleEnvelope)
def get_vehicle(vehicle_id: str, db: Session = Depends(get_db)):
    try:
        vehicle = get_active_vehicle(db, vehicle_id)
    except SQLAlchemyError as exc:
        logger.exception('Loading vehicle %s failed', vehicle_id)
        raise server_error() from exc

    return VehicleEnvelope(vehiculo=to_vehicle_response(vehicle))


@router.post('/vehiculos', response_model=VehicleEnvelope, status_code=status.HTTP_201_CREATED)
def create_vehicle(data: CreateVehicleRequest, db: Session = Depends(get_db)):
    if not data.marca or not data.modelo or not data.anio or not data.precio or data.km is None:
        raise bad_request('Todos los campos obligatorios deben ser completados')

    if data.es_0km and (not data.stock or data.stock <= 0):
        raise bad_request('Stock requerido para vehículos 0 km')

    validate_vehicle_values(data)

    try:
        vehicle_id = data.id_vehiculo or generate_vehicle_id()
        if db.query(Vehicle.id_vehiculo).filter(Vehicle.id_vehiculo == vehicle_id).first():
            vehicle_id = generate_vehicle_id()

        vehicle = Vehicle(
            id_vehiculo=vehicle_id,
            marca=data.marca,
            modelo=data.modelo,
            anio=data.anio,
            precio=data.precio,
            km=data.km,
            stock=data.stock or 0,
            color=data.color,
            descripcion=data.descripcion or '',
            activo=True,
        )
        vehicle.photo_urls = data.fotos
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Creating vehicle failed')
        raise server_error() from exc

    logger.info('Created vehicle %s (%s %s)', vehicle.id_vehiculo, vehicle.marca, vehicle.modelo)
    return VehicleEnvelope(
        message='Vehículo registrado exitosamente',
        vehiculo=to_vehicle_response(vehicle),
    )


@router.put('/vehiculos/{vehicle_id}', response_model=VehicleEnvelope)
def update_vehicle(
    vehicle_id: str,
    data: UpdateVehicleRequest,
    admin_dni: str = Query(..., alias='adminDni'),
    db: Session = Depends(get_db),
):
    validate_vehicle_values(data)

    try:
        require_admin(db, admin_dni.strip())

        vehicle = db.query(Vehicle).filter(Vehicle.id_vehiculo == vehicle_id).first()
        if vehicle is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=VEHICLE_NOT_FOUND)

        changes = data.model_dump(exclude_unset=True)
        photos = changes.pop('fotos', None)
        for field_name, value in changes.items():
            if value is None and field_name not in ('color', 'descripcion'):
                continue
            setattr(vehicle, field_name, value)
        if 'fotos' in data.model_fields_set:
            vehicle.photo_urls = photos

        db.commit()
        db.refresh(vehicle)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Updating vehicle %s failed', vehicle_id)
        raise server_error() from exc

    return VehicleEnvelope(
        message='Vehículo actualizado exitosamente',
        vehiculo=to_vehicle_response(vehicle),
    )


@router.delete('/vehiculos/{vehicle_id}', response_model=MessageResponse)
def deactivate_vehicle(
    vehicle_id: str,
    admin_dni: str = Query(..., alias='adminDni'),
    db: Session = Depends(get_db),
):
    try:
        require_admin(db, admin_dni.strip())
        vehicle = get_active_vehicle(db, vehicle_id)
        vehicle.activo = False
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Deactivating vehicle %s failed', vehicle_id)
        raise server_error() from exc

    logger.info('Vehicle %s deactivated by %s', vehicle_id, admin_dni)
    return MessageResponse(message='Vehículo eliminado exitosamente')
