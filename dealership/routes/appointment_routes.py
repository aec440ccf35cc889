import logging
import re
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dealership.database import get_db
from dealership.models.appointment import (
    STATUS_ACCEPTED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Appointment,
    build_slot_key,
)
from dealership.models.user import User
from dealership.models.vehicle import Vehicle
from dealership.routes.common import (
    bad_request,
    ensure_database_ready,
    require_admin,
    server_error,
    strip_optional,
)

router = APIRouter(tags=['citas'])

logger = logging.getLogger(__name__)

SLOT_TIMES = (
    time(9, 0),
    time(10, 0),
    time(11, 0),
    time(12, 0),
    time(15, 0),
    time(16, 0),
    time(17, 0),
)
# (first start, last start); the last start is only valid on the hour.
BOOKING_WINDOWS = (
    (time(9, 0), time(13, 0)),
    (time(15, 0), time(18, 0)),
)
DATE_PATTERN = re.compile(r'^[0-9]{4}-[0-9]{2}-[0-9]{2}$')
TIME_PATTERN = re.compile(r'^[0-9]{1,2}:[0-9]{2}$')
STATUS_ALIASES = {
    'cancelada': STATUS_REJECTED,
    'completada': STATUS_ACCEPTED,
    'accepted': STATUS_ACCEPTED,
    'rejected': STATUS_REJECTED,
}
TERMINAL_STATUSES = (STATUS_ACCEPTED, STATUS_REJECTED)
SLOT_TAKEN = 'El horario seleccionado ya está ocupado'


class CreateAppointmentRequest(BaseModel):
    dni: str | None = None
    id_vehiculo: str | None = Field(default=None, alias='idVehiculo')
    fecha: str | None = None
    hora: str | None = None
    motivo: str | None = None

    class Config:
        populate_by_name = True

    @field_validator('dni', 'id_vehiculo', 'fecha', 'hora', 'motivo', mode='before')
    @classmethod
    def normalize_text(cls, value) -> str | None:
        return strip_optional(value)


class UpdateAppointmentStatusRequest(BaseModel):
    estado: str | None = None
    admin_dni: str | None = Field(default=None, alias='adminDni')
    admin_message: str | None = Field(default=None, alias='adminMessage')

    class Config:
        populate_by_name = True

    @field_validator('estado', 'admin_dni', 'admin_message', mode='before')
    @classmethod
    def normalize_text(cls, value) -> str | None:
        return strip_optional(value)


class SlotAvailability(BaseModel):
    time: str
    available: bool


class AvailabilityResponse(BaseModel):
    success: bool = True
    date: date
    slots: list[SlotAvailability]


class AppointmentResponse(BaseModel):
    id: int
    dni: str
    nombre: str | None = None
    apellido: str | None = None
    id_vehiculo: str | None = Field(default=None, alias='idVehiculo')
    marca: str | None = None
    modelo: str | None = None
    anio: int | None = None
    fecha_hora: datetime
    motivo: str
    estado: str
    admin_dni: str | None = None
    admin_message: str | None = None
    creado_en: datetime | None = None
    actualizado_en: datetime | None = None

    class Config:
        populate_by_name = True


class AppointmentEnvelope(BaseModel):
    success: bool = True
    message: str
    cita: AppointmentResponse


class AppointmentListResponse(BaseModel):
    success: bool = True
    citas: list[AppointmentResponse]


def parse_calendar_date(value: str | None) -> date:
    if not value:
        raise bad_request('Se requiere el parámetro date (YYYY-MM-DD)')

    if not DATE_PATTERN.match(value):
        raise bad_request('Formato de fecha inválido. Use YYYY-MM-DD')

    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError as exc:
        raise bad_request('Formato de fecha inválido. Use YYYY-MM-DD') from exc


def parse_booking_datetime(fecha: str, hora: str) -> datetime:
    if not DATE_PATTERN.match(fecha) or not TIME_PATTERN.match(hora):
        raise bad_request('Fecha u hora inválida')

    try:
        return datetime.strptime(f'{fecha} {hora}', '%Y-%m-%d %H:%M')
    except ValueError as exc:
        raise bad_request('Fecha u hora inválida') from exc


def is_within_booking_hours(slot_time: time) -> bool:
    for window_start, window_end in BOOKING_WINDOWS:
        if window_start <= slot_time < window_end:
            return True
        if slot_time.hour == window_end.hour and slot_time.minute == 0:
            return True
    return False


def validate_booking_datetime(start: datetime) -> None:
    if start.weekday() >= 5:
        raise bad_request('Las citas solo se pueden agendar de lunes a viernes')

    if not is_within_booking_hours(start.time()):
        raise bad_request('Horario inválido. Disponibles: 09:00-13:00 y 15:00-18:00')


def slot_collision_query(db: Session, start: datetime, vehicle_id: str | None):
    query = db.query(Appointment.id).filter(Appointment.fecha_hora == start)
    if vehicle_id:
        query = query.filter(Appointment.id_vehiculo == vehicle_id)
    return query


def compute_availability(db: Session, slot_date: date, vehicle_id: str | None = None) -> list[SlotAvailability]:
    candidates = [datetime.combine(slot_date, slot_time) for slot_time in SLOT_TIMES]

    query = db.query(Appointment.fecha_hora).filter(Appointment.fecha_hora.in_(candidates))
    if vehicle_id:
        query = query.filter(Appointment.id_vehiculo == vehicle_id)

    taken = {booked_at.replace(second=0, microsecond=0) for (booked_at,) in query.all()}

    return [
        SlotAvailability(time=candidate.strftime('%H:%M'), available=candidate not in taken)
        for candidate in candidates
    ]


def appointment_rows_query(db: Session):
    return db.query(
        Appointment,
        User.nombre,
        User.apellido,
        Vehicle.marca,
        Vehicle.modelo,
        Vehicle.anio,
    ).join(
        User, Appointment.dni == User.dni,
    ).outerjoin(
        Vehicle, Appointment.id_vehiculo == Vehicle.id_vehiculo,
    )


def to_appointment_response(row) -> AppointmentResponse:
    appointment, nombre, apellido, marca, modelo, anio = row
    return AppointmentResponse(
        id=appointment.id,
        dni=appointment.dni,
        nombre=nombre,
        apellido=apellido,
        id_vehiculo=appointment.id_vehiculo,
        marca=marca,
        modelo=modelo,
        anio=anio,
        fecha_hora=appointment.fecha_hora,
        motivo=appointment.motivo,
        estado=appointment.estado,
        admin_dni=appointment.admin_dni,
        admin_message=appointment.admin_message,
        creado_en=appointment.creado_en,
        actualizado_en=appointment.actualizado_en,
    )


def load_appointment_response(db: Session, appointment_id: int) -> AppointmentResponse | None:
    row = appointment_rows_query(db).filter(Appointment.id == appointment_id).first()
    return to_appointment_response(row) if row else None


def normalize_target_status(value: str) -> str:
    normalized = value.lower()
    normalized = STATUS_ALIASES.get(normalized, normalized)

    if normalized not in TERMINAL_STATUSES:
        raise bad_request('Estado inválido. Use: aceptada o rechazada')

    return normalized


@router.get('/citas/availability', response_model=AvailabilityResponse)
def get_availability(
    date_param: str | None = Query(default=None, alias='date'),
    vehicle_id: str | None = Query(default=None, alias='idVehiculo'),
    db: Session = Depends(get_db),
):
    slot_date = parse_calendar_date(strip_optional(date_param))
    vehicle_id = strip_optional(vehicle_id)

    ensure_database_ready()

    try:
        slots = compute_availability(db, slot_date, vehicle_id)
    except SQLAlchemyError as exc:
        logger.exception('Availability lookup failed for %s', slot_date)
        raise server_error() from exc

    return AvailabilityResponse(date=slot_date, slots=slots)


@router.get('/citas', response_model=AppointmentListResponse)
def list_appointments(
    dni: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    dni = strip_optional(dni)

    ensure_database_ready()

    try:
        query = appointment_rows_query(db)
        if dni:
            query = query.filter(Appointment.dni == dni)
        rows = query.order_by(Appointment.fecha_hora.desc()).all()
    except SQLAlchemyError as exc:
        logger.exception('Listing appointments failed')
        raise server_error() from exc

    return AppointmentListResponse(citas=[to_appointment_response(row) for row in rows])


@router.post('/citas', response_model=AppointmentEnvelope, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    if not data.dni or not data.fecha or not data.hora or not data.motivo:
        raise bad_request('Todos los campos obligatorios (dni, fecha, hora, motivo) deben ser completados')

    start = parse_booking_datetime(data.fecha, data.hora)
    validate_booking_datetime(start)

    ensure_database_ready()

    try:
        if db.query(User.dni).filter(User.dni == data.dni).first() is None:
            raise bad_request('Usuario no encontrado')

        if data.id_vehiculo:
            vehicle = db.query(Vehicle).filter(Vehicle.id_vehiculo == data.id_vehiculo).first()
            if vehicle is None or not vehicle.activo:
                raise bad_request('Vehículo no disponible')

        if slot_collision_query(db, start, data.id_vehiculo).first() is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_TAKEN)

        appointment = Appointment(
            dni=data.dni,
            id_vehiculo=data.id_vehiculo,
            fecha_hora=start,
            motivo=data.motivo,
            estado=STATUS_PENDING,
            slot_key=build_slot_key(start, data.id_vehiculo),
        )
        db.add(appointment)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_TAKEN) from exc

        logger.info('Booked appointment %s for %s at %s', appointment.id, data.dni, start)
        cita = load_appointment_response(db, appointment.id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Creating appointment failed for %s', data.dni)
        raise server_error() from exc

    return AppointmentEnvelope(message='Cita agendada', cita=cita)


@router.patch('/citas/{appointment_id}', response_model=AppointmentEnvelope)
@router.put('/citas/{appointment_id}', response_model=AppointmentEnvelope)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    db: Session = Depends(get_db),
):
    if not data.estado or not data.admin_dni:
        raise bad_request('Faltan datos: estado y adminDni son requeridos')

    target_status = normalize_target_status(data.estado)

    ensure_database_ready()

    try:
        require_admin(db, data.admin_dni)

        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if appointment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Cita no encontrada')

        if appointment.estado != STATUS_PENDING:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'La cita ya fue {appointment.estado}',
            )

        appointment.estado = target_status
        appointment.admin_dni = data.admin_dni
        appointment.admin_message = data.admin_message if target_status == STATUS_REJECTED else None
        appointment.actualizado_en = datetime.now()
        db.commit()

        logger.info('Appointment %s %s by %s', appointment_id, target_status, data.admin_dni)
        cita = load_appointment_response(db, appointment_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Updating appointment %s failed', appointment_id)
        raise server_error() from exc

    if cita is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Error al recuperar la cita actualizada',
        )

    return AppointmentEnvelope(message=f'Cita {target_status} exitosamente', cita=cita)
