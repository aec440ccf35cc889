"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from dealership.database import Base

STATUS_PENDING = "pendiente"
STATUS_ACCEPTED = "aceptada"
STATUS_REJECTED = "rechazada"


def build_slot_key(fecha_hora: datetime, id_vehiculo: str | None) -> str:
    return f"{id_vehiculo or '*'}|{fecha_hora:%Y-%m-%d %H:%M}"


class Appointment(Base):
    """A client's visit request, optionally tied to one vehicle."""
    __tablename__ = "citas"
    __table_args__ = (
        Index("uq_citas_slot_key", "slot_key", unique=True),
        Index("idx_citas_fecha_hora", "fecha_hora"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    dni = Column(String(20), ForeignKey("usuarios.dni"), nullable=False)
    id_vehiculo = Column("idVehiculo", String(50), ForeignKey("vehiculos.idVehiculo"), nullable=True)
    fecha_hora = Column(DateTime, nullable=False)
    motivo = Column(String(255), nullable=False)
    estado = Column(String(50), default=STATUS_PENDING, nullable=False)
    admin_dni = Column(String(20), nullable=True)
    admin_message = Column(Text, nullable=True)
    slot_key = Column(String(80), nullable=True)
    creado_en = Column(DateTime, default=datetime.now)
    actualizado_en = Column(DateTime, nullable=True)
