"""Vehicle model definitions."""

import json
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text
from dealership.database import Base


class Vehicle(Base):
    """A catalog vehicle. Photos are kept as a JSON-encoded list of URLs."""
    __tablename__ = "vehiculos"

    id_vehiculo = Column("idVehiculo", String(50), primary_key=True)
    marca = Column(String(100), nullable=False)
    modelo = Column(String(100), nullable=False)
    anio = Column(Integer, nullable=False)
    precio = Column(Numeric(12, 2), nullable=False)
    km = Column(Integer, nullable=False)
    stock = Column(Integer, default=1)
    color = Column(String(30), nullable=True)
    fotos = Column(Text)
    descripcion = Column(Text)
    activo = Column(Boolean, default=True, nullable=False)
    fecha_creacion = Column(DateTime, default=datetime.now)
    fecha_actualizacion = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def photo_urls(self) -> list[str]:
        if not self.fotos:
            return []
        return json.loads(self.fotos)

    @photo_urls.setter
    def photo_urls(self, urls: list[str] | None) -> None:
        self.fotos = json.dumps(list(urls or []))
