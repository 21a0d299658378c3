# En modelos/salon_model.py

from sqlalchemy import Column, Integer, String, Boolean
from config.bd import Base

class Salon(Base):
    __tablename__ = "salones"

    id = Column(String(40), primary_key=True)
    nombre = Column(String(120), nullable=False)
    capacidad = Column(Integer, nullable=False, default=0)
    habilitado = Column(Boolean, nullable=False, default=True)
    sede = Column(String(120), nullable=True, default="")
    # ej: "CONFIRM;12:00-13:00"
    restriccion = Column(String(255), nullable=True, default="")

    # Alcance (tenant) que administra el salón
    administracion_id = Column(String(20), nullable=False, default="1")
    requiere_conserje = Column(Boolean, nullable=False, default=True)

    def a_dict(self):
        return {
            "id": self.id,
            "nombre": self.nombre,
            "capacidad": int(self.capacidad or 0),
            "habilitado": bool(self.habilitado),
            "sede": self.sede or "",
            "restriccion": (self.restriccion or "").strip(),
            "administracion_id": self.administracion_id,
            "requiere_conserje": bool(self.requiere_conserje),
        }
