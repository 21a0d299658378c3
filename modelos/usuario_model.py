from sqlalchemy import Column, Integer, String
from config.bd import Base

ROL_SOLICITANTE = "SOLICITANTE"
ROL_ADMIN = "ADMIN"

ESTADO_PENDIENTE = "PENDIENTE"
ESTADO_ACTIVO = "ACTIVO"
ESTADO_INACTIVO = "INACTIVO"


class Usuario(Base):
    __tablename__ = "usuarios"

    # La identidad llega del proveedor externo: solo el correo
    email = Column(String(160), primary_key=True)
    nombre = Column(String(120), nullable=False, default="")
    departamento = Column(String(120), nullable=False, default="")
    rol = Column(String(20), nullable=False, default="")
    prioridad = Column(Integer, nullable=False, default=0)
    # Códigos de salón separados por ';' donde aplica la prioridad (vacío = todos)
    prioridad_salones = Column(String(255), nullable=False, default="")
    estado = Column(String(20), nullable=False, default="")
    extension = Column(String(20), nullable=False, default="")
    administracion_id = Column(String(20), nullable=False, default="1")

    def a_dict(self):
        return {
            "email": self.email,
            "nombre": self.nombre or "",
            "departamento": self.departamento or "",
            "rol": (self.rol or "").upper(),
            "prioridad": int(self.prioridad or 0),
            "prioridad_salones": self.prioridad_salones or "",
            "estado": (self.estado or "").upper(),
            "extension": self.extension or "",
            "administracion_id": self.administracion_id,
        }
