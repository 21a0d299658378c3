from sqlalchemy import Column, String, Boolean
from config.bd import Base

class Conserje(Base):
    __tablename__ = "conserjes"

    codigo = Column(String(20), primary_key=True)
    nombre = Column(String(120), nullable=False, default="")
    email = Column(String(160), nullable=False, default="")
    telefono = Column(String(40), nullable=False, default="")
    # Borrado lógico: nunca se eliminan filas
    activo = Column(Boolean, nullable=False, default=True)

    def a_dict(self):
        return {
            "codigo": self.codigo,
            "nombre": self.nombre,
            "email": self.email,
            "telefono": self.telefono,
            "activo": bool(self.activo),
        }
