from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from config.bd import Base

class Bloqueo(Base):
    """Fila de candado por recurso, ej. 'salon:S-01:2025-11-06'."""
    __tablename__ = "bloqueos"

    clave = Column(String(120), primary_key=True)
    tomado_en = Column(DateTime, nullable=False, default=func.now())
