from sqlalchemy import Column, String
from config.bd import Base

class ConfigEntrada(Base):
    __tablename__ = "configuracion"

    # 'Config' es la tabla global; 'Config2', 'Config3'... las de cada administración
    tabla = Column(String(40), primary_key=True)
    clave = Column(String(80), primary_key=True)
    valor = Column(String(500), nullable=False, default="")
