from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, Index
from sqlalchemy.sql import func
from config.bd import Base

ESTADO_PENDIENTE = "PENDIENTE"
ESTADO_APROBADA = "APROBADA"
ESTADO_CANCELADA = "CANCELADA"

PUBLICO_INTERNO = "INTERNO"
PUBLICO_EXTERNO = "EXTERNO"
PUBLICO_MIXTO = "MIXTO"


class Reserva(Base):
    __tablename__ = "reservas"
    __table_args__ = (
        Index("ix_reservas_salon_fecha", "salon_id", "fecha"),
    )

    # --- El orden de columnas es el de la fila de "Reservas" ---
    id = Column(String(40), primary_key=True)
    token = Column(String(64), nullable=False, unique=True)
    estado = Column(String(20), nullable=False)

    fecha = Column(Date, nullable=False)
    # 'HH:MM', intervalo semiabierto [inicio, fin)
    hora_inicio = Column(String(5), nullable=False)
    hora_fin = Column(String(5), nullable=False)

    salon_id = Column(String(40), nullable=False)
    salon_nombre = Column(String(120), nullable=False, default="")
    cant_personas = Column(Integer, nullable=False, default=0)

    solicitante_email = Column(String(160), nullable=False)
    solicitante_nombre = Column(String(120), nullable=False, default="")
    departamento = Column(String(120), nullable=False, default="")
    extension = Column(String(20), nullable=False, default="")
    evento_nombre = Column(String(200), nullable=False, default="")
    publico_tipo = Column(String(20), nullable=False, default="")

    # Prioridad capturada al crear; nunca se recalcula
    prioridad = Column(Integer, nullable=False, default=0)

    conserje_requerido = Column(Boolean, nullable=False, default=False)
    conserje_notificado = Column(Boolean, nullable=False, default=False)

    creado_en = Column(DateTime, nullable=False, default=func.now())
    actualizado_en = Column(DateTime, nullable=False, default=func.now())
    cancelado_por = Column(String(160), nullable=False, default="")
    cancelado_motivo = Column(String(255), nullable=False, default="")
    conserje_codigo_asignado = Column(String(20), nullable=False, default="")
    administracion_id = Column(String(20), nullable=False, default="1")

    def a_dict(self):
        return {
            "id": self.id,
            "token": self.token,
            "estado": self.estado,
            "fecha": self.fecha.strftime("%Y-%m-%d") if self.fecha else "",
            "hora_inicio": self.hora_inicio,
            "hora_fin": self.hora_fin,
            "salon_id": self.salon_id,
            "salon_nombre": self.salon_nombre,
            "cant_personas": int(self.cant_personas or 0),
            "solicitante_email": self.solicitante_email,
            "solicitante_nombre": self.solicitante_nombre,
            "departamento": self.departamento,
            "extension": self.extension,
            "evento_nombre": self.evento_nombre,
            "publico_tipo": self.publico_tipo,
            "prioridad": int(self.prioridad or 0),
            "conserje_requerido": bool(self.conserje_requerido),
            "conserje_notificado": bool(self.conserje_notificado),
            "creado_en": self.creado_en.strftime("%Y-%m-%d %H:%M:%S") if self.creado_en else "",
            "actualizado_en": self.actualizado_en.strftime("%Y-%m-%d %H:%M:%S") if self.actualizado_en else "",
            "cancelado_por": self.cancelado_por,
            "cancelado_motivo": self.cancelado_motivo,
            "conserje_codigo_asignado": self.conserje_codigo_asignado,
            "administracion_id": self.administracion_id,
        }
