"""
Fixtures comunes: base SQLite en memoria, despachador de correo que solo
registra y un reloj fijo.
"""
import os

# Antes de importar config.bd: nunca apuntar a la base real
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUN_INIT_DB"] = "false"

from datetime import date, datetime

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.bd import Base
from modelos.bloqueo_model import Bloqueo  # noqa: F401
from modelos.config_model import ConfigEntrada
from modelos.conserje_model import Conserje
from modelos.reserva_model import Reserva, ESTADO_APROBADA
from modelos.salon_model import Salon
from modelos.usuario_model import Usuario, ROL_ADMIN, ROL_SOLICITANTE, ESTADO_ACTIVO
from logica.configuracion import ResolvedorConfig
from logica.notificaciones import Despachador, Notificador
from logica.salones import RegistroSalones
from logica.reservas.disponibilidad import MotorDisponibilidad
from logica.reservas.gestor import GestorReservas

FECHA = date(2025, 11, 6)
AHORA = datetime(2025, 11, 3, 8, 0)


class DespachadorFalso(Despachador):
    """Renderiza las plantillas de verdad pero guarda el payload en vez de enviarlo."""

    def __init__(self, fallar=False):
        super().__init__(api_url="http://correo.test/emails", api_key="k", remitente="no-reply@test.org")
        self.fallar = fallar
        self.enviados = []

    def _entregar(self, payload):
        if self.fallar:
            raise httpx.ConnectError("sin red")
        self.enviados.append(payload)
        return True

    def asuntos(self):
        return [p["subject"] for p in self.enviados]

    def para(self, email):
        return [p for p in self.enviados if email in p["to"]]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def despachador():
    return DespachadorFalso()


@pytest.fixture
def reloj():
    return lambda: AHORA


@pytest.fixture
def config(db):
    return ResolvedorConfig(db)


@pytest.fixture
def salones(db, config):
    return RegistroSalones(db, config)


@pytest.fixture
def notificador(despachador, config):
    return Notificador(despachador, config)


@pytest.fixture
def gestor(db, salones, config, notificador, reloj):
    return GestorReservas(db, salones, config, notificador, reloj=reloj)


@pytest.fixture
def motor(db, salones, config):
    return MotorDisponibilidad(db, salones, config)


# ---------------- ayudantes de siembra ----------------

def sembrar_config(db, tabla="Config", **valores):
    for clave, valor in valores.items():
        db.merge(ConfigEntrada(tabla=tabla, clave=clave, valor=valor))
    db.commit()


def crear_salon(db, id="S-01", nombre="Salón A", capacidad=30, restriccion="",
                administracion_id="1", requiere_conserje=True, habilitado=True):
    salon = Salon(id=id, nombre=nombre, capacidad=capacidad, habilitado=habilitado, sede="Central",
                  restriccion=restriccion, administracion_id=administracion_id,
                  requiere_conserje=requiere_conserje)
    db.add(salon)
    db.commit()
    return salon


def crear_usuario(db, email, prioridad=1, rol=ROL_SOLICITANTE, estado=ESTADO_ACTIVO,
                  prioridad_salones="", administracion_id="1", nombre=None):
    usuario = Usuario(email=email, nombre=nombre or email.split("@")[0].title(), departamento="TI",
                      rol=rol, prioridad=prioridad, prioridad_salones=prioridad_salones,
                      estado=estado, extension="100", administracion_id=administracion_id)
    db.add(usuario)
    db.commit()
    return usuario


def crear_admin(db, email="admin@test.org", administracion_id="1", prioridad=0):
    return crear_usuario(db, email, prioridad=prioridad, rol=ROL_ADMIN, administracion_id=administracion_id)


def crear_reserva(db, id, hora_inicio, hora_fin, prioridad=1, estado=ESTADO_APROBADA, publico_tipo="INTERNO",
                  salon_id="S-01", fecha=FECHA, email="otro@test.org", conserje_requerido=False,
                  conserje_codigo="", administracion_id="1"):
    reserva = Reserva(
        id=id, token="tok-" + id, estado=estado, fecha=fecha, hora_inicio=hora_inicio, hora_fin=hora_fin,
        salon_id=salon_id, salon_nombre="Salón A", cant_personas=10, solicitante_email=email,
        solicitante_nombre="Otro", departamento="RRHH", extension="200", evento_nombre="Evento " + id,
        publico_tipo=publico_tipo, prioridad=prioridad, conserje_requerido=conserje_requerido,
        conserje_notificado=False, creado_en=AHORA, actualizado_en=AHORA, cancelado_por="",
        cancelado_motivo="", conserje_codigo_asignado=conserje_codigo, administracion_id=administracion_id,
    )
    db.add(reserva)
    db.commit()
    return reserva


def crear_conserje(db, codigo="C-00001", nombre="Pedro", email="pedro@test.org", activo=True):
    conserje = Conserje(codigo=codigo, nombre=nombre, email=email, telefono="809", activo=activo)
    db.add(conserje)
    db.commit()
    return conserje


def payload(**extra):
    datos = {
        "salon_id": "S-01",
        "fecha": FECHA.isoformat(),
        "hora_inicio": "10:00",
        "duracion_min": 60,
        "cant_personas": 10,
        "evento_nombre": "Reunión",
        "publico_tipo": "INTERNO",
        "extension": "123",
    }
    datos.update(extra)
    return datos
