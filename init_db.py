import logging
import os
import time

from sqlalchemy.exc import OperationalError

from config.bd import engine, Base, SessionLocal
# Importa los modelos para que create_all los registre
from modelos.bloqueo_model import Bloqueo  # noqa: F401
from modelos.config_model import ConfigEntrada
from modelos.conserje_model import Conserje  # noqa: F401
from modelos.reserva_model import Reserva  # noqa: F401
from modelos.salon_model import Salon  # noqa: F401
from modelos.usuario_model import Usuario, ROL_ADMIN, ESTADO_ACTIVO
from logica.configuracion import (
    TABLA_GLOBAL, HORARIO_INICIO_DEFECTO, HORARIO_FIN_DEFECTO,
    DURACION_MIN_DEFECTO, DURACION_MAX_DEFECTO, DURACION_STEP_DEFECTO,
)

logger = logging.getLogger(__name__)

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_NOMBRE = os.getenv("ADMIN_NOMBRE", "Administración General")

CONFIG_INICIAL = {
    "HORARIO_INICIO": HORARIO_INICIO_DEFECTO,
    "HORARIO_FIN": HORARIO_FIN_DEFECTO,
    "DURATION_MIN": str(DURACION_MIN_DEFECTO),
    "DURATION_MAX": str(DURACION_MAX_DEFECTO),
    "DURATION_STEP": str(DURACION_STEP_DEFECTO),
    "ADMIN_EMAILS": ADMIN_EMAIL,
    "CONSERJERIA_EMAILS": "",
    "MAIL_SENDER_NAME": "Reserva de Salones",
    "MAIL_REPLY_TO": "",
    "ADMIN_CONTACT_NAME": "Administración",
    "ADMIN_CONTACT_EMAIL": ADMIN_EMAIL,
    "ADMIN_CONTACT_EXTENSION": "",
    "PUBLIC_WEBAPP_URL": os.getenv("PUBLIC_WEBAPP_URL", ""),
    "ADMIN_PANEL_URL": "",
}


def esperar_base_de_datos(max_intentos=10, espera=3):
    for intento in range(1, max_intentos + 1):
        try:
            with engine.connect():
                pass
            logger.info("Conexión con la base de datos exitosa")
            return True
        except OperationalError:
            logger.warning("La base de datos no está lista (intento %d/%d). Reintentando en %ds...",
                           intento, max_intentos, espera)
            time.sleep(espera)
    return False


def sembrar(db):
    """Inserta la configuración global y el administrador general si no existen."""
    for clave, valor in CONFIG_INICIAL.items():
        if db.get(ConfigEntrada, (TABLA_GLOBAL, clave)) is None:
            db.add(ConfigEntrada(tabla=TABLA_GLOBAL, clave=clave, valor=valor))
            logger.info("  -> Config %s sembrada", clave)

    if db.get(Usuario, ADMIN_EMAIL.lower()) is None:
        db.add(Usuario(
            email=ADMIN_EMAIL.lower(), nombre=ADMIN_NOMBRE, departamento="",
            rol=ROL_ADMIN, prioridad=0, prioridad_salones="", estado=ESTADO_ACTIVO,
            extension="", administracion_id="1",
        ))
        logger.info("  -> Administrador %s creado", ADMIN_EMAIL)
    db.commit()


def inicializar_base_de_datos():
    logger.info("Iniciando inicialización de la base de datos")

    if not esperar_base_de_datos():
        logger.error("No se pudo conectar a la base de datos. Abortando.")
        return False

    Base.metadata.create_all(bind=engine)
    logger.info("Tablas creadas (o ya existían)")

    db = SessionLocal()
    try:
        sembrar(db)
    except Exception:
        db.rollback()
        logger.exception("Error al sembrar datos iniciales")
        return False
    finally:
        db.close()
    logger.info("Base de datos inicializada")
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    inicializar_base_de_datos()
