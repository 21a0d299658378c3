import logging
import re

from modelos.usuario_model import Usuario, ROL_ADMIN, ROL_SOLICITANTE, ESTADO_ACTIVO, ESTADO_PENDIENTE
from logica.alcance import normalizar_alcance, SIN_ALCANCE, SUPER_ALCANCE
from logica.errores import ErrorNoAutorizado, ErrorValidacion

logger = logging.getLogger(__name__)


def normalizar_email(email):
    return str(email or "").strip().lower()


def obtener_usuario(db, email):
    """Usuario registrado o None."""
    email = normalizar_email(email)
    if not email:
        return None
    return db.get(Usuario, email)


def usuario_o_anonimo(db, email):
    """
    Devuelve el usuario de la tabla o uno transitorio (no persistido) sin rol
    ni prioridad, para quien aún no ha solicitado acceso.
    """
    usuario = obtener_usuario(db, email)
    if usuario is not None:
        return usuario
    return Usuario(
        email=normalizar_email(email), nombre="", departamento="", rol="",
        prioridad=0, prioridad_salones="", estado="", extension="",
        administracion_id=SIN_ALCANCE,
    )


def alcance_de(usuario):
    if usuario is None:
        return SIN_ALCANCE
    return normalizar_alcance(usuario.administracion_id)


def es_activo(usuario):
    return usuario is not None and (usuario.estado or "").upper() == ESTADO_ACTIVO


def es_admin(usuario, config):
    """ADMIN + ACTIVO, o listado en ADMIN_EMAILS y ACTIVO."""
    if not es_activo(usuario):
        return False
    if (usuario.rol or "").upper() == ROL_ADMIN:
        return True
    admins = [e.lower() for e in config.lista(SUPER_ALCANCE, "ADMIN_EMAILS")]
    return normalizar_email(usuario.email) in admins


def es_admin_general(usuario, config):
    return es_admin(usuario, config) and alcance_de(usuario) == SUPER_ALCANCE


def puede_reservar(usuario):
    """Solo un usuario registrado, ACTIVO y con rol SOLICITANTE o ADMIN opera reservas."""
    return es_activo(usuario) and (usuario.rol or "").upper() in (ROL_SOLICITANTE, ROL_ADMIN)


def verificar_puede_reservar(usuario):
    if not puede_reservar(usuario):
        raise ErrorNoAutorizado("Tu usuario no está activo. Solicita acceso a la administración.")


def solicitar_acceso(db, notificador, email, nombre, departamento, extension):
    """Crea o reabre la fila del usuario en estado PENDIENTE y avisa a los administradores."""
    email = normalizar_email(email)
    if not email:
        raise ErrorValidacion("No se pudo identificar tu correo institucional.")

    nombre = str(nombre or "").strip()
    departamento = str(departamento or "").strip()
    extension = str(extension or "").strip()
    if not nombre or not departamento or not re.fullmatch(r"\d+", extension):
        raise ErrorValidacion("Completa todos los campos. La extensión debe ser solo dígitos.")

    usuario = db.get(Usuario, email)
    creado = usuario is None
    if creado:
        usuario = Usuario(email=email, rol="", prioridad=0, prioridad_salones="",
                          administracion_id=SUPER_ALCANCE)
        db.add(usuario)
    # rol y prioridad los define la administración
    usuario.nombre = nombre
    usuario.departamento = departamento
    usuario.extension = extension
    usuario.estado = ESTADO_PENDIENTE
    db.commit()
    logger.info("Solicitud de acceso registrada para %s (nuevo=%s)", email, creado)

    notificador.solicitud_acceso(email, nombre, departamento, extension)
    return {"ok": True, "created": creado, "updated": not creado}
