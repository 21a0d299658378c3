import logging

from modelos.usuario_model import Usuario
from logica.alcance import filtrar_query, normalizar_alcance, verificar_alcance
from logica.errores import ErrorValidacion
from logica.prioridad import parsear_salones_prioridad
from logica.usuarios import normalizar_email

logger = logging.getLogger(__name__)


def listar_usuarios(db, alcance):
    query = filtrar_query(db.query(Usuario), Usuario.administracion_id, alcance)
    datos = []
    for usuario in query.order_by(Usuario.email).all():
        fila = usuario.a_dict()
        fila["prioridad_salones_list"] = parsear_salones_prioridad(usuario.prioridad_salones)
        datos.append(fila)
    return datos


def _salones_prioridad(datos):
    valor = datos.get("prioridad_salones", datos.get("prioridadSalones", ""))
    if isinstance(valor, (list, tuple)):
        valor = ";".join(str(v) for v in valor)
    return ";".join(parsear_salones_prioridad(valor))


def guardar_usuario(db, alcance, datos):
    """Crea o actualiza un usuario. Devuelve {"ok", "created"} o {"ok", "updated"}."""
    datos = datos or {}
    email = normalizar_email(datos.get("email"))
    if not email:
        raise ErrorValidacion("Email requerido")
    try:
        prioridad = int(float(datos.get("prioridad") or 0))
    except (TypeError, ValueError):
        raise ErrorValidacion("Prioridad inválida")

    administracion_id = normalizar_alcance(datos.get("administracion_id") or datos.get("admin_id"))
    verificar_alcance(alcance, administracion_id, "No autorizado para esa administración")

    usuario = db.get(Usuario, email)
    creado = usuario is None
    if creado:
        usuario = Usuario(email=email)
        db.add(usuario)
    else:
        verificar_alcance(alcance, usuario.administracion_id, "No autorizado para ese usuario")

    usuario.nombre = str(datos.get("nombre") or "").strip()
    usuario.departamento = str(datos.get("departamento") or "").strip()
    usuario.rol = str(datos.get("rol") or "").strip().upper()
    usuario.prioridad = prioridad
    usuario.prioridad_salones = _salones_prioridad(datos)
    usuario.estado = str(datos.get("estado") or "").strip().upper()
    usuario.extension = str(datos.get("extension") or "").strip()
    usuario.administracion_id = administracion_id
    db.commit()

    logger.info("Usuario %s %s", email, "creado" if creado else "actualizado")
    if creado:
        return {"ok": True, "created": True}
    return {"ok": True, "updated": True}
