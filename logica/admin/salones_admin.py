import logging

from logica.alcance import verificar_alcance, normalizar_alcance, es_super_alcance
from logica.errores import ErrorNoEncontrado, ErrorValidacion, ErrorNoAutorizado

logger = logging.getLogger(__name__)

# Solo campos permitidos
CAMPOS_EDITABLES = ["nombre", "capacidad", "habilitado", "sede", "restriccion", "requiere_conserje", "administracion_id"]


def listar_salones_admin(registro, alcance):
    return registro.listar_admin(alcance)


def _valor(campo, valor):
    if campo in ("habilitado", "requiere_conserje"):
        if isinstance(valor, str):
            return valor.strip().upper() in ("SI", "TRUE", "1")
        return bool(valor)
    if campo == "capacidad":
        try:
            capacidad = int(valor or 0)
        except (TypeError, ValueError):
            raise ErrorValidacion("Capacidad inválida")
        if capacidad < 0:
            raise ErrorValidacion("Capacidad inválida")
        return capacidad
    if campo == "administracion_id":
        return normalizar_alcance(valor)
    return str(valor or "").strip()


def actualizar_salon(db, registro, alcance, salon_id, datos):
    """
    Actualiza los campos editables de un salón (incluye habilitar/deshabilitar).

    Un administrador con alcance propio solo toca sus salones y no puede
    moverlos a otra administración.
    """
    salon = registro.obtener(salon_id)
    if salon is None:
        raise ErrorNoEncontrado("Salón no encontrado")
    verificar_alcance(alcance, salon.administracion_id)

    cambios = {}
    for campo in CAMPOS_EDITABLES:
        if campo in (datos or {}):
            cambios[campo] = _valor(campo, datos[campo])
    if not cambios:
        raise ErrorValidacion("No se proporcionaron campos válidos para actualizar")
    if "nombre" in cambios and not cambios["nombre"]:
        raise ErrorValidacion("El nombre del salón es obligatorio")
    if ("administracion_id" in cambios and not es_super_alcance(alcance)
            and cambios["administracion_id"] != normalizar_alcance(alcance)):
        raise ErrorNoAutorizado("No autorizado para mover el salón a otra administración")

    for campo, valor in cambios.items():
        setattr(salon, campo, valor)
    db.commit()
    registro.invalidar()
    logger.info("Salón %s actualizado: %s", salon.id, ", ".join(sorted(cambios)))
    return {"ok": True, "salon": salon.a_dict()}
