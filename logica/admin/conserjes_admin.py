import logging
from datetime import datetime

from sqlalchemy import func

from modelos.conserje_model import Conserje
from modelos.reserva_model import Reserva, ESTADO_APROBADA
from logica import errores
from logica.alcance import es_super_alcance, verificar_alcance
from logica.bloqueos import bloquear, clave_conserje
from logica.errores import ErrorNoAutorizado, ErrorNoEncontrado, ErrorValidacion, ErrorConflicto, ErrorReserva
from logica.horas import a_minutos, se_solapan
from logica.reservas.gestor import MARGEN_ANTES_DEL_INICIO, inicio_de

logger = logging.getLogger(__name__)

PREFIJO_CODIGO = "C-"


def _solo_admin_general(alcance):
    if not es_super_alcance(alcance):
        raise ErrorNoAutorizado("No autorizado")


def _conserje(db, codigo):
    conserje = db.get(Conserje, str(codigo or "").strip())
    if conserje is None:
        raise ErrorNoEncontrado("Conserje no encontrado")
    return conserje


def siguiente_codigo(db):
    """C-00001, C-00002, ... a partir del mayor número existente."""
    mayor = 0
    for (codigo,) in db.query(Conserje.codigo).filter(Conserje.codigo.like(PREFIJO_CODIGO + "%")):
        sufijo = codigo[len(PREFIJO_CODIGO):]
        if sufijo.isdigit():
            mayor = max(mayor, int(sufijo))
    return "%s%05d" % (PREFIJO_CODIGO, mayor + 1)


def listar_conserjes(db):
    return [c.a_dict() for c in db.query(Conserje).order_by(Conserje.codigo).all()]


def agregar_conserje(db, alcance, datos):
    _solo_admin_general(alcance)
    datos = datos or {}
    nombre = str(datos.get("nombre") or "").strip()
    if not nombre:
        raise ErrorValidacion("El nombre del conserje es obligatorio")

    conserje = Conserje(
        codigo=siguiente_codigo(db),
        nombre=nombre,
        email=str(datos.get("email") or "").strip().lower(),
        telefono=str(datos.get("telefono") or "").strip(),
        activo=True,
    )
    db.add(conserje)
    db.commit()
    logger.info("Conserje %s agregado", conserje.codigo)
    return {"ok": True, "codigo": conserje.codigo}


def actualizar_conserje(db, alcance, codigo, datos):
    _solo_admin_general(alcance)
    conserje = _conserje(db, codigo)
    datos = datos or {}

    nuevos = {}
    if "nombre" in datos:
        nuevos["nombre"] = str(datos["nombre"] or "")
    if "email" in datos:
        nuevos["email"] = str(datos["email"] or "").lower()
    if "telefono" in datos:
        nuevos["telefono"] = str(datos["telefono"] or "")
    if "activo" in datos:
        nuevos["activo"] = bool(datos["activo"])

    cambios = {k: v for k, v in nuevos.items() if getattr(conserje, k) != v}
    if not cambios:
        return {"ok": True, "changed": False}
    for campo, valor in cambios.items():
        setattr(conserje, campo, valor)
    db.commit()
    logger.info("Conserje %s actualizado: %s", conserje.codigo, ", ".join(sorted(cambios)))
    return {"ok": True, "changed": True}


def eliminar_conserje(db, alcance, codigo):
    # Borrado lógico
    _solo_admin_general(alcance)
    conserje = _conserje(db, codigo)
    conserje.activo = False
    db.commit()
    logger.info("Conserje %s desactivado", conserje.codigo)
    return {"ok": True}


def conflictos_conserje(db, codigo, reserva):
    """Otras reservas APROBADAS del mismo día con ese conserje que se solapan con `reserva`."""
    ini, fin = a_minutos(reserva.hora_inicio), a_minutos(reserva.hora_fin)
    candidatas = (
        db.query(Reserva)
        .filter(
            Reserva.estado == ESTADO_APROBADA,
            Reserva.fecha == reserva.fecha,
            func.trim(Reserva.conserje_codigo_asignado) == codigo,
            Reserva.id != reserva.id,
        )
        .all()
    )
    conflictos = []
    for r in candidatas:
        r_ini, r_fin = a_minutos(r.hora_inicio), a_minutos(r.hora_fin)
        if r_ini is None or r_fin is None:
            continue
        if se_solapan(ini, fin, r_ini, r_fin):
            conflictos.append(r)
    return conflictos


def asignar_conserje(db, notificador, admin_alcance, reserva_id, codigo, ahora=None):
    """
    Asigna un conserje activo a una reserva aprobada que lo requiere.

    La verificación de choques y la escritura ocurren bajo el candado del
    conserje para ese día. Una falla al notificar no revierte la asignación.
    """
    ahora = ahora or datetime.now()
    reserva = db.get(Reserva, str(reserva_id or "").strip())
    if reserva is None:
        raise ErrorNoEncontrado("Reserva no encontrada")
    verificar_alcance(admin_alcance, reserva.administracion_id, "No autorizado para este salón")

    if reserva.estado != ESTADO_APROBADA:
        raise ErrorValidacion("La reserva no está aprobada")
    if ahora > inicio_de(reserva) - MARGEN_ANTES_DEL_INICIO:
        raise ErrorValidacion("Fuera de ventana: asignación solo hasta 30 min antes del inicio.")
    if not reserva.conserje_requerido:
        raise ErrorValidacion("Esta reserva no requiere conserje")

    conserje = db.get(Conserje, str(codigo or "").strip())
    if conserje is None or not conserje.activo:
        raise ErrorValidacion("Conserje no válido o inactivo")

    try:
        bloquear(db, clave_conserje(conserje.codigo, reserva.fecha))
        if conflictos_conserje(db, conserje.codigo, reserva):
            raise ErrorConflicto(errores.CONCIERGE_BUSY, "Ese conserje ya está asignado en ese horario")
        reserva.conserje_codigo_asignado = conserje.codigo
        reserva.actualizado_en = ahora
        db.commit()
    except ErrorReserva:
        db.rollback()
        raise

    logger.info("Conserje %s asignado a la reserva %s", conserje.codigo, reserva.id)
    notificador.conserje_asignado(reserva, conserje)
    return {"ok": True, "conserje": {"codigo": conserje.codigo, "nombre": conserje.nombre, "email": conserje.email}}
