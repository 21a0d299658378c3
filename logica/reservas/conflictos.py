from modelos.reserva_model import (
    Reserva, ESTADO_APROBADA, ESTADO_PENDIENTE, PUBLICO_EXTERNO, PUBLICO_MIXTO,
)
from logica.horas import a_minutos, se_solapan


def es_publico_externo_o_mixto(tipo):
    return str(tipo or "").strip().upper() in (PUBLICO_EXTERNO, PUBLICO_MIXTO)


def estados_en_conflicto(restriccion):
    """Un salón con aprobación cuenta también las solicitudes pendientes."""
    if restriccion.requiere_aprobacion:
        return (ESTADO_APROBADA, ESTADO_PENDIENTE)
    return (ESTADO_APROBADA,)


def reservas_del_dia(db, fecha, salon_id, estados):
    return (
        db.query(Reserva)
        .filter(Reserva.salon_id == salon_id, Reserva.fecha == fecha, Reserva.estado.in_(estados))
        .order_by(Reserva.hora_inicio)
        .all()
    )


def solapadas(reservas, ini_min, fin_min):
    resultado = []
    for r in reservas:
        r_ini, r_fin = a_minutos(r.hora_inicio), a_minutos(r.hora_fin)
        if r_ini is None or r_fin is None:
            continue
        if se_solapan(ini_min, fin_min, r_ini, r_fin):
            resultado.append(r)
    return resultado


def obtener_conflictos(db, fecha, salon_id, ini_min, fin_min, estados):
    return solapadas(reservas_del_dia(db, fecha, salon_id, estados), ini_min, fin_min)


def ocupante(reserva):
    """Resumen visible de quien ocupa un intervalo."""
    return {
        "id": reserva.id,
        "prioridad": int(reserva.prioridad or 0),
        "email": reserva.solicitante_email,
        "nombre": reserva.solicitante_nombre,
        "evento": reserva.evento_nombre,
        "publico_tipo": reserva.publico_tipo,
        "inicio": reserva.hora_inicio,
        "fin": reserva.hora_fin,
        "estado": reserva.estado,
    }
