"""
Tareas programadas: agenda del día y recordatorios del día siguiente.

Se ejecutan desde la CLI de Flask (`flask agenda-diaria`, `flask recordatorios`)
con un cron externo.
"""
import logging
from datetime import timedelta

from modelos.conserje_model import Conserje
from modelos.reserva_model import Reserva, ESTADO_APROBADA
from logica.alcance import SUPER_ALCANCE
from logica.horas import fmt_12

logger = logging.getLogger(__name__)


def destinatarios_agenda(config):
    """ADMIN_EMAILS + CONSERJERIA_EMAILS sin duplicados (sin distinguir mayúsculas)."""
    vistos = {}
    for email in config.lista(SUPER_ALCANCE, "ADMIN_EMAILS") + config.lista(SUPER_ALCANCE, "CONSERJERIA_EMAILS"):
        vistos.setdefault(email.lower(), email)
    return list(vistos.values())


def aprobadas_del_dia(db, fecha):
    return (
        db.query(Reserva)
        .filter(Reserva.estado == ESTADO_APROBADA, Reserva.fecha == fecha)
        .order_by(Reserva.salon_nombre, Reserva.hora_inicio)
        .all()
    )


def _estado_conserje(reserva, nombres):
    if not reserva.conserje_requerido:
        return "N/A"
    nombre = nombres.get(reserva.conserje_codigo_asignado)
    return "Asignado: %s" % nombre if nombre else "Requerido"


def enviar_agenda_del_dia(db, config, notificador, hoy):
    reservas = aprobadas_del_dia(db, hoy)
    if not reservas:
        logger.info("Sin reservas aprobadas para %s; no se envía agenda", hoy)
        return 0
    destinatarios = destinatarios_agenda(config)
    if not destinatarios:
        logger.warning("Agenda de %s sin destinatarios configurados", hoy)
        return 0

    nombres = {c.codigo: c.nombre for c in db.query(Conserje).filter(Conserje.activo.is_(True))}
    por_salon = {}
    for r in reservas:
        por_salon.setdefault(r.salon_nombre, []).append({
            "r": r.a_dict(),
            "hora": "%s - %s" % (fmt_12(r.hora_inicio), fmt_12(r.hora_fin)),
            "conserje": _estado_conserje(r, nombres),
        })

    enviado = notificador.agenda_diaria(destinatarios, hoy, sorted(por_salon.items()))
    logger.info("Agenda de %s: %d reservas, enviada=%s", hoy, len(reservas), enviado)
    return len(reservas)


def enviar_recordatorios(db, notificador, hoy):
    """Un correo por reserva aprobada de mañana; una falla no detiene las demás."""
    manana = hoy + timedelta(days=1)
    enviados = 0
    for reserva in aprobadas_del_dia(db, manana):
        try:
            if notificador.recordatorio(reserva):
                enviados += 1
        except Exception:
            logger.exception("No se pudo enviar el recordatorio de %s", reserva.id)
    logger.info("Recordatorios para %s: %d enviados", manana, enviados)
    return enviados
