from logica.horas import a_hhmm, a_minutos, parsear_fecha
from logica.prioridad import prioridad_efectiva
from logica.usuarios import alcance_de
from logica.reservas import guardias
from logica.reservas.conflictos import (
    estados_en_conflicto, reservas_del_dia, solapadas, es_publico_externo_o_mixto, ocupante,
)

MOTIVO_PUBLICO_EXTERNO = "PUBLICO_EXTERNO"
MOTIVO_MISMA_PRIORIDAD = "MISMA_PRIORIDAD"


def generar_slots(apertura, cierre, duracion, paso, ultimo_inicio=None):
    """Inicios cada `paso` minutos mientras inicio + duración <= cierre e inicio <= ultimo_inicio."""
    if duracion > cierre - apertura:
        return []
    tope = cierre - duracion
    if ultimo_inicio is not None:
        tope = min(tope, ultimo_inicio)
    return [(t, t + duracion) for t in range(apertura, tope + 1, paso)]


def clasificar_slot(ini, fin, ocupadas, restriccion, prioridad):
    conflictos = solapadas(ocupadas, ini, fin)
    hay_conflicto = bool(conflictos)
    max_prio = max((int(c.prioridad or 0) for c in conflictos), default=None)

    requiere_conciliacion = False
    motivo_conciliacion = ""
    if any(es_publico_externo_o_mixto(c.publico_tipo) for c in conflictos):
        requiere_conciliacion, motivo_conciliacion = True, MOTIVO_PUBLICO_EXTERNO
    elif any(int(c.prioridad or 0) == prioridad for c in conflictos):
        requiere_conciliacion, motivo_conciliacion = True, MOTIVO_MISMA_PRIORIDAD

    es_restriccion = restriccion.bloquea(ini, fin)
    puede_reasignar = hay_conflicto and not requiere_conciliacion and prioridad > max_prio

    info = {
        "inicio": a_hhmm(ini),
        "fin": a_hhmm(fin),
        "disponible": not hay_conflicto and not es_restriccion,
        "seleccionable": (not hay_conflicto or puede_reasignar) and not es_restriccion,
        "hay_conflicto": hay_conflicto,
        "max_prio": max_prio,
        "requiere_conciliacion": requiere_conciliacion,
        "motivo_conciliacion": motivo_conciliacion,
        "ocupantes": [ocupante(c) for c in conflictos],
        "restringido": es_restriccion,
        "requiere_aprobacion": restriccion.requiere_aprobacion,
    }
    if es_restriccion:
        info["motivo_restriccion"] = "RESTRICCION"
    return info


class MotorDisponibilidad:

    def __init__(self, db, salones, config):
        self.db = db
        self.salones = salones
        self.config = config

    def listar_slots(self, fecha, salon_id, duracion, usuario):
        """
        Slots del día para un salón con su disponibilidad para `usuario`.

        Un salón inexistente, fuera del alcance del usuario, o una duración
        mayor que la ventana devuelven lista vacía.
        """
        fecha = parsear_fecha(fecha)
        salon = self.salones.obtener(salon_id, alcance_de(usuario))
        if fecha is None or salon is None:
            return []

        operativa = self.config.operativa(salon.administracion_id)
        dur = operativa.ajustar_duracion(duracion)
        slots = generar_slots(operativa.apertura, operativa.cierre, dur, operativa.duracion_step,
                              a_minutos(guardias.ULTIMA_HORA_INICIO))
        if not slots:
            return []

        restriccion = self.salones.restriccion(salon)
        ocupadas = reservas_del_dia(self.db, fecha, salon.id, estados_en_conflicto(restriccion))
        prioridad = prioridad_efectiva(usuario, salon.id)

        return [clasificar_slot(ini, fin, ocupadas, restriccion, prioridad) for ini, fin in slots]

    def verificar_slot(self, fecha, salon_id, hora_inicio, duracion, usuario):
        """Veredicto para un intervalo concreto, con el motivo cuando no está disponible."""
        salon = self.salones.obtener(salon_id, alcance_de(usuario))
        sol = guardias.Solicitud(
            datos={"fecha": fecha, "hora_inicio": hora_inicio, "duracion_min": duracion},
            salon=salon,
        )
        error = guardias.guardia_salon(sol)
        if error is None:
            sol.operativa = self.config.operativa(salon.administracion_id)
            sol.restriccion = self.salones.restriccion(salon)
            sol.prioridad = prioridad_efectiva(usuario, salon.id)
            error = guardias.evaluar((guardias.guardia_horario, guardias.guardia_restriccion), sol)
        if error is None:
            sol.conflictos = solapadas(
                reservas_del_dia(self.db, sol.fecha, salon.id, estados_en_conflicto(sol.restriccion)),
                sol.ini_min, sol.fin_min,
            )
            error = guardias.evaluar(guardias.GUARDIAS_CONFLICTO, sol)

        resultado = {
            "disponible": error is None,
            "max_prio": sol.max_prioridad,
            "requiere_aprobacion": bool(sol.restriccion and sol.restriccion.requiere_aprobacion),
        }
        if sol.ini_min is not None and sol.fin_min is not None:
            resultado["inicio"] = sol.hora_inicio
            resultado["fin"] = sol.hora_fin
        if error is not None:
            resultado["motivo"] = error.motivo or error.codigo
            resultado["mensaje"] = error.mensaje
        else:
            resultado["desplazaria"] = [c.id for c in sol.desplazables()]
        return resultado
