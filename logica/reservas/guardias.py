"""
Tabla de decisión para crear (o verificar) una reserva.

Cada guardia recibe la Solicitud y devuelve None para continuar o el
ErrorReserva que detiene la operación. Se evalúan en el orden fijo de
GUARDIAS_CREACION; gana la primera que falla.
"""
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional

from modelos.reserva_model import ESTADO_APROBADA, ESTADO_PENDIENTE
from logica import errores
from logica.errores import ErrorConflicto, ErrorNoEncontrado, ErrorValidacion
from logica.horas import a_minutos, a_hhmm, normalizar_hhmm, parsear_fecha
from logica.reservas.conflictos import es_publico_externo_o_mixto

# Regla fija de dominio, independiente de la hora de cierre configurada
ULTIMA_HORA_INICIO = "19:00"


@dataclass
class Solicitud:
    datos: dict
    salon: Any = None
    operativa: Any = None
    restriccion: Any = None
    prioridad: int = 0

    # Completados por las guardias
    cant_personas: int = 0
    fecha: Any = None
    ini_min: Optional[int] = None
    fin_min: Optional[int] = None
    duracion: int = 0
    conflictos: List[Any] = field(default_factory=list)

    @property
    def hora_inicio(self):
        return a_hhmm(self.ini_min)

    @property
    def hora_fin(self):
        return a_hhmm(self.fin_min)

    @property
    def max_prioridad(self):
        if not self.conflictos:
            return None
        return max(int(c.prioridad or 0) for c in self.conflictos)

    def desplazables(self):
        """Conflictos que una prioridad mayor puede cancelar."""
        return [c for c in self.conflictos
                if c.estado != ESTADO_PENDIENTE and not es_publico_externo_o_mixto(c.publico_tipo)]


# --- Guardias previas (no dependen de otras reservas) ---

def guardia_salon(sol):
    if sol.salon is None:
        return ErrorNoEncontrado("Salón inválido.")
    if not sol.salon.habilitado:
        return ErrorValidacion("Este salón está deshabilitado temporalmente.")
    return None


def guardia_capacidad(sol):
    try:
        cantidad = float(sol.datos.get("cant_personas") or 0)
    except (TypeError, ValueError):
        cantidad = 0
    if not math.isfinite(cantidad) or cantidad < 1 or cantidad != int(cantidad):
        return ErrorValidacion("Indica la cantidad de personas (número válido).")
    capacidad = int(sol.salon.capacidad or 0)
    if capacidad and cantidad > capacidad:
        return ErrorValidacion(
            "La cantidad de personas excede la capacidad máxima del salón (%d)." % capacidad)
    sol.cant_personas = int(cantidad)
    return None


def guardia_horario(sol):
    sol.fecha = parsear_fecha(sol.datos.get("fecha"))
    if sol.fecha is None:
        return ErrorValidacion("Fecha inválida.")
    hora = normalizar_hhmm(sol.datos.get("hora_inicio"))
    if not hora:
        return ErrorValidacion("Hora de inicio inválida.")

    sol.duracion = sol.operativa.ajustar_duracion(sol.datos.get("duracion_min"))
    sol.ini_min = a_minutos(hora)
    sol.fin_min = sol.ini_min + sol.duracion

    if sol.ini_min < sol.operativa.apertura:
        return ErrorConflicto(errores.OUT_OF_HOURS, "Hora fuera de horario permitido.")
    if sol.fin_min > sol.operativa.cierre:
        return ErrorConflicto(
            errores.OUT_OF_HOURS,
            "La reserva debe terminar a más tardar a las %s." % sol.operativa.horario_fin)
    if sol.ini_min > a_minutos(ULTIMA_HORA_INICIO):
        return ErrorConflicto(
            errores.OUT_OF_HOURS, "La última hora de inicio permitida es %s." % ULTIMA_HORA_INICIO)
    return None


def guardia_restriccion(sol):
    if sol.restriccion.bloquea(sol.ini_min, sol.fin_min):
        return ErrorConflicto(
            errores.RESTRICTED_WINDOW,
            "Este salón no permite reservas en el horario seleccionado. Elige otro intervalo.")
    return None


# --- Guardias de conflicto (requieren sol.conflictos cargados bajo candado) ---

def guardia_pendientes(sol):
    if any(c.estado == ESTADO_PENDIENTE for c in sol.conflictos):
        return ErrorConflicto(
            errores.PENDING_EXISTS,
            "Ya existe una solicitud pendiente para ese horario. Elige otro intervalo.")
    return None


def guardia_prioridad_cero(sol):
    # Prioridad 0 nunca desplaza ni comparte un intervalo aprobado
    if sol.prioridad <= 0 and any(c.estado == ESTADO_APROBADA for c in sol.conflictos):
        return ErrorConflicto(errores.LOW_PRIORITY, "Ese intervalo ya está reservado. Elige otra hora.")
    return None


def guardia_publico_externo(sol):
    if any(es_publico_externo_o_mixto(c.publico_tipo) for c in sol.conflictos):
        return ErrorConflicto(
            errores.EXTERNAL_AUDIENCE,
            "Ese intervalo está reservado para un evento con público externo o mixto. "
            "Deben coordinar con el anfitrión para liberar el espacio.")
    return None


def guardia_misma_prioridad(sol):
    if any(int(c.prioridad or 0) == sol.prioridad for c in sol.conflictos):
        return ErrorConflicto(
            errores.SAME_PRIORITY,
            "Ese intervalo ya está reservado por otra persona con la misma prioridad. "
            "Deben coordinar con la otra parte para que cancele la reserva antes de agendar.")
    return None


def guardia_prioridad_menor(sol):
    if sol.conflictos and sol.prioridad <= sol.max_prioridad:
        return ErrorConflicto(errores.LOW_PRIORITY, "Ese intervalo ya está reservado. Elige otra hora.")
    return None


GUARDIAS_PREVIAS = (
    guardia_salon,
    guardia_capacidad,
    guardia_horario,
    guardia_restriccion,
)

GUARDIAS_CONFLICTO = (
    guardia_pendientes,
    guardia_prioridad_cero,
    guardia_publico_externo,
    guardia_misma_prioridad,
    guardia_prioridad_menor,
)

GUARDIAS_CREACION = GUARDIAS_PREVIAS + GUARDIAS_CONFLICTO


def evaluar(guardias, sol):
    """Primer error de la lista, o None si todas dejan continuar."""
    for guardia in guardias:
        error = guardia(sol)
        if error is not None:
            return error
    return None
