"""
Resolución de configuración por administración.

La tabla global es 'Config'. Cada administración distinta de la "1" puede
sobrescribir un conjunto fijo de claves en su propia tabla 'Config<id>'.
"""
import logging
import math
from dataclasses import dataclass

from modelos.config_model import ConfigEntrada
from logica.alcance import normalizar_alcance, es_super_alcance
from logica.errores import ErrorValidacion
from logica.horas import a_minutos, normalizar_hhmm

logger = logging.getLogger(__name__)

TABLA_GLOBAL = "Config"

CLAVES_POR_ADMINISTRACION = frozenset({
    "ADMIN_EMAILS",
    "HORARIO_INICIO",
    "HORARIO_FIN",
    "DURATION_MIN",
    "DURATION_STEP",
    "DURATION_MAX",
    "MAIL_SENDER_NAME",
    "MAIL_REPLY_TO",
    "ADMIN_CONTACT_NAME",
    "ADMIN_CONTACT_EMAIL",
    "ADMIN_CONTACT_EXTENSION",
})

HORARIO_INICIO_DEFECTO = "07:00"
HORARIO_FIN_DEFECTO = "20:00"
DURACION_MIN_DEFECTO = 30
DURACION_MAX_DEFECTO = 240
DURACION_STEP_DEFECTO = 30


@dataclass(frozen=True)
class ConfigOperativa:
    horario_inicio: str
    horario_fin: str
    duracion_min: int
    duracion_max: int
    duracion_step: int

    @property
    def apertura(self):
        return a_minutos(self.horario_inicio)

    @property
    def cierre(self):
        return a_minutos(self.horario_fin)

    def ajustar_duracion(self, duracion):
        """Lleva la duración pedida a [min, max]; inválida o ausente => min."""
        try:
            valor = float(duracion)
        except (TypeError, ValueError):
            return self.duracion_min
        if not math.isfinite(valor):
            return self.duracion_min
        valor = int(valor)
        if valor < self.duracion_min:
            return self.duracion_min
        return min(valor, self.duracion_max)

    def a_dict(self):
        return {
            "horario_inicio": self.horario_inicio,
            "horario_fin": self.horario_fin,
            "duracion_min": self.duracion_min,
            "duracion_max": self.duracion_max,
            "duracion_step": self.duracion_step,
        }


def nombre_tabla(administracion_id):
    alcance = normalizar_alcance(administracion_id)
    if es_super_alcance(alcance):
        return TABLA_GLOBAL
    return TABLA_GLOBAL + alcance


def _entero(texto, defecto):
    try:
        return int(float(texto))
    except (TypeError, ValueError, OverflowError):
        return defecto


class ResolvedorConfig:
    """
    Lee valores de configuración con caché por (tabla, clave).

    Se crea uno por petición; toda escritura invalida la caché.
    """

    def __init__(self, db):
        self.db = db
        self._cache = {}
        self._operativa = {}

    def _buscar(self, tabla, clave):
        llave = (tabla, clave)
        if llave not in self._cache:
            fila = self.db.get(ConfigEntrada, {"tabla": tabla, "clave": clave})
            self._cache[llave] = (fila.valor or "").strip() if fila else ""
        return self._cache[llave]

    def global_(self, clave):
        return self._buscar(TABLA_GLOBAL, str(clave or "").strip())

    def resolver(self, administracion_id, clave):
        clave = str(clave or "").strip()
        if not clave:
            return ""
        alcance = normalizar_alcance(administracion_id)
        if clave not in CLAVES_POR_ADMINISTRACION or es_super_alcance(alcance):
            return self.global_(clave)
        propio = self._buscar(nombre_tabla(alcance), clave)
        return propio if propio != "" else self.global_(clave)

    def lista(self, administracion_id, clave):
        """Valores separados por ';' (correos, códigos)."""
        texto = self.resolver(administracion_id, clave)
        return [s.strip() for s in texto.split(";") if s.strip()]

    def operativa(self, administracion_id):
        alcance = normalizar_alcance(administracion_id)
        if alcance in self._operativa:
            return self._operativa[alcance]

        inicio = normalizar_hhmm(self.resolver(alcance, "HORARIO_INICIO")) or HORARIO_INICIO_DEFECTO
        fin = normalizar_hhmm(self.resolver(alcance, "HORARIO_FIN")) or HORARIO_FIN_DEFECTO
        if not a_minutos(fin) > a_minutos(inicio):
            logger.warning("Horario inválido para administración %s (%s-%s); se usa el de defecto",
                           alcance, inicio, fin)
            inicio, fin = HORARIO_INICIO_DEFECTO, HORARIO_FIN_DEFECTO

        dur_min = max(1, _entero(self.resolver(alcance, "DURATION_MIN"), DURACION_MIN_DEFECTO) or DURACION_MIN_DEFECTO)
        dur_max = _entero(self.resolver(alcance, "DURATION_MAX"), DURACION_MAX_DEFECTO) or DURACION_MAX_DEFECTO
        step = _entero(self.resolver(alcance, "DURATION_STEP"), DURACION_STEP_DEFECTO) or DURACION_STEP_DEFECTO

        cfg = ConfigOperativa(
            horario_inicio=inicio,
            horario_fin=fin,
            duracion_min=dur_min,
            duracion_max=max(dur_min, dur_max),
            duracion_step=max(1, step),
        )
        self._operativa[alcance] = cfg
        return cfg

    def escribir(self, administracion_id, clave, valor):
        """Crea o reemplaza una clave. Una administración propia solo escribe las claves sobrescribibles."""
        clave = str(clave or "").strip().upper()
        if not clave:
            raise ErrorValidacion("Clave de configuración requerida")
        if not es_super_alcance(administracion_id) and clave not in CLAVES_POR_ADMINISTRACION:
            raise ErrorValidacion("La clave %s solo existe en la configuración global" % clave)
        tabla = nombre_tabla(administracion_id)
        fila = self.db.get(ConfigEntrada, {"tabla": tabla, "clave": clave})
        if fila is None:
            fila = ConfigEntrada(tabla=tabla, clave=clave)
            self.db.add(fila)
        fila.valor = str(valor if valor is not None else "")
        self.db.flush()
        self.invalidar()

    def invalidar(self):
        self._cache.clear()
        self._operativa.clear()
