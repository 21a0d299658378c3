from dataclasses import dataclass, field

from modelos.salon_model import Salon
from logica.alcance import puede_ver, es_super_alcance
from logica.horas import a_minutos, normalizar_hhmm, se_solapan


TOKEN_CONFIRMACION = "CONFIRM"


@dataclass(frozen=True)
class Restriccion:
    requiere_aprobacion: bool = False
    # (inicio, fin) en minutos
    intervalos: tuple = field(default_factory=tuple)

    def bloquea(self, ini_min, fin_min):
        return any(se_solapan(ini_min, fin_min, i, f) for i, f in self.intervalos)

    def a_dict(self):
        return {
            "requiere_aprobacion": self.requiere_aprobacion,
            "intervalos": [{"inicio": "%02d:%02d" % divmod(i, 60), "fin": "%02d:%02d" % divmod(f, 60)}
                           for i, f in self.intervalos],
        }


def parsear_restriccion(raw):
    """
    'CONFIRM;12:00-13:00;bogus' -> Restriccion(True, ((720, 780),))

    Los tokens mal formados se descartan sin abortar.
    """
    requiere = False
    intervalos = []
    for parte in str(raw or "").split(";"):
        parte = parte.strip()
        if not parte:
            continue
        if parte.upper() == TOKEN_CONFIRMACION:
            requiere = True
            continue
        extremos = [t.strip() for t in parte.split("-") if t.strip()]
        if len(extremos) != 2:
            continue
        ini = a_minutos(normalizar_hhmm(extremos[0]))
        fin = a_minutos(normalizar_hhmm(extremos[1]))
        if ini is None or fin is None or fin <= ini:
            continue
        intervalos.append((ini, fin))
    return Restriccion(requiere_aprobacion=requiere, intervalos=tuple(intervalos))


class RegistroSalones:
    """
    Catálogo de salones con caché por instancia.

    La caché se invalida en cada escritura hecha a través del registro.
    """

    def __init__(self, db, config):
        self.db = db
        self.config = config
        self._cache = None

    def _todos(self):
        if self._cache is None:
            self._cache = {s.id: s for s in self.db.query(Salon).order_by(Salon.id).all()}
        return self._cache

    def invalidar(self):
        self._cache = None

    def _con_config(self, salon):
        datos = salon.a_dict()
        datos.update(self.config.operativa(salon.administracion_id).a_dict())
        return datos

    def obtener(self, salon_id, alcance=None):
        """Salón por id; si se indica alcance, un salón ajeno se trata como inexistente."""
        salon = self._todos().get(str(salon_id or "").strip())
        if salon is None:
            return None
        if alcance is not None and not puede_ver(alcance, salon.administracion_id):
            return None
        return salon

    def restriccion(self, salon):
        return parsear_restriccion(salon.restriccion)

    def listar(self, alcance):
        return [self._con_config(s) for s in self._todos().values() if puede_ver(alcance, s.administracion_id)]

    def listar_admin(self, alcance):
        todos = [self._con_config(s) for s in self._todos().values()]
        if es_super_alcance(alcance):
            gestionables = list(todos)
        else:
            gestionables = [s for s in todos if puede_ver(alcance, s["administracion_id"])]
        return {"manage": gestionables, "all": todos}
