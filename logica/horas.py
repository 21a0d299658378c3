import re
from datetime import datetime

_HHMM = re.compile(r"^(\d{1,2}):(\d{1,2})$")
_HHMM_PREFIJO = re.compile(r"^(\d{1,2}):(\d{1,2})(?::\d{1,2})?$")


def a_minutos(hhmm):
    """'HH:MM' -> minutos desde medianoche, o None si no es una hora válida."""
    m = _HHMM.match(str(hhmm or "").strip())
    if not m:
        return None
    h, mi = int(m.group(1)), int(m.group(2))
    if h > 23 or mi > 59:
        return None
    return h * 60 + mi


def normalizar_hhmm(valor):
    """Acepta 'H:M', 'HH:MM' o 'HH:MM:SS' y devuelve 'HH:MM' ('' si no aplica)."""
    m = _HHMM_PREFIJO.match(str(valor or "").strip())
    if not m:
        return ""
    minutos = a_minutos("%s:%s" % (m.group(1), m.group(2)))
    if minutos is None:
        return ""
    return a_hhmm(minutos)


def a_hhmm(minutos):
    minutos = max(0, int(minutos))
    return "%02d:%02d" % (minutos // 60, minutos % 60)


def se_solapan(ini_a, fin_a, ini_b, fin_b):
    # Semiabiertos: 10:00-11:00 y 11:00-12:00 no se solapan
    return not (fin_a <= ini_b or ini_a >= fin_b)


def parsear_fecha(texto):
    """'YYYY-MM-DD' (se ignora cualquier sufijo de hora) -> date, o None."""
    try:
        return datetime.strptime(str(texto or "")[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def fmt_dmy(fecha):
    return fecha.strftime("%d/%m/%Y")


def fmt_12(hhmm):
    minutos = a_minutos(hhmm)
    if minutos is None:
        return str(hhmm or "")
    h, mi = divmod(minutos, 60)
    sufijo = "a.m." if h < 12 else "p.m."
    return "%02d:%02d %s" % ((h % 12) or 12, mi, sufijo)
