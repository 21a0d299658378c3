"""
Alcance multi-administración.

Cada salón, usuario, reserva y tabla de configuración pertenece a una
administración (tenant). La administración "1" es el súper alcance: ve y
modifica todo. Las demás solo ven y modifican lo suyo.
"""
from logica.errores import ErrorNoAutorizado

SUPER_ALCANCE = "1"
# Quien no tiene fila de usuario no ve ninguna administración
SIN_ALCANCE = "0"


def normalizar_alcance(valor):
    texto = str(valor if valor is not None else "").strip()
    if not texto:
        return SUPER_ALCANCE
    try:
        numero = float(texto)
    except ValueError:
        return texto
    if numero > 0:
        return str(int(numero))
    return texto


def es_super_alcance(alcance):
    return normalizar_alcance(alcance) == SUPER_ALCANCE


def puede_ver(alcance, administracion_id):
    if es_super_alcance(alcance):
        return True
    return normalizar_alcance(administracion_id) == normalizar_alcance(alcance)


def verificar_alcance(alcance, administracion_id, mensaje="No autorizado para este salón"):
    if not puede_ver(alcance, administracion_id):
        raise ErrorNoAutorizado(mensaje)


def filtrar_query(query, columna, alcance):
    """Aplica el filtro de tenant a una query de SQLAlchemy."""
    if es_super_alcance(alcance):
        return query
    return query.filter(columna == normalizar_alcance(alcance))
