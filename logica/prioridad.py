from modelos.usuario_model import ROL_ADMIN

# Prioridad implícita de un administrador sin prioridad explícita
PRIORIDAD_ADMIN_DEFECTO = 2


def parsear_salones_prioridad(raw):
    """'s-01; S-02;s-01' -> ['S-01', 'S-02'] (mayúsculas, sin duplicados)."""
    vistos = []
    for token in str(raw or "").split(";"):
        token = token.strip().upper()
        if token and token not in vistos:
            vistos.append(token)
    return vistos


def prioridad_base(usuario):
    if usuario is None:
        return 0
    prioridad = int(usuario.prioridad or 0)
    if (usuario.rol or "").upper() == ROL_ADMIN and not prioridad:
        return PRIORIDAD_ADMIN_DEFECTO
    return prioridad


def prioridad_efectiva(usuario, salon_id):
    """Prioridad del usuario aplicada a un salón concreto."""
    base = prioridad_base(usuario)
    if base <= 0:
        return base
    if not salon_id:
        return base
    salones = parsear_salones_prioridad(usuario.prioridad_salones)
    if not salones:
        return base
    return base if str(salon_id).strip().upper() in salones else 0
