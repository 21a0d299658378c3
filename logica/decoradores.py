from functools import wraps

from flask import g
from flask_jwt_extended import get_jwt_identity, jwt_required

from logica.errores import ErrorNoAutorizado
from logica.usuarios import (
    alcance_de, es_admin, normalizar_email, usuario_o_anonimo, verificar_puede_reservar,
)


def extraer_identidad(func):
    """Inyecta `identidad` = {email, usuario, alcance} a partir del correo del JWT."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        email = normalizar_email(get_jwt_identity())
        usuario = usuario_o_anonimo(g.db, email)
        identidad = {
            "email": email,
            "usuario": usuario,
            "alcance": alcance_de(usuario),
        }
        return func(*args, identidad=identidad, **kwargs)
    return wrapper


def activo_required(fn):
    # Rutas de reserva: JWT válido y usuario ACTIVO con rol
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        verificar_puede_reservar(usuario_o_anonimo(g.db, get_jwt_identity()))
        return fn(*args, **kwargs)
    return wrapper


def admin_required(fn):
    # Protege rutas de admin: JWT válido y usuario administrador activo
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        usuario = usuario_o_anonimo(g.db, get_jwt_identity())
        if not es_admin(usuario, g.config):
            raise ErrorNoAutorizado("Acceso denegado: solo administradores")
        return fn(*args, **kwargs)
    return wrapper
