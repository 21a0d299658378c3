import logging

from flask import Blueprint, g, jsonify, request
from flask_jwt_extended import jwt_required

from logica.decoradores import extraer_identidad
from logica.usuarios import es_admin, es_admin_general, es_activo, obtener_usuario, solicitar_acceso

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/api/usuario/info", methods=["GET"])
@jwt_required()
@extraer_identidad
def obtener_info_usuario(identidad):
    usuario = identidad["usuario"]
    datos = usuario.a_dict()
    datos.update({
        "registrado": obtener_usuario(g.db, usuario.email) is not None,
        "activo": es_activo(usuario),
        "es_admin": es_admin(usuario, g.config),
        "es_admin_general": es_admin_general(usuario, g.config),
    })
    return jsonify({"ok": True, "data": datos})


@auth_bp.route("/api/solicitar-acceso", methods=["POST"])
@jwt_required()
@extraer_identidad
def solicitar_acceso_route(identidad):
    datos = request.get_json(silent=True) or {}
    logger.info("Solicitud de acceso de %s", identidad["email"])
    resultado = solicitar_acceso(
        g.db, g.notificador, identidad["email"],
        datos.get("nombre"), datos.get("departamento"), datos.get("extension"),
    )
    return jsonify(resultado)
