import logging
import os
from datetime import datetime

import click
from flask import Flask, current_app, g, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager, get_jwt_identity, jwt_required
from werkzeug.exceptions import HTTPException

from config.bd import SessionLocal
from logica.auth import auth_bp
from logica.configuracion import ResolvedorConfig
from logica.decoradores import activo_required, admin_required, extraer_identidad
from logica.errores import ErrorReserva
from logica.notificaciones import Despachador, Notificador
from logica.salones import RegistroSalones
from logica.tareas import enviar_agenda_del_dia, enviar_recordatorios
from logica.reservas.disponibilidad import MotorDisponibilidad
from logica.reservas.gestor import GestorReservas
from logica.admin.conserjes_admin import (
    actualizar_conserje, agregar_conserje, asignar_conserje, eliminar_conserje, listar_conserjes,
)
from logica.admin.salones_admin import actualizar_salon, listar_salones_admin
from logica.admin.usuarios_admin import guardar_usuario, listar_usuarios

logger = logging.getLogger(__name__)

ORIGENES_DEFECTO = "http://localhost:3000"


def _origenes():
    return [o.strip() for o in os.getenv("CORS_ORIGINS", ORIGENES_DEFECTO).split(",") if o.strip()]


def create_app(session_factory=None, despachador=None, reloj=None):
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)
    CORS(app, origins=_origenes(), supports_credentials=True)

    # JWT Configuración: la identidad es el correo institucional
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "supersecreto")
    JWTManager(app)

    if session_factory is None:
        session_factory = SessionLocal
        if os.getenv("RUN_INIT_DB", "true").lower() == "true":
            from init_db import inicializar_base_de_datos
            inicializar_base_de_datos()

    app.session_factory = session_factory
    app.despachador = despachador or Despachador()
    app.reloj = reloj or datetime.now

    # ---------------- sesión y servicios por petición ----------------
    @app.before_request
    def abrir_sesion():
        g.db = current_app.session_factory()
        g.config = ResolvedorConfig(g.db)
        g.salones = RegistroSalones(g.db, g.config)
        g.notificador = Notificador(current_app.despachador, g.config)
        g.gestor = GestorReservas(g.db, g.salones, g.config, g.notificador, reloj=current_app.reloj)
        g.disponibilidad = MotorDisponibilidad(g.db, g.salones, g.config)

    @app.teardown_request
    def cerrar_sesion(exc):
        db = g.pop("db", None)
        if db is not None:
            db.close()

    # ---------------- errores ----------------
    @app.errorhandler(ErrorReserva)
    def manejar_error_reserva(e):
        g.db.rollback()
        return jsonify(e.a_dict()), e.status

    @app.errorhandler(Exception)
    def manejar_excepcion(e):
        if isinstance(e, HTTPException):
            return e
        db = g.get("db")
        if db is not None:
            db.rollback()
        logger.exception("Error no controlado en %s %s", request.method, request.path)
        return jsonify({"ok": False, "error": "Error interno del servidor", "codigo": "INTERNAL"}), 500

    app.register_blueprint(auth_bp)
    _registrar_rutas(app)
    _registrar_comandos(app)
    return app


def _datos():
    return request.get_json(silent=True) or {}


def _registrar_rutas(app):

    # ============================ salones y disponibilidad ============================

    @app.route("/api/salones", methods=["GET"])
    @activo_required
    @extraer_identidad
    def listar_salones(identidad):
        return jsonify({"ok": True, "data": g.salones.listar(identidad["alcance"])})

    @app.route("/api/disponibilidad", methods=["GET"])
    @activo_required
    @extraer_identidad
    def consultar_disponibilidad(identidad):
        slots = g.disponibilidad.listar_slots(
            request.args.get("fecha"),
            request.args.get("salon_id"),
            request.args.get("duracion"),
            identidad["usuario"],
        )
        return jsonify({"ok": True, "data": slots})

    @app.route("/api/disponibilidad/verificar", methods=["GET"])
    @activo_required
    @extraer_identidad
    def verificar_disponibilidad(identidad):
        resultado = g.disponibilidad.verificar_slot(
            request.args.get("fecha"),
            request.args.get("salon_id"),
            request.args.get("hora_inicio"),
            request.args.get("duracion"),
            identidad["usuario"],
        )
        return jsonify({"ok": True, "data": resultado})

    # ============================ reservas ============================

    @app.route("/api/reservas", methods=["POST"])
    @activo_required
    @extraer_identidad
    def hacer_reserva(identidad):
        resultado = g.gestor.crear_reserva(_datos(), identidad["usuario"])
        return jsonify(resultado), 201

    @app.route("/api/reservas", methods=["GET"])
    @activo_required
    @extraer_identidad
    def listar_mis_reservas(identidad):
        reservas = g.gestor.listar_mis_reservas(
            request.args.get("desde"), request.args.get("hasta"), identidad["email"])
        return jsonify({"ok": True, "data": reservas})

    @app.route("/api/reservas/token/<token>", methods=["GET"])
    def obtener_reserva_por_token(token):
        return jsonify({"ok": True, "data": g.gestor.obtener_por_token(token)})

    @app.route("/api/reservas/cancelar", methods=["POST"])
    @jwt_required(optional=True)
    def cancelar_por_token():
        datos = _datos()
        resultado = g.gestor.cancelar_por_token(datos.get("token"), datos.get("motivo"), get_jwt_identity())
        return jsonify(resultado)

    # ============================ administración ============================

    @app.route("/api/admin/salones", methods=["GET"])
    @admin_required
    @extraer_identidad
    def listar_salones_admin_route(identidad):
        return jsonify({"ok": True, "data": listar_salones_admin(g.salones, identidad["alcance"])})

    @app.route("/api/admin/salones/<salon_id>", methods=["PUT"])
    @admin_required
    @extraer_identidad
    def editar_salon_admin(identidad, salon_id):
        return jsonify(actualizar_salon(g.db, g.salones, identidad["alcance"], salon_id, _datos()))

    @app.route("/api/admin/reservas", methods=["GET"])
    @admin_required
    @extraer_identidad
    def listar_reservas_admin_route(identidad):
        reservas = g.gestor.listar_reservas_admin(
            request.args.get("desde"), request.args.get("hasta"), identidad["alcance"])
        return jsonify({"ok": True, "data": reservas})

    @app.route("/api/admin/reservas/<reserva_id>/aprobar", methods=["POST"])
    @admin_required
    @extraer_identidad
    def aprobar_reserva_admin(identidad, reserva_id):
        return jsonify(g.gestor.aprobar(reserva_id, identidad["usuario"]))

    @app.route("/api/admin/reservas/<reserva_id>/cancelar", methods=["POST"])
    @admin_required
    @extraer_identidad
    def cancelar_reserva_admin(identidad, reserva_id):
        return jsonify(g.gestor.cancelar_por_admin(reserva_id, _datos().get("motivo"), identidad["usuario"]))

    @app.route("/api/admin/reservas/<reserva_id>/conserje", methods=["POST"])
    @admin_required
    @extraer_identidad
    def asignar_conserje_admin(identidad, reserva_id):
        resultado = asignar_conserje(
            g.db, g.notificador, identidad["alcance"], reserva_id,
            _datos().get("codigo"), ahora=current_app.reloj(),
        )
        return jsonify(resultado)

    @app.route("/api/admin/usuarios", methods=["GET"])
    @admin_required
    @extraer_identidad
    def listar_usuarios_admin(identidad):
        return jsonify({"ok": True, "data": listar_usuarios(g.db, identidad["alcance"])})

    @app.route("/api/admin/usuarios", methods=["POST"])
    @admin_required
    @extraer_identidad
    def guardar_usuario_admin(identidad):
        return jsonify(guardar_usuario(g.db, identidad["alcance"], _datos()))

    @app.route("/api/admin/conserjes", methods=["GET"])
    @admin_required
    def listar_conserjes_admin():
        return jsonify({"ok": True, "data": listar_conserjes(g.db)})

    @app.route("/api/admin/conserjes", methods=["POST"])
    @admin_required
    @extraer_identidad
    def crear_conserje_admin(identidad):
        return jsonify(agregar_conserje(g.db, identidad["alcance"], _datos())), 201

    @app.route("/api/admin/conserjes/<codigo>", methods=["PUT"])
    @admin_required
    @extraer_identidad
    def editar_conserje_admin(identidad, codigo):
        return jsonify(actualizar_conserje(g.db, identidad["alcance"], codigo, _datos()))

    @app.route("/api/admin/conserjes/<codigo>", methods=["DELETE"])
    @admin_required
    @extraer_identidad
    def eliminar_conserje_admin(identidad, codigo):
        return jsonify(eliminar_conserje(g.db, identidad["alcance"], codigo))


def _fecha_opcion(valor, reloj):
    if valor:
        return datetime.strptime(valor, "%Y-%m-%d").date()
    return reloj().date()


def _registrar_comandos(app):

    @app.cli.command("init-db")
    def init_db_command():
        """Crea las tablas y siembra la configuración inicial."""
        from init_db import inicializar_base_de_datos
        inicializar_base_de_datos()

    @app.cli.command("set-config")
    @click.argument("clave")
    @click.argument("valor")
    @click.option("--administracion", default="1", help="Id de administración (1 = configuración global)")
    def set_config_command(clave, valor, administracion):
        """Escribe una clave en la tabla Config o Config<id>."""
        db = app.session_factory()
        try:
            ResolvedorConfig(db).escribir(administracion, clave, valor)
            db.commit()
        except ErrorReserva as e:
            db.rollback()
            raise click.ClickException(e.mensaje)
        finally:
            db.close()
        click.echo("%s = %s (administración %s)" % (clave.upper(), valor, administracion))

    @app.cli.command("agenda-diaria")
    @click.option("--fecha", default=None, help="YYYY-MM-DD (por defecto hoy)")
    def agenda_diaria_command(fecha):
        """Envía la agenda de reservas aprobadas del día."""
        db = app.session_factory()
        try:
            config = ResolvedorConfig(db)
            total = enviar_agenda_del_dia(
                db, config, Notificador(app.despachador, config), _fecha_opcion(fecha, app.reloj))
            click.echo("Reservas en la agenda: %d" % total)
        finally:
            db.close()

    @app.cli.command("recordatorios")
    @click.option("--fecha", default=None, help="Fecha base YYYY-MM-DD; se recuerda el día siguiente")
    def recordatorios_command(fecha):
        """Envía recordatorios de las reservas aprobadas de mañana."""
        db = app.session_factory()
        try:
            config = ResolvedorConfig(db)
            enviados = enviar_recordatorios(db, Notificador(app.despachador, config), _fecha_opcion(fecha, app.reloj))
            click.echo("Recordatorios enviados: %d" % enviados)
        finally:
            db.close()


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
