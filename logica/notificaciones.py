"""
Notificaciones por correo.

El Despachador arma el mensaje con plantillas Jinja2 y lo entrega a un API
HTTP de correo. Nunca lanza excepciones: las fallas se registran y se
descartan, porque la transición de estado ya quedó guardada.
"""
import logging
import os
from functools import wraps

import httpx
from jinja2 import Environment, DictLoader, select_autoescape

from logica.horas import fmt_dmy, fmt_12

logger = logging.getLogger(__name__)

MOTIVO_REASIGNACION = "Reasignada por usuario con prioridad"
NOMBRE_REMITENTE_DEFECTO = "Reserva de Salones"

_BASE = """<!doctype html>
<html><body style="background:#f6f7fb;font-family:Arial,sans-serif;color:#111827">
<span style="display:none">{{ preheader }}</span>
<table role="presentation" width="100%" cellpadding="0" cellspacing="0">
<tr><td style="padding:16px"><h2 style="margin:0 0 12px">{{ titulo }}</h2></td></tr>
{% block cuerpo %}{% endblock %}
{% if cta_url %}<tr><td style="padding:16px"><a href="{{ cta_url }}" style="background:#1d4ed8;color:#fff;padding:10px 16px;border-radius:8px;text-decoration:none">{{ cta_label }}</a></td></tr>{% endif %}
<tr><td style="padding:16px;font-size:12px;color:#6b7280">{{ pie }}
{% if contacto %}<br/>Contacto: {{ contacto }}{% endif %}</td></tr>
</table></body></html>
"""

_DETALLE = """{% macro detalle(filas) %}<tr><td><table role="presentation" cellpadding="4">
{% for etiqueta, valor in filas %}<tr><td style="color:#6b7280">{{ etiqueta }}</td><td><b>{{ valor }}</b></td></tr>
{% endfor %}</table></td></tr>{% endmacro %}"""


def _plantilla(cuerpo):
    return '{% extends "base.html" %}{% from "detalle.html" import detalle %}{% block cuerpo %}' + cuerpo + "{% endblock %}"


_FILAS_RESERVA = """{{ detalle([("Salón", r.salon_nombre), ("Fecha", fecha), ("Hora", hora),
    ("Evento", r.evento_nombre), ("Asistentes", r.cant_personas), ("Público", r.publico_tipo)]) }}"""

PLANTILLAS = {
    "base.html": _BASE,
    "detalle.html": _DETALLE,
    "confirmacion.html": _plantilla(
        "<tr><td>Hola <b>{{ r.solicitante_nombre }}</b>, tu reserva fue registrada con éxito.</td></tr>"
        + _FILAS_RESERVA
        + "<tr><td>¿Ya no necesitas este espacio? Puedes cancelar la reserva con el botón.</td></tr>"),
    "pendiente.html": _plantilla(
        "<tr><td>Hola <b>{{ r.solicitante_nombre }}</b>, recibimos tu solicitud y se envió a la administración para aprobación.</td></tr>"
        + _FILAS_RESERVA
        + "<tr><td><b>Este salón es restringido y requiere aprobación de la administración. "
          "Tu reserva aún no está confirmada.</b></td></tr>"),
    "aprobacion.html": _plantilla(
        "<tr><td>Hola <b>{{ r.solicitante_nombre }}</b>, la administración aprobó tu reserva.</td></tr>"
        + _FILAS_RESERVA),
    "cancelacion.html": _plantilla(
        "<tr><td>Se canceló la reserva del salón <b>{{ r.salon_nombre }}</b> para el <b>{{ fecha }}</b> "
        "a las <b>{{ hora_inicio }}</b>. Lamentamos los inconvenientes.</td></tr>"
        "<tr><td><b>Motivo:</b> {{ motivo }}</td></tr>"),
    "admin_pendiente.html": _plantilla(
        "<tr><td>Se registró una nueva reserva en un salón restringido y requiere aprobación.</td></tr>"
        + "{{ detalle([('Salón', r.salon_nombre), ('Fecha', fecha), ('Hora', hora), ('Evento', r.evento_nombre),"
          " ('Solicitante', r.solicitante_nombre ~ ' (' ~ r.solicitante_email ~ ')'), ('Público', r.publico_tipo)]) }}"),
    "conserjeria.html": _plantilla(
        "<tr><td>Se registró una reserva que <b>requiere asignación de conserje</b>.</td></tr>"
        + "{{ detalle([('Salón', r.salon_nombre), ('Fecha', fecha), ('Horario', hora), ('Evento', r.evento_nombre),"
          " ('Solicitante', r.solicitante_nombre ~ ' (' ~ r.solicitante_email ~ ')')]) }}"
        + "<tr><td>Verifica conflictos de horario antes de asignar.</td></tr>"),
    "conserje_asignado.html": _plantilla(
        "<tr><td>Hola <b>{{ conserje.nombre }}</b>, fuiste asignado(a) como conserje para el siguiente evento:</td></tr>"
        + "{{ detalle([('Salón', r.salon_nombre), ('Fecha', fecha), ('Hora', hora), ('Evento', r.evento_nombre)]) }}"),
    "solicitud_acceso.html": _plantilla(
        "{{ detalle([('Correo', email), ('Nombre', nombre), ('Departamento', departamento), ('Extensión', extension)]) }}"
        "<tr><td>Asigne <b>rol</b> y <b>prioridad</b> y cambie el <b>estado</b> a <b>ACTIVO</b>.</td></tr>"),
    "agenda_diaria.html": _plantilla(
        "<tr><td>Resumen del día <b>{{ fecha }}</b>.</td></tr>"
        "{% for salon, lista in por_salon %}<tr><td><b>{{ salon }}</b><ul>"
        "{% for x in lista %}<li>{{ x.hora }} · {{ x.r.evento_nombre }} · {{ x.r.solicitante_nombre }} "
        "({{ x.r.solicitante_email }}) · Asist: {{ x.r.cant_personas }} · {{ x.r.publico_tipo }} · {{ x.conserje }}</li>"
        "{% endfor %}</ul></td></tr>{% endfor %}"),
    "recordatorio.html": _plantilla(
        "<tr><td>Hola <b>{{ r.solicitante_nombre }}</b>, mañana tienes reservado el salón <b>{{ r.salon_nombre }}</b> "
        "entre <b>{{ hora }}</b> para “{{ r.evento_nombre }}”.</td></tr>"
        "<tr><td>¿Aún la necesitas? Si no, <a href=\"{{ cancel_url }}\">cancela la reserva</a> para liberar el espacio.</td></tr>"),
}

ASUNTOS = {
    "confirmacion": "Reserva confirmada - {salon} - {fecha} {hora_inicio}",
    "pendiente": "Reserva pendiente - {salon} - {fecha} {hora_inicio}",
    "aprobacion": "Reserva aprobada - {salon} - {fecha} {hora_inicio}",
    "cancelacion": "Reserva cancelada - {salon} - {fecha} {hora_inicio}",
    "admin_pendiente": "Pendiente de aprobación - {salon} - {fecha} {hora_inicio}",
    "conserjeria": "Asignación de conserje - {salon} - {fecha} {hora_inicio}",
    "conserje_asignado": "Asignación de conserje - {salon} - {fecha} {hora_inicio}",
    "solicitud_acceso": "Nueva solicitud de acceso - Reserva de Salones",
    "agenda_diaria": "Reserva de Salones | Agenda de hoy - {fecha}",
    "recordatorio": "Recordatorio - {salon} - {fecha} {hora_inicio}",
}

_entorno = Environment(loader=DictLoader(PLANTILLAS), autoescape=select_autoescape(["html"]))


class Despachador:
    """Entrega correos a un API HTTP (estilo Resend). Sin configuración, solo registra."""

    def __init__(self, api_url=None, api_key=None, remitente=None, timeout=10):
        self.api_url = api_url if api_url is not None else os.getenv("MAIL_API_URL", "")
        self.api_key = api_key if api_key is not None else os.getenv("MAIL_API_KEY", "")
        self.remitente = remitente if remitente is not None else os.getenv("MAIL_FROM", "")
        self.timeout = timeout

    def enviar(self, plantilla, destinatarios, asunto, contexto, nombre_remitente="", responder_a=""):
        """Devuelve True si el correo se entregó. Nunca lanza."""
        destinatarios = [d for d in (destinatarios or []) if d]
        if not destinatarios:
            logger.info("Correo '%s' sin destinatarios; se omite", plantilla)
            return False
        try:
            html = _entorno.get_template(plantilla + ".html").render(**contexto)
            return self._entregar({
                "from": self._remitente(nombre_remitente),
                "to": destinatarios,
                "subject": asunto,
                "html": html,
                "reply_to": responder_a or None,
            })
        except Exception:
            logger.exception("Falló el envío del correo '%s' a %s", plantilla, destinatarios)
            return False

    def _remitente(self, nombre):
        if nombre and self.remitente:
            return "%s <%s>" % (nombre, self.remitente)
        return self.remitente

    def _entregar(self, payload):
        if not self.api_url or not self.remitente:
            logger.warning("API de correo no configurado; se omite '%s'", payload["subject"])
            return False
        headers = {"Authorization": "Bearer %s" % self.api_key, "Content-Type": "application/json"}
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
        return True


def _silencioso(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception:
            logger.exception("Error preparando la notificación %s", fn.__name__)
            return False
    return wrapper


def _datos_reserva(reserva):
    return {
        "r": reserva.a_dict(),
        "fecha": fmt_dmy(reserva.fecha),
        "hora_inicio": fmt_12(reserva.hora_inicio),
        "hora": "%s - %s" % (fmt_12(reserva.hora_inicio), fmt_12(reserva.hora_fin)),
    }


class Notificador:
    """Traduce eventos del ciclo de vida a correos. Todas sus operaciones son fire-and-forget."""

    def __init__(self, despachador, config):
        self.despachador = despachador
        self.config = config

    # --- helpers ---
    def _url_app(self):
        return self.config.global_("PUBLIC_WEBAPP_URL")

    def _url_cancelacion(self, reserva):
        base = self._url_app()
        if not base:
            return ""
        separador = "&" if "?" in base else "?"
        return "%s%scancel=%s" % (base, separador, reserva.token)

    def _url_panel(self):
        explicita = self.config.global_("ADMIN_PANEL_URL")
        if explicita:
            return explicita
        base = self._url_app()
        if not base:
            return ""
        return base + ("&mode=admin" if "?" in base else "?mode=admin")

    def _contacto(self, administracion_id):
        partes = [
            self.config.resolver(administracion_id, "ADMIN_CONTACT_NAME"),
            self.config.resolver(administracion_id, "ADMIN_CONTACT_EMAIL"),
        ]
        ext = self.config.resolver(administracion_id, "ADMIN_CONTACT_EXTENSION")
        if ext:
            partes.append("Ext. " + ext)
        return " · ".join(p for p in partes if p)

    def _enviar(self, plantilla, destinatarios, administracion_id, contexto, **formato):
        contexto.setdefault("contacto", self._contacto(administracion_id))
        asunto = ASUNTOS[plantilla].format(**formato)
        return self.despachador.enviar(
            plantilla,
            destinatarios,
            asunto,
            contexto,
            nombre_remitente=self.config.resolver(administracion_id, "MAIL_SENDER_NAME") or NOMBRE_REMITENTE_DEFECTO,
            responder_a=self.config.resolver(administracion_id, "MAIL_REPLY_TO"),
        )

    def _enviar_reserva(self, plantilla, destinatarios, reserva, **extra):
        datos = _datos_reserva(reserva)
        datos.update(extra)
        return self._enviar(
            plantilla, destinatarios, reserva.administracion_id, datos,
            salon=reserva.salon_nombre, fecha=datos["fecha"], hora_inicio=datos["hora_inicio"],
        )

    # --- eventos ---
    @_silencioso
    def confirmacion(self, reserva):
        return self._enviar_reserva(
            "confirmacion", [reserva.solicitante_email], reserva,
            titulo="Reserva confirmada", preheader="Tu reserva para %s fue registrada." % reserva.salon_nombre,
            cta_url=self._url_cancelacion(reserva), cta_label="Cancelar reserva",
            pie="Si tienes dudas, responde a este correo o contacta al equipo de coordinación.",
        )

    @_silencioso
    def pendiente(self, reserva):
        return self._enviar_reserva(
            "pendiente", [reserva.solicitante_email], reserva,
            titulo="Reserva pendiente de aprobación",
            preheader="Tu solicitud para %s está pendiente de aprobación." % reserva.salon_nombre,
            cta_url=self._url_cancelacion(reserva), cta_label="Cancelar solicitud",
            pie="La administración revisará tu solicitud y recibirás un correo con la decisión.",
        )

    @_silencioso
    def aprobacion(self, reserva):
        return self._enviar_reserva(
            "aprobacion", [reserva.solicitante_email], reserva,
            titulo="Reserva aprobada", preheader="La administración aprobó tu reserva.",
            cta_url=self._url_cancelacion(reserva), cta_label="Cancelar reserva",
            pie="Gracias por utilizar el sistema de reservas.",
        )

    @_silencioso
    def cancelacion(self, reserva):
        motivo = reserva.cancelado_motivo or "No especificado"
        if motivo.strip().lower() == MOTIVO_REASIGNACION.lower():
            motivo = "Disponibilidad prioritaria en ese horario."
        return self._enviar_reserva(
            "cancelacion", [reserva.solicitante_email], reserva,
            motivo=motivo, titulo="Reserva cancelada",
            preheader="Se canceló la reserva de %s." % reserva.salon_nombre,
            cta_url=self._url_app(), cta_label="Hacer nueva reserva",
            pie="Si esto fue un error, crea una nueva reserva o contacta a administración.",
        )

    @_silencioso
    def admin_pendiente(self, reserva):
        destinatarios = (self.config.lista(reserva.administracion_id, "ADMIN_EMAILS")
                         or self.config.lista(reserva.administracion_id, "ADMIN_CONTACT_EMAIL"))
        return self._enviar_reserva(
            "admin_pendiente", destinatarios, reserva,
            titulo="Nueva reserva pendiente de aprobación",
            preheader="Solicitud registrada para %s." % reserva.salon_nombre,
            cta_url=self._url_panel(), cta_label="Abrir panel administrativo",
            pie="Revisa la solicitud, apruébala o cancélala desde el panel administrativo.",
        )

    @_silencioso
    def conserjeria(self, reserva):
        """Alerta a Conserjería. Devuelve True solo si el correo se entregó."""
        if not reserva.conserje_requerido:
            return False
        return self._enviar_reserva(
            "conserjeria", self.config.lista("1", "CONSERJERIA_EMAILS"), reserva,
            titulo="Se requiere asignación de conserje",
            preheader="Reserva en %s" % reserva.salon_nombre,
            cta_url=self._url_app(), cta_label="Asignar conserje ahora",
            pie="Gracias por su apoyo logístico.",
        )

    @_silencioso
    def conserje_asignado(self, reserva, conserje):
        return self._enviar_reserva(
            "conserje_asignado", [conserje.email], reserva,
            conserje=conserje.a_dict(), titulo="Has sido asignado(a) a un evento",
            preheader="Evento en %s." % reserva.salon_nombre, pie="Gracias por tu apoyo logístico.",
        )

    @_silencioso
    def solicitud_acceso(self, email, nombre, departamento, extension):
        return self._enviar(
            "solicitud_acceso", self.config.lista("1", "ADMIN_EMAILS"), "1",
            {
                "email": email, "nombre": nombre, "departamento": departamento, "extension": extension,
                "titulo": "Nueva solicitud de acceso", "preheader": "%s solicita acceso" % nombre,
                "cta_url": self._url_app(), "cta_label": "Abrir sistema",
                "pie": "Este mensaje se envía automáticamente al registrar una solicitud de acceso.",
            },
        )

    @_silencioso
    def agenda_diaria(self, destinatarios, fecha, por_salon):
        return self._enviar(
            "agenda_diaria", destinatarios, "1",
            {
                "fecha": fmt_dmy(fecha), "por_salon": por_salon,
                "titulo": "Agenda de hoy · %s" % fmt_dmy(fecha),
                "preheader": "Reservas aprobadas y datos logísticos para el día",
                "cta_url": self._url_app(), "cta_label": "Abrir sistema",
                "pie": "Reporte generado automáticamente.",
            },
            fecha=fmt_dmy(fecha),
        )

    @_silencioso
    def recordatorio(self, reserva):
        return self._enviar_reserva(
            "recordatorio", [reserva.solicitante_email], reserva,
            cancel_url=self._url_cancelacion(reserva), titulo="Recordatorio de reserva",
            preheader="Mañana tienes reservado %s." % reserva.salon_nombre,
            cta_url=self._url_app(), cta_label="Abrir sistema",
            pie="Este recordatorio se envía un día antes del evento.",
        )
