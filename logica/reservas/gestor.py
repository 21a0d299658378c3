import logging
import uuid
from datetime import datetime, timedelta

from modelos.reserva_model import Reserva, ESTADO_APROBADA, ESTADO_CANCELADA, ESTADO_PENDIENTE
from modelos.conserje_model import Conserje
from logica.alcance import filtrar_query, verificar_alcance
from logica.bloqueos import bloquear, clave_salon
from logica.errores import ErrorEstadoTerminal, ErrorNoEncontrado, ErrorValidacion
from logica.horas import a_minutos, parsear_fecha
from logica.notificaciones import MOTIVO_REASIGNACION
from logica.prioridad import prioridad_efectiva
from logica.usuarios import alcance_de, normalizar_email, verificar_puede_reservar
from logica.reservas import guardias
from logica.reservas.conflictos import estados_en_conflicto, obtener_conflictos

logger = logging.getLogger(__name__)

# Desde esta hora el evento necesita conserje
HORA_CONSERJE = "16:00"
MARGEN_ANTES_DEL_INICIO = timedelta(minutes=30)

MOTIVO_CANCELACION_TOKEN = "Cancelada por el solicitante vía enlace"
MOTIVO_CANCELACION_ADMIN = "Cancelada por administración"
CANCELADO_POR_PUBLICO = "PUBLIC"

FECHA_MINIMA = datetime(2000, 1, 1).date()
FECHA_MAXIMA = datetime(2100, 1, 1).date()


def nuevo_id():
    return "R-" + uuid.uuid4().hex[:12].upper()


def requiere_conserje(salon, ini_min, fin_min):
    if not salon.requiere_conserje:
        return False
    corte = a_minutos(HORA_CONSERJE)
    return ini_min >= corte or fin_min > corte


def inicio_de(reserva):
    minutos = a_minutos(reserva.hora_inicio) or 0
    return datetime.combine(reserva.fecha, datetime.min.time()) + timedelta(minutes=minutos)


def rango_fechas(desde, hasta):
    """Rango inclusivo; un extremo ausente o inválido queda abierto."""
    return parsear_fecha(desde) or FECHA_MINIMA, parsear_fecha(hasta) or FECHA_MAXIMA


class GestorReservas:
    """
    Ciclo de vida de las reservas: alta con resolución de conflictos,
    cancelación, aprobación y listados.

    Toda escritura se confirma antes de notificar; las notificaciones nunca
    revierten ni abortan la transición.
    """

    def __init__(self, db, salones, config, notificador, reloj=datetime.now):
        self.db = db
        self.salones = salones
        self.config = config
        self.notificador = notificador
        self.reloj = reloj

    # --- alta ---

    def crear_reserva(self, datos, usuario):
        verificar_puede_reservar(usuario)
        datos = datos or {}
        salon = self.salones.obtener(datos.get("salon_id"), alcance_de(usuario))
        sol = guardias.Solicitud(datos=datos, salon=salon)
        if salon is not None:
            sol.operativa = self.config.operativa(salon.administracion_id)
            sol.restriccion = self.salones.restriccion(salon)
            sol.prioridad = prioridad_efectiva(usuario, salon.id)

        try:
            self._detener_si(guardias.evaluar(guardias.GUARDIAS_PREVIAS, sol), usuario)

            # Lectura, decisión y escritura bajo el candado del salón y día
            bloquear(self.db, clave_salon(salon.id, sol.fecha))
            sol.conflictos = obtener_conflictos(
                self.db, sol.fecha, salon.id, sol.ini_min, sol.fin_min,
                estados_en_conflicto(sol.restriccion),
            )
            self._detener_si(guardias.evaluar(guardias.GUARDIAS_CONFLICTO, sol), usuario)

            desplazadas = sol.desplazables()
            for previa in desplazadas:
                self._cancelar(previa, MOTIVO_REASIGNACION, usuario.email)
                logger.info("Reserva %s desplazada por %s (prio %s > %s)",
                            previa.id, usuario.email, sol.prioridad, previa.prioridad)

            reserva = self._nueva_reserva(sol, usuario)
            self.db.add(reserva)
            self.db.commit()
        except Exception:
            # Desplazamientos y alta nueva se confirman juntos o no se confirman
            self.db.rollback()
            raise

        logger.info("Reserva %s creada en %s el %s %s-%s (%s)", reserva.id, salon.id,
                    reserva.fecha, reserva.hora_inicio, reserva.hora_fin, reserva.estado)

        for previa in desplazadas:
            self.notificador.cancelacion(previa)
        if reserva.estado == ESTADO_PENDIENTE:
            self.notificador.pendiente(reserva)
            self.notificador.admin_pendiente(reserva)
        else:
            self.notificador.confirmacion(reserva)
            self._alertar_conserjeria(reserva)

        return {
            "ok": True,
            "id": reserva.id,
            "token": reserva.token,
            "estado": reserva.estado,
            "requiere_aprobacion": sol.restriccion.requiere_aprobacion,
            "desplazadas": [r.id for r in desplazadas],
        }

    def _detener_si(self, error, usuario):
        if error is not None:
            logger.info("Reserva rechazada para %s: %s %s",
                        getattr(usuario, "email", ""), error.codigo, error.motivo or "")
            raise error

    def _nueva_reserva(self, sol, usuario):
        datos = sol.datos
        ahora = self.reloj()
        return Reserva(
            id=nuevo_id(),
            token=str(uuid.uuid4()),
            estado=ESTADO_PENDIENTE if sol.restriccion.requiere_aprobacion else ESTADO_APROBADA,
            fecha=sol.fecha,
            hora_inicio=sol.hora_inicio,
            hora_fin=sol.hora_fin,
            salon_id=sol.salon.id,
            salon_nombre=sol.salon.nombre,
            cant_personas=sol.cant_personas,
            solicitante_email=normalizar_email(datos.get("email")) or usuario.email,
            solicitante_nombre=str(datos.get("nombre") or usuario.nombre or ""),
            departamento=str(datos.get("departamento") or usuario.departamento or ""),
            extension=str(datos.get("extension") or ""),
            evento_nombre=str(datos.get("evento_nombre") or ""),
            publico_tipo=str(datos.get("publico_tipo") or "").strip().upper(),
            prioridad=sol.prioridad,
            conserje_requerido=requiere_conserje(sol.salon, sol.ini_min, sol.fin_min),
            conserje_notificado=False,
            creado_en=ahora,
            actualizado_en=ahora,
            cancelado_por="",
            cancelado_motivo="",
            conserje_codigo_asignado="",
            administracion_id=sol.salon.administracion_id,
        )

    def _alertar_conserjeria(self, reserva):
        if not reserva.conserje_requerido:
            return
        if self.notificador.conserjeria(reserva):
            reserva.conserje_notificado = True
            self.db.commit()

    # --- cancelación ---

    def _cancelar(self, reserva, motivo, quien):
        reserva.estado = ESTADO_CANCELADA
        reserva.cancelado_motivo = motivo
        reserva.cancelado_por = quien
        reserva.actualizado_en = self.reloj()

    def cancelar_por_token(self, token, motivo=None, email=None):
        token = str(token or "").strip()
        if not token:
            raise ErrorValidacion("Token inválido")
        reserva = self.db.query(Reserva).filter(Reserva.token == token).first()
        if reserva is None:
            raise ErrorNoEncontrado("Reserva no encontrada")
        if reserva.estado == ESTADO_CANCELADA:
            raise ErrorEstadoTerminal("Ya estaba cancelada")

        self._cancelar(reserva, str(motivo or MOTIVO_CANCELACION_TOKEN),
                       normalizar_email(email) or CANCELADO_POR_PUBLICO)
        self.db.commit()
        logger.info("Reserva %s cancelada por enlace (%s)", reserva.id, reserva.cancelado_por)
        self.notificador.cancelacion(reserva)
        return {"ok": True}

    def cancelar_por_admin(self, reserva_id, motivo, admin):
        reserva = self._reserva_administrable(reserva_id, admin)
        if reserva.estado == ESTADO_CANCELADA:
            raise ErrorEstadoTerminal("La reserva ya está cancelada")
        if reserva.estado != ESTADO_PENDIENTE and self.reloj() > inicio_de(reserva) - MARGEN_ANTES_DEL_INICIO:
            raise ErrorValidacion(
                "Fuera de ventana: solo se permite cancelar hasta 30 min antes del inicio.")

        self._cancelar(reserva, str(motivo or MOTIVO_CANCELACION_ADMIN), admin.email)
        self.db.commit()
        logger.info("Reserva %s cancelada por %s", reserva.id, admin.email)
        self.notificador.cancelacion(reserva)
        return {"ok": True}

    # --- aprobación ---

    def aprobar(self, reserva_id, admin):
        reserva = self._reserva_administrable(reserva_id, admin)
        if reserva.estado == ESTADO_CANCELADA:
            raise ErrorEstadoTerminal("La reserva está cancelada")
        if reserva.estado == ESTADO_APROBADA:
            return {"ok": True, "already": True}

        reserva.estado = ESTADO_APROBADA
        reserva.actualizado_en = self.reloj()
        self.db.commit()
        logger.info("Reserva %s aprobada por %s", reserva.id, admin.email)

        self.notificador.aprobacion(reserva)
        self._alertar_conserjeria(reserva)
        return {"ok": True}

    def _reserva_administrable(self, reserva_id, admin):
        reserva = self.db.get(Reserva, str(reserva_id or "").strip())
        if reserva is None:
            raise ErrorNoEncontrado("Reserva no encontrada")
        verificar_alcance(alcance_de(admin), reserva.administracion_id, "No autorizado para este salón")
        return reserva

    # --- consultas ---

    def obtener_por_token(self, token):
        token = str(token or "").strip()
        if not token:
            raise ErrorValidacion("Token inválido")
        reserva = self.db.query(Reserva).filter(Reserva.token == token).first()
        if reserva is None:
            raise ErrorNoEncontrado("Reserva no encontrada")
        return reserva.a_dict()

    def listar_mis_reservas(self, desde, hasta, email):
        d1, d2 = rango_fechas(desde, hasta)
        query = self.db.query(Reserva).filter(
            Reserva.solicitante_email == normalizar_email(email),
            Reserva.fecha >= d1,
            Reserva.fecha <= d2,
        )
        return self._con_conserje(query.order_by(Reserva.fecha, Reserva.hora_inicio).all())

    def listar_reservas_admin(self, desde, hasta, alcance):
        d1, d2 = rango_fechas(desde, hasta)
        query = self.db.query(Reserva).filter(Reserva.fecha >= d1, Reserva.fecha <= d2)
        query = filtrar_query(query, Reserva.administracion_id, alcance)
        return self._con_conserje(query.order_by(Reserva.fecha, Reserva.hora_inicio).all())

    def _con_conserje(self, reservas):
        nombres = {c.codigo: c.nombre for c in self.db.query(Conserje).filter(Conserje.activo.is_(True))}
        datos = []
        for r in reservas:
            fila = r.a_dict()
            fila["conserje_nombre"] = nombres.get(r.conserje_codigo_asignado, "")
            datos.append(fila)
        return datos
