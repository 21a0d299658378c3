"""Ciclo de vida de las reservas: alta, cancelación, aprobación y consultas."""
from datetime import date, datetime
from itertools import combinations

import pytest

from modelos.reserva_model import Reserva, ESTADO_APROBADA, ESTADO_CANCELADA, ESTADO_PENDIENTE
from modelos.usuario_model import ESTADO_ACTIVO, ESTADO_INACTIVO, ROL_SOLICITANTE
from modelos.usuario_model import ESTADO_PENDIENTE as ESTADO_PENDIENTE_USUARIO
from logica import errores
from logica.errores import (
    ErrorConflicto, ErrorEstadoTerminal, ErrorNoAutorizado, ErrorNoEncontrado, ErrorValidacion,
)
from logica.horas import a_minutos, se_solapan
from logica.notificaciones import MOTIVO_REASIGNACION, Notificador
from logica.usuarios import usuario_o_anonimo
from logica.reservas.gestor import GestorReservas

from conftest import (
    FECHA, DespachadorFalso, crear_admin, crear_conserje, crear_reserva, crear_salon, crear_usuario,
    payload, sembrar_config,
)


def contar(db):
    return db.query(Reserva).count()


class TestCrearReserva:
    """Alta sin conflictos, estado inicial y conserje."""

    def test_salon_libre_queda_aprobada(self, db, gestor, despachador):
        crear_salon(db)
        u = crear_usuario(db, "ana@test.org", prioridad=2)

        r = gestor.crear_reserva(payload(), u)

        assert r["ok"] and r["estado"] == ESTADO_APROBADA
        assert r["requiere_aprobacion"] is False
        fila = db.get(Reserva, r["id"])
        assert r["id"].startswith("R-")
        assert (fila.hora_inicio, fila.hora_fin) == ("10:00", "11:00")
        assert fila.prioridad == 2
        assert fila.solicitante_email == "ana@test.org"
        assert fila.token == r["token"]
        assert despachador.asuntos() == ["Reserva confirmada - Salón A - 06/11/2025 10:00 a.m."]

    def test_duracion_se_ajusta(self, db, gestor):
        crear_salon(db)
        u = crear_usuario(db, "ana@test.org")

        r = gestor.crear_reserva(payload(duracion_min=10), u)
        assert db.get(Reserva, r["id"]).hora_fin == "10:30"

        r = gestor.crear_reserva(payload(hora_inicio="13:00", duracion_min=600), u)
        assert db.get(Reserva, r["id"]).hora_fin == "17:00"

        r = gestor.crear_reserva(payload(hora_inicio="18:00", duracion_min=float("inf")), u)
        assert db.get(Reserva, r["id"]).hora_fin == "18:30"

    def test_tokens_unicos(self, db, gestor):
        crear_salon(db)
        u = crear_usuario(db, "ana@test.org")
        a = gestor.crear_reserva(payload(hora_inicio="08:00"), u)
        b = gestor.crear_reserva(payload(hora_inicio="09:00"), u)
        assert a["token"] != b["token"]
        assert a["id"] != b["id"]

    @pytest.mark.parametrize("inicio,duracion,esperado", [
        ("15:00", 60, False),
        ("15:30", 60, True),
        ("16:00", 30, True),
        ("09:00", 60, False),
    ])
    def test_conserje_requerido(self, db, gestor, inicio, duracion, esperado):
        crear_salon(db)
        u = crear_usuario(db, "ana@test.org")
        r = gestor.crear_reserva(payload(hora_inicio=inicio, duracion_min=duracion), u)
        assert db.get(Reserva, r["id"]).conserje_requerido is esperado

    def test_salon_sin_conserje(self, db, gestor):
        crear_salon(db, requiere_conserje=False)
        u = crear_usuario(db, "ana@test.org")
        r = gestor.crear_reserva(payload(hora_inicio="17:00"), u)
        assert db.get(Reserva, r["id"]).conserje_requerido is False

    def test_alerta_a_conserjeria(self, db, gestor, despachador):
        sembrar_config(db, CONSERJERIA_EMAILS="conserjeria@test.org")
        crear_salon(db)
        u = crear_usuario(db, "ana@test.org")

        r = gestor.crear_reserva(payload(hora_inicio="17:00"), u)

        assert db.get(Reserva, r["id"]).conserje_notificado is True
        assert len(despachador.para("conserjeria@test.org")) == 1

    def test_sin_correo_de_conserjeria_no_marca_notificado(self, db, gestor, despachador):
        crear_salon(db)
        u = crear_usuario(db, "ana@test.org")

        r = gestor.crear_reserva(payload(hora_inicio="17:00"), u)

        assert db.get(Reserva, r["id"]).conserje_notificado is False

    def test_salon_con_aprobacion_queda_pendiente(self, db, gestor, despachador):
        sembrar_config(db, ADMIN_EMAILS="jefa@test.org")
        crear_salon(db, restriccion="CONFIRM;12:00-13:00")
        u = crear_usuario(db, "ana@test.org", prioridad=2)

        r = gestor.crear_reserva(payload(hora_inicio="14:00"), u)

        assert r["estado"] == ESTADO_PENDIENTE
        assert r["requiere_aprobacion"] is True
        assert len(despachador.para("ana@test.org")) == 1
        assert despachador.para("ana@test.org")[0]["subject"].startswith("Reserva pendiente")
        assert len(despachador.para("jefa@test.org")) == 1

    def test_la_falla_de_correo_no_revierte(self, db, salones, config, reloj):
        crear_salon(db)
        u = crear_usuario(db, "ana@test.org")
        sembrar_config(db, CONSERJERIA_EMAILS="conserjeria@test.org")
        gestor = GestorReservas(db, salones, config, Notificador(DespachadorFalso(fallar=True), config), reloj=reloj)

        r = gestor.crear_reserva(payload(hora_inicio="17:00"), u)

        fila = db.get(Reserva, r["id"])
        assert fila.estado == ESTADO_APROBADA
        assert fila.conserje_notificado is False


class TestEstadoDelUsuario:
    """Solo usuarios registrados, ACTIVOS y con rol pueden reservar."""

    @pytest.fixture(autouse=True)
    def _datos(self, db):
        crear_salon(db)
        crear_reserva(db, "R-1", "10:00", "11:00", prioridad=1)

    @pytest.mark.parametrize("estado,rol", [
        (ESTADO_INACTIVO, ROL_SOLICITANTE),
        (ESTADO_PENDIENTE_USUARIO, ROL_SOLICITANTE),
        (ESTADO_ACTIVO, ""),
    ])
    def test_usuario_no_habilitado_no_desplaza(self, db, gestor, despachador, estado, rol):
        u = crear_usuario(db, "baja@test.org", prioridad=5, estado=estado, rol=rol)

        with pytest.raises(ErrorNoAutorizado):
            gestor.crear_reserva(payload(), u)

        assert db.get(Reserva, "R-1").estado == ESTADO_APROBADA
        assert contar(db) == 1
        assert despachador.enviados == []

    def test_usuario_sin_registro(self, db, gestor):
        with pytest.raises(ErrorNoAutorizado):
            gestor.crear_reserva(payload(hora_inicio="14:00"), usuario_o_anonimo(db, "Nuevo@Test.org"))
        assert contar(db) == 1

    def test_admin_activo_reserva(self, db, gestor):
        r = gestor.crear_reserva(payload(hora_inicio="14:00"), crear_admin(db))
        assert r["estado"] == ESTADO_APROBADA


class TestValidaciones:
    """Guardias previas: salón, capacidad, horario y restricción."""

    @pytest.fixture(autouse=True)
    def _salon(self, db):
        crear_salon(db, capacidad=30)
        crear_salon(db, id="S-02", nombre="Salón B", habilitado=False)
        crear_salon(db, id="S-03", nombre="Salón C", restriccion="CONFIRM;12:00-13:00")

    @pytest.mark.parametrize("cambios,error", [
        ({"salon_id": "S-99"}, ErrorNoEncontrado),
        ({"salon_id": "S-02"}, ErrorValidacion),
        ({"cant_personas": 0}, ErrorValidacion),
        ({"cant_personas": "diez"}, ErrorValidacion),
        ({"cant_personas": 31}, ErrorValidacion),
        ({"cant_personas": float("nan")}, ErrorValidacion),
        ({"cant_personas": float("inf")}, ErrorValidacion),
        ({"fecha": "06/11/2025"}, ErrorValidacion),
        ({"hora_inicio": "25:00"}, ErrorValidacion),
    ])
    def test_rechazos_de_validacion(self, db, gestor, despachador, cambios, error):
        u = crear_usuario(db, "ana@test.org")
        with pytest.raises(error):
            gestor.crear_reserva(payload(**cambios), u)
        assert contar(db) == 0
        assert despachador.enviados == []

    @pytest.mark.parametrize("inicio,duracion", [("06:30", 60), ("19:30", 30), ("19:00", 120)])
    def test_fuera_de_horario(self, db, gestor, inicio, duracion):
        u = crear_usuario(db, "ana@test.org")
        with pytest.raises(ErrorConflicto) as exc:
            gestor.crear_reserva(payload(hora_inicio=inicio, duracion_min=duracion), u)
        assert exc.value.motivo == errores.OUT_OF_HOURS

    def test_ventana_restringida(self, db, gestor):
        u = crear_usuario(db, "jefe@test.org", prioridad=9)
        with pytest.raises(ErrorConflicto) as exc:
            gestor.crear_reserva(payload(salon_id="S-03", hora_inicio="12:30"), u)
        assert exc.value.motivo == errores.RESTRICTED_WINDOW

    def test_fuera_de_la_ventana_restringida_queda_pendiente(self, db, gestor):
        u = crear_usuario(db, "ana@test.org")
        r = gestor.crear_reserva(payload(salon_id="S-03", hora_inicio="14:00"), u)
        assert r["estado"] == ESTADO_PENDIENTE

    def test_salon_de_otra_administracion(self, db, gestor):
        crear_salon(db, id="S-20", administracion_id="2")
        u = crear_usuario(db, "ana@test.org", administracion_id="3")
        with pytest.raises(ErrorNoEncontrado):
            gestor.crear_reserva(payload(salon_id="S-20"), u)


class TestConflictos:
    """Guardias de conflicto y cancelación en cascada."""

    @pytest.fixture(autouse=True)
    def _salon(self, db):
        crear_salon(db)

    def motivo(self, gestor, usuario, **cambios):
        with pytest.raises(ErrorConflicto) as exc:
            gestor.crear_reserva(payload(**cambios), usuario)
        return exc.value.motivo

    def test_prioridad_mayor_cancela_en_cascada(self, db, gestor, despachador):
        crear_reserva(db, "R-1", "09:30", "10:15", prioridad=1, email="uno@test.org")
        crear_reserva(db, "R-2", "10:30", "11:30", prioridad=2, email="dos@test.org")
        crear_reserva(db, "R-3", "11:00", "12:00", prioridad=1, estado=ESTADO_CANCELADA)
        jefe = crear_usuario(db, "jefe@test.org", prioridad=3)

        r = gestor.crear_reserva(payload(hora_inicio="10:00", duracion_min=60), jefe)

        assert sorted(r["desplazadas"]) == ["R-1", "R-2"]
        for rid in ("R-1", "R-2"):
            previa = db.get(Reserva, rid)
            assert previa.estado == ESTADO_CANCELADA
            assert previa.cancelado_motivo == MOTIVO_REASIGNACION
            assert previa.cancelado_por == "jefe@test.org"
        assert db.get(Reserva, r["id"]).estado == ESTADO_APROBADA

        aviso = despachador.para("uno@test.org")[0]
        assert aviso["subject"].startswith("Reserva cancelada")
        assert "Disponibilidad prioritaria en ese horario." in aviso["html"]
        assert MOTIVO_REASIGNACION not in aviso["html"]

    def test_publico_externo_no_se_desplaza(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", prioridad=1, publico_tipo="EXTERNO")
        jefe = crear_usuario(db, "jefe@test.org", prioridad=5)

        assert self.motivo(gestor, jefe) == errores.EXTERNAL_AUDIENCE
        assert db.get(Reserva, "R-1").estado == ESTADO_APROBADA

    def test_misma_prioridad(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", prioridad=2)
        u = crear_usuario(db, "par@test.org", prioridad=2)
        assert self.motivo(gestor, u) == errores.SAME_PRIORITY

    def test_prioridad_menor(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", prioridad=3)
        u = crear_usuario(db, "ana@test.org", prioridad=2)
        assert self.motivo(gestor, u) == errores.LOW_PRIORITY

    def test_prioridad_cero_antes_que_misma_prioridad(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", prioridad=0)
        u = crear_usuario(db, "cero@test.org", prioridad=0)
        assert self.motivo(gestor, u) == errores.LOW_PRIORITY

    def test_prioridad_fuera_de_su_lista_de_salones(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", prioridad=1)
        u = crear_usuario(db, "jefe@test.org", prioridad=9, prioridad_salones="S-05")
        assert self.motivo(gestor, u) == errores.LOW_PRIORITY

    def test_pendiente_bloquea_en_salon_con_aprobacion(self, db, gestor):
        crear_salon(db, id="S-03", restriccion="CONFIRM")
        crear_reserva(db, "R-1", "10:00", "11:00", prioridad=1, estado=ESTADO_PENDIENTE, salon_id="S-03")
        jefe = crear_usuario(db, "jefe@test.org", prioridad=9)

        assert self.motivo(gestor, jefe, salon_id="S-03", hora_inicio="10:30") == errores.PENDING_EXISTS
        assert db.get(Reserva, "R-1").estado == ESTADO_PENDIENTE

    def test_rechazo_no_modifica_nada(self, db, gestor, despachador):
        crear_reserva(db, "R-1", "09:00", "10:00", prioridad=1)
        crear_reserva(db, "R-2", "10:00", "11:00", prioridad=1, publico_tipo="MIXTO")
        jefe = crear_usuario(db, "jefe@test.org", prioridad=5)

        assert self.motivo(gestor, jefe, hora_inicio="09:30") == errores.EXTERNAL_AUDIENCE

        assert db.get(Reserva, "R-1").estado == ESTADO_APROBADA
        assert contar(db) == 2
        assert despachador.enviados == []

    def test_nunca_se_solapan_dos_aprobadas(self, db, gestor):
        usuarios = [crear_usuario(db, "u%d@test.org" % p, prioridad=p) for p in range(1, 6)]
        intentos = [("10:00", 60), ("10:30", 90), ("09:00", 120), ("11:30", 60), ("08:30", 240)]
        for u, (inicio, duracion) in zip(usuarios, intentos):
            gestor.crear_reserva(payload(hora_inicio=inicio, duracion_min=duracion), u)

        aprobadas = db.query(Reserva).filter(Reserva.estado == ESTADO_APROBADA).all()
        for a, b in combinations(aprobadas, 2):
            assert not se_solapan(a_minutos(a.hora_inicio), a_minutos(a.hora_fin),
                                  a_minutos(b.hora_inicio), a_minutos(b.hora_fin))
        assert len(aprobadas) == 1


class TestCancelacion:
    """Cancelación por enlace y por administración."""

    def test_por_token(self, db, gestor, despachador):
        crear_reserva(db, "R-1", "10:00", "11:00", email="ana@test.org")

        assert gestor.cancelar_por_token("tok-R-1") == {"ok": True}

        fila = db.get(Reserva, "R-1")
        assert fila.estado == ESTADO_CANCELADA
        assert fila.cancelado_por == "PUBLIC"
        assert fila.cancelado_motivo == "Cancelada por el solicitante vía enlace"
        assert len(despachador.para("ana@test.org")) == 1

    def test_por_token_con_sesion(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00")
        gestor.cancelar_por_token("tok-R-1", "Ya no hace falta", email="Ana@Test.org")
        fila = db.get(Reserva, "R-1")
        assert fila.cancelado_por == "ana@test.org"
        assert fila.cancelado_motivo == "Ya no hace falta"

    def test_doble_cancelacion(self, db, gestor, despachador):
        crear_reserva(db, "R-1", "10:00", "11:00")
        gestor.cancelar_por_token("tok-R-1")
        antes = db.get(Reserva, "R-1").a_dict()

        with pytest.raises(ErrorEstadoTerminal):
            gestor.cancelar_por_token("tok-R-1", "otra vez")

        assert db.get(Reserva, "R-1").a_dict() == antes
        assert len(despachador.enviados) == 1

    def test_token_desconocido(self, gestor):
        with pytest.raises(ErrorNoEncontrado):
            gestor.cancelar_por_token("no-existe")
        with pytest.raises(ErrorValidacion):
            gestor.cancelar_por_token("  ")

    @pytest.mark.parametrize("ahora,permitido", [
        (datetime(2025, 11, 6, 9, 29), True),
        (datetime(2025, 11, 6, 9, 30), True),
        (datetime(2025, 11, 6, 9, 31), False),
        (datetime(2025, 11, 6, 11, 0), False),
    ])
    def test_admin_hasta_30_minutos_antes(self, db, salones, config, notificador, ahora, permitido):
        crear_reserva(db, "R-1", "10:00", "11:00")
        admin = crear_admin(db)
        gestor = GestorReservas(db, salones, config, notificador, reloj=lambda: ahora)

        if permitido:
            gestor.cancelar_por_admin("R-1", None, admin)
            fila = db.get(Reserva, "R-1")
            assert fila.estado == ESTADO_CANCELADA
            assert fila.cancelado_motivo == "Cancelada por administración"
            assert fila.cancelado_por == admin.email
        else:
            with pytest.raises(ErrorValidacion):
                gestor.cancelar_por_admin("R-1", None, admin)
            assert db.get(Reserva, "R-1").estado == ESTADO_APROBADA

    def test_admin_pendiente_en_cualquier_momento(self, db, salones, config, notificador):
        crear_reserva(db, "R-1", "10:00", "11:00", estado=ESTADO_PENDIENTE)
        admin = crear_admin(db)
        gestor = GestorReservas(db, salones, config, notificador, reloj=lambda: datetime(2025, 11, 6, 9, 55))

        gestor.cancelar_por_admin("R-1", "Sin aprobación", admin)
        assert db.get(Reserva, "R-1").estado == ESTADO_CANCELADA

    def test_admin_ya_cancelada(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", estado=ESTADO_CANCELADA)
        with pytest.raises(ErrorEstadoTerminal):
            gestor.cancelar_por_admin("R-1", None, crear_admin(db))

    def test_admin_de_otra_administracion(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", administracion_id="3")
        with pytest.raises(ErrorNoAutorizado):
            gestor.cancelar_por_admin("R-1", None, crear_admin(db, "admin2@test.org", administracion_id="2"))
        gestor.cancelar_por_admin("R-1", None, crear_admin(db, "general@test.org"))
        assert db.get(Reserva, "R-1").estado == ESTADO_CANCELADA


class TestAprobacion:
    def test_pendiente_a_aprobada(self, db, gestor, despachador):
        sembrar_config(db, CONSERJERIA_EMAILS="conserjeria@test.org")
        crear_reserva(db, "R-1", "17:00", "18:00", estado=ESTADO_PENDIENTE, email="ana@test.org",
                      conserje_requerido=True)

        assert gestor.aprobar("R-1", crear_admin(db)) == {"ok": True}

        fila = db.get(Reserva, "R-1")
        assert fila.estado == ESTADO_APROBADA
        assert fila.conserje_notificado is True
        assert despachador.para("ana@test.org")[0]["subject"].startswith("Reserva aprobada")
        assert len(despachador.para("conserjeria@test.org")) == 1

    def test_reaprobar_es_idempotente(self, db, gestor, despachador):
        crear_reserva(db, "R-1", "10:00", "11:00")
        assert gestor.aprobar("R-1", crear_admin(db)) == {"ok": True, "already": True}
        assert despachador.enviados == []

    def test_cancelada_no_se_aprueba(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", estado=ESTADO_CANCELADA)
        with pytest.raises(ErrorEstadoTerminal):
            gestor.aprobar("R-1", crear_admin(db))

    def test_fuera_de_alcance(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", estado=ESTADO_PENDIENTE, administracion_id="3")
        with pytest.raises(ErrorNoAutorizado):
            gestor.aprobar("R-1", crear_admin(db, "admin2@test.org", administracion_id="2"))

    def test_inexistente(self, db, gestor):
        with pytest.raises(ErrorNoEncontrado):
            gestor.aprobar("R-NADA", crear_admin(db))


class TestConsultas:
    def test_mis_reservas_con_nombre_de_conserje(self, db, gestor):
        crear_conserje(db)
        crear_reserva(db, "R-1", "17:00", "18:00", email="ana@test.org", conserje_codigo="C-00001")
        crear_reserva(db, "R-2", "10:00", "11:00", email="otro@test.org")
        crear_reserva(db, "R-3", "10:00", "11:00", email="ana@test.org", fecha=date(2025, 12, 1))

        datos = gestor.listar_mis_reservas("2025-11-01", "2025-11-30", "ANA@test.org")

        assert [d["id"] for d in datos] == ["R-1"]
        assert datos[0]["conserje_nombre"] == "Pedro"
        assert len(gestor.listar_mis_reservas(None, None, "ana@test.org")) == 2

    def test_listado_admin_por_alcance(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00", administracion_id="1")
        crear_reserva(db, "R-2", "12:00", "13:00", administracion_id="2")

        assert {d["id"] for d in gestor.listar_reservas_admin(None, None, "1")} == {"R-1", "R-2"}
        assert [d["id"] for d in gestor.listar_reservas_admin("", "", "2")] == ["R-2"]
        assert gestor.listar_reservas_admin(None, None, "2")[0]["conserje_nombre"] == ""

    def test_por_token(self, db, gestor):
        crear_reserva(db, "R-1", "10:00", "11:00")
        assert gestor.obtener_por_token("tok-R-1")["id"] == "R-1"
        assert gestor.obtener_por_token("tok-R-1")["fecha"] == FECHA.isoformat()
        with pytest.raises(ErrorNoEncontrado):
            gestor.obtener_por_token("otro")
