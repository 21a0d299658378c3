"""
Errores de dominio del motor de reservas.

Se lanzan desde las guardias y servicios y app.py los convierte en
respuestas JSON con su status HTTP.
"""

# Motivos de conflicto
PENDING_EXISTS = "PENDING_EXISTS"
SAME_PRIORITY = "SAME_PRIORITY"
EXTERNAL_AUDIENCE = "EXTERNAL_AUDIENCE"
LOW_PRIORITY = "LOW_PRIORITY"
RESTRICTED_WINDOW = "RESTRICTED_WINDOW"
OUT_OF_HOURS = "OUT_OF_HOURS"
# Asignación de conserjes
CONCIERGE_BUSY = "CONCIERGE_BUSY"


class ErrorReserva(Exception):
    """Base de todos los errores que se devuelven al solicitante."""
    codigo = "ERROR"
    status = 400

    def __init__(self, mensaje, motivo=None):
        super().__init__(mensaje)
        self.mensaje = mensaje
        self.motivo = motivo

    def a_dict(self):
        datos = {"ok": False, "error": self.mensaje, "codigo": self.codigo}
        if self.motivo:
            datos["motivo"] = self.motivo
        return datos


class ErrorValidacion(ErrorReserva):
    """Fecha, hora, capacidad o duración mal formadas."""
    codigo = "VALIDATION_ERROR"
    status = 400


class ErrorNoEncontrado(ErrorReserva):
    codigo = "NOT_FOUND"
    status = 404


class ErrorNoAutorizado(ErrorReserva):
    codigo = "UNAUTHORIZED"
    status = 403


class ErrorConflicto(ErrorReserva):
    codigo = "CONFLICT"
    status = 409

    def __init__(self, motivo, mensaje):
        super().__init__(mensaje, motivo=motivo)


class ErrorEstadoTerminal(ErrorReserva):
    """Operación sobre una reserva que ya está CANCELADA."""
    codigo = "ALREADY_TERMINAL"
    status = 409
