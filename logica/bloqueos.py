"""
Candados por recurso dentro de la transacción actual.

`bloquear(db, clave)` garantiza la fila del candado y la toma con
SELECT ... FOR UPDATE, tocándola para que también motores sin FOR UPDATE
(SQLite) serialicen a los escritores. El candado se libera con el commit
o rollback de la sesión.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from modelos.bloqueo_model import Bloqueo

logger = logging.getLogger(__name__)


def clave_salon(salon_id, fecha):
    return "salon:%s:%s" % (salon_id, fecha.isoformat())


def clave_conserje(codigo, fecha):
    return "conserje:%s:%s" % (codigo, fecha.isoformat())


def bloquear(db, clave):
    if db.get(Bloqueo, clave) is None:
        try:
            with db.begin_nested():
                db.add(Bloqueo(clave=clave, tomado_en=datetime.now()))
        except IntegrityError:
            # Otro proceso la creó primero
            logger.debug("Fila de candado %s ya existía", clave)

    fila = db.query(Bloqueo).filter(Bloqueo.clave == clave).with_for_update().one()
    fila.tomado_en = datetime.now()
    db.flush()
    return fila
