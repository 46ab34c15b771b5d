"""
Registro de auditoría.

La auditoría nunca es fatal: se escribe después del commit y cualquier error
al escribirla solo queda en el log.
"""
import json
import logging

from django.db import transaction

logger = logging.getLogger(__name__)


def _write(action, details):
    try:
        logger.info('%s %s', action, json.dumps(details, default=str, ensure_ascii=False, sort_keys=True))
    except Exception as e:
        logger.error(f"No se pudo registrar la auditoría de {action}: {e}")


def record(action, **details):
    """Programa una entrada de auditoría para cuando la transacción actual confirme."""
    try:
        transaction.on_commit(lambda: _write(action, details))
    except Exception as e:
        logger.error(f"No se pudo programar la auditoría de {action}: {e}")
