"""
Resultado discriminado de una operación de servicio.

``call()`` ejecuta un servicio y devuelve un ``Result``: éxito con su carga, o
fallo con un ``kind`` (VALIDATION, NOT_FOUND, CONFLICT, INTERNAL) y un mensaje.
Los errores de integridad y los inesperados se registran en el log y se
reportan como un fallo interno genérico; nunca tumban el proceso.
"""
import logging

from . import errors

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = 'خطای داخلی سرور'

HTTP_STATUS = {
    errors.VALIDATION: 400,
    errors.NOT_FOUND: 404,
    errors.CONFLICT: 409,
    errors.INTERNAL: 500,
}


class Result:
    def __init__(self, ok, data=None, kind=None, message='', details=None):
        self.ok = ok
        self.data = data
        self.kind = kind
        self.message = message
        self.details = details or {}

    @classmethod
    def success(cls, data=None, message=''):
        return cls(True, data=data, message=message)

    @classmethod
    def failure(cls, kind, message, details=None):
        return cls(False, kind=kind, message=message, details=details)

    @property
    def http_status(self):
        if self.ok:
            return 200
        return HTTP_STATUS.get(self.kind, 500)

    def as_dict(self):
        if self.ok:
            payload = {'success': True, 'data': self.data}
            if self.message:
                payload['message'] = self.message
            return payload
        payload = {'success': False, 'kind': self.kind, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload

    def __repr__(self):
        if self.ok:
            return f"<Result ok data={self.data!r}>"
        return f"<Result {self.kind} {self.message!r}>"


def call(func, *args, **kwargs):
    """Ejecuta ``func`` y traduce sus excepciones a un ``Result``."""
    try:
        data = func(*args, **kwargs)
    except errors.DataIntegrityError as e:
        logger.error(f"Integridad de datos comprometida en {func.__name__}: {e.message} {e.details}")
        return Result.failure(errors.INTERNAL, GENERIC_ERROR_MESSAGE)
    except errors.ServiceError as e:
        return Result.failure(e.kind, e.message, e.details)
    except Exception:
        logger.exception(f"Error inesperado en {func.__name__}")
        return Result.failure(errors.INTERNAL, GENERIC_ERROR_MESSAGE)
    return Result.success(data)
