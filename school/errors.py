"""
Excepciones de los servicios.

Cada excepción lleva un ``kind`` legible por máquina para que la capa HTTP
pueda traducirlo a un código de estado sin que los servicios conozcan HTTP.
"""

VALIDATION = 'VALIDATION'
NOT_FOUND = 'NOT_FOUND'
CONFLICT = 'CONFLICT'
INTERNAL = 'INTERNAL'


class ServiceError(Exception):
    kind = INTERNAL

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ServiceError):
    """Entrada mal formada: campo faltante, estado inválido, fecha ilegible."""
    kind = VALIDATION


class NotFoundError(ServiceError):
    kind = NOT_FOUND


class ConflictError(ServiceError):
    """Capacidad agotada, dato duplicado o borrado bloqueado."""
    kind = CONFLICT


class DataIntegrityError(ServiceError):
    """Datos corruptos o carreras detectadas después de una verificación."""
    kind = INTERNAL


def as_id(value, field='id'):
    """Convierte un identificador recibido como texto; si no es entero es un error de validación."""
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'شناسه نامعتبر: {value}', {'field': field})
