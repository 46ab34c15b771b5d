"""
Fuente de tiempo de los servicios.

Los servicios nunca llaman a ``timezone.now()`` directamente: reciben un reloj
(o usan el configurado en ``settings.SCHOOL_CLOCK``) para que las pruebas
puedan fijar la fecha.
"""
import datetime as _dt

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from django.utils.module_loading import import_string

from . import errors


class SystemClock:
    def now(self):
        return timezone.now()

    def today(self):
        return timezone.localdate()


class FixedClock:
    """Reloj detenido en un instante dado (date o datetime)."""

    def __init__(self, moment):
        if isinstance(moment, _dt.datetime):
            if timezone.is_naive(moment):
                moment = timezone.make_aware(moment)
            self._now = moment
        else:
            self._now = timezone.make_aware(_dt.datetime.combine(moment, _dt.time(8, 0)))

    def now(self):
        return self._now

    def today(self):
        return timezone.localdate(self._now)


def get_clock(clock=None):
    if clock is not None:
        return clock
    return import_string(getattr(settings, 'SCHOOL_CLOCK', 'school.clock.SystemClock'))()


def to_date(value, field='date'):
    """
    Normaliza una fecha de entrada a un ``date`` (medianoche, sin hora).

    Acepta date, datetime (los aware se pasan a hora local antes de truncar)
    y cadenas 'YYYY-MM-DD' o ISO con hora.
    """
    if value is None or value == '':
        raise errors.ValidationError('تاریخ الزامی است', {'field': field})
    if isinstance(value, _dt.datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    if isinstance(value, _dt.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            parsed = parse_date(text)
            if parsed is not None:
                return parsed
            parsed_dt = parse_datetime(text)
        except ValueError:
            parsed_dt = None
        if parsed_dt is not None:
            return to_date(parsed_dt, field)
    raise errors.ValidationError(f'تاریخ نامعتبر: {value}', {'field': field})


def is_school_day(day):
    return day.weekday() in getattr(settings, 'SCHOOL_WEEKDAYS', (0, 1, 2, 3, 4))
