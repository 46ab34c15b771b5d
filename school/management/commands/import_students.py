from django.core.management.base import BaseCommand, CommandError
from school import errors
from school.models import SchoolClass
from school.records import enroll_student
import os
import csv
import re
import datetime as _dt
import openpyxl


STUDENT_FIELDS = (
    'student_number', 'first_name', 'last_name', 'father_name', 'national_id',
    'phone', 'email', 'address', 'birth_date',
)


def _norm_key(k):
    if not k:
        return ''
    return re.sub(r'[^0-9a-zA-Z]+', '_', str(k)).strip('_').lower()


def _cell(value):
    if value is None:
        return ''
    if isinstance(value, _dt.datetime):
        return value.date().isoformat()
    if isinstance(value, _dt.date):
        return value.isoformat()
    # openpyxl devuelve los números largos (kod melli, teléfono) como float
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def read_rows(filepath):
    """Filas del archivo como diccionarios con claves normalizadas."""
    _, ext = os.path.splitext(filepath)
    rows = []
    if ext.lower() == '.xlsx':
        wb = openpyxl.load_workbook(filepath, read_only=True, data_only=True)
        ws = wb.active
        iterator = ws.iter_rows(values_only=True)
        headers = [_norm_key(h) for h in next(iterator, ())]
        for row in iterator:
            if not any(v not in (None, '') for v in row):
                continue
            rows.append({headers[i]: _cell(row[i]) for i in range(min(len(headers), len(row)))})
        wb.close()
    elif ext.lower() == '.csv':
        with open(filepath, newline='', encoding='utf-8-sig') as f:
            for r in csv.DictReader(f):
                rows.append({_norm_key(k): _cell(v) for k, v in r.items()})
    else:
        raise CommandError('Formato no soportado. Usa .xlsx o .csv')
    return rows


class Command(BaseCommand):
    help = 'Matricula estudiantes desde un archivo Excel (.xlsx) o CSV, abriendo su primera asignación de clase.'

    def add_arguments(self, parser):
        parser.add_argument('filepath', type=str, help='Ruta al archivo .xlsx o .csv a importar')
        parser.add_argument('--class-id', type=int, default=None, help='Clase para las filas que no indiquen una')
        parser.add_argument('--start-date', type=str, default=None, help='Fecha de inicio YYYY-MM-DD. Por defecto hoy.')

    def _resolve_class(self, row, default_class_id):
        if row.get('class_id'):
            return row['class_id']
        grade = row.get('grade')
        section = row.get('section')
        if grade and section:
            school_class = SchoolClass.objects.filter(grade=grade, section=section, is_active=True).first()
            return school_class.pk if school_class else None
        return default_class_id

    def handle(self, *args, **options):
        filepath = options['filepath']
        if not os.path.exists(filepath):
            raise CommandError(f'El archivo {filepath} no existe')

        rows = read_rows(filepath)
        created = 0
        failed = []
        for line, r in enumerate(rows, start=2):
            class_id = self._resolve_class(r, options.get('class_id'))
            if not class_id:
                failed.append((line, 'clase no encontrada'))
                self.stdout.write(self.style.WARNING(f'Fila {line}: clase no encontrada, se salta'))
                continue

            data = {k: r[k] for k in STUDENT_FIELDS if r.get(k)}
            try:
                result = enroll_student(data, class_id, start_date=options.get('start_date'))
            except errors.ServiceError as e:
                failed.append((line, e.message))
                detail = e.details.get('errors') if e.details else None
                self.stdout.write(self.style.ERROR(f'Fila {line}: {e.message} {detail or ""}'.rstrip()))
                continue
            created += 1
            for warning in result['warnings']:
                self.stdout.write(self.style.WARNING(f'Fila {line}: {warning}'))

        self.stdout.write(self.style.SUCCESS(
            f'Importación finalizada. Matriculados: {created}, Con error: {len(failed)}'
        ))
