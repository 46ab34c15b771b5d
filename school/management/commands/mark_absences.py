from django.core.management.base import BaseCommand, CommandError
from school import errors
from school.attendance import mark_missing_as_absent


class Command(BaseCommand):
    help = 'Marca como ausentes a los estudiantes asignados que no tengan registro de asistencia en la fecha indicada (por defecto hoy).'

    def add_arguments(self, parser):
        parser.add_argument('--date', type=str, help='Fecha en formato YYYY-MM-DD. Por defecto hoy.')
        parser.add_argument('--class-id', type=int, default=None, help='Limitar a una clase')

    def handle(self, *args, **options):
        try:
            result = mark_missing_as_absent(on_date=options.get('date'), class_id=options.get('class_id'))
        except (errors.ValidationError, errors.ConflictError) as e:
            raise CommandError(e.message)

        if not result['school_day']:
            self.stdout.write(self.style.WARNING(f"{result['date']} no es día lectivo; no se registraron faltas"))
            return
        self.stdout.write(self.style.SUCCESS(
            f"Proceso terminado. Estudiantes revisados: {result['checked']}, faltas registradas: {result['created']}"
        ))
