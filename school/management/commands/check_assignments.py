from django.core.management.base import BaseCommand, CommandError
from school.ledger import check_integrity


class Command(BaseCommand):
    help = 'Revisa el historial de clases: una asignación vigente por estudiante, puntero sincronizado y sin solapes.'

    def handle(self, *args, **options):
        findings = check_integrity()
        if not findings:
            self.stdout.write(self.style.SUCCESS('Historial de clases consistente'))
            return

        for finding in findings:
            self.stdout.write(f"[{finding['check']}] estudiante {finding['student_id']}: {finding['message']}")
        raise CommandError(f'{len(findings)} problemas de integridad encontrados')
