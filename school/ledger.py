"""
Historial de asignaciones estudiante <-> clase.

Este módulo es el único que escribe ``StudentClassAssignment.is_active`` y el
puntero desnormalizado del estudiante (``school_class``, ``grade``,
``section``). Todo traslado de clase pasa por ``assign_student_to_class``.

Una asignación es *vigente* cuando ``is_active`` es verdadero y su
``end_date`` es nula o no ha pasado. Para consultas históricas se usa el
intervalo semiabierto ``[start_date, end_date)``.
"""
import itertools
import logging

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError, transaction
from django.db.models import Count, Q

from . import audit, errors
from .clock import get_clock, is_school_day, to_date
from .models import Attendance, SchoolClass, Student, StudentClassAssignment

logger = logging.getLogger(__name__)
integrity_logger = logging.getLogger('school.integrity')

ONGOING = 'ادامه دارد'
DEFAULT_REASON = 'تخصیص جدید'
INITIAL_REASON = 'تخصیص اولیه'

KEEP = 'keep'
REASSIGN = 'reassign'


def current_assignments(today):
    """Asignaciones vigentes a la fecha ``today``."""
    return StudentClassAssignment.objects.filter(is_active=True).filter(
        Q(end_date__isnull=True) | Q(end_date__gte=today)
    )


def assignments_covering(on_date):
    """Asignaciones cuyo intervalo [start_date, end_date) contiene ``on_date``."""
    return StudentClassAssignment.objects.filter(start_date__lte=on_date).filter(
        Q(end_date__isnull=True) | Q(end_date__gt=on_date)
    )


def duration_label(assignment):
    end = assignment.end_date.isoformat() if assignment.end_date else ONGOING
    return f"{assignment.start_date.isoformat()} - {end}"


def serialize_assignment(assignment):
    school_class = assignment.school_class
    return {
        'id': assignment.id,
        'student_id': assignment.student_id,
        'class_id': assignment.school_class_id,
        'class_name': school_class.display_name,
        'grade': school_class.grade,
        'section': school_class.section,
        'teacher_name': school_class.teacher_name,
        'start_date': assignment.start_date,
        'end_date': assignment.end_date,
        'reason': assignment.reason or INITIAL_REASON,
        'is_active': assignment.is_active,
        'duration': duration_label(assignment),
        'created_at': assignment.created_at,
    }


# =====================================================
# TRASLADO DE CLASE
# =====================================================
def assign_student_to_class(student_id, class_id, start_date, end_date=None, reason=None, clock=None):
    """
    Asigna un estudiante a una clase a partir de ``start_date``.

    Cierra la asignación vigente (su fin pasa a ser el inicio de la nueva, sin
    hueco ni solape), crea la nueva, sincroniza el puntero del estudiante y,
    si el traslado es hoy en día lectivo, concilia la asistencia de hoy.
    No es idempotente: cada llamada es un traslado distinto.
    """
    if not class_id or not start_date:
        raise errors.ValidationError('کلاس و تاریخ شروع الزامی است')
    student_id = errors.as_id(student_id, 'student_id')
    class_id = errors.as_id(class_id, 'class_id')
    clock = get_clock(clock)
    start = to_date(start_date, 'start_date')
    end = to_date(end_date, 'end_date') if end_date else None
    if end is not None and end < start:
        raise errors.ValidationError('تاریخ پایان نمی‌تواند قبل از تاریخ شروع باشد')
    today = clock.today()

    try:
        with transaction.atomic():
            student = Student.objects.select_for_update().filter(pk=student_id).first()
            if student is None:
                raise errors.NotFoundError('دانش‌آموز یافت نشد', {'student_id': student_id})

            # Bloquear la clase serializa los traslados que compiten por su capacidad
            target = SchoolClass.objects.select_for_update().filter(pk=class_id).first()
            if target is None:
                raise errors.NotFoundError('کلاس انتخاب شده موجود نیست', {'class_id': class_id})

            occupied = current_assignments(today).filter(school_class=target).exclude(student=student).count()
            if occupied >= target.capacity:
                raise errors.ConflictError('ظرفیت کلاس تکمیل است', {
                    'class_id': target.pk,
                    'capacity': target.capacity,
                    'occupied': occupied,
                })

            _close_open_assignments(student, start, today)

            assignment = StudentClassAssignment.objects.create(
                student=student,
                school_class=target,
                start_date=start,
                end_date=end,
                reason=reason or DEFAULT_REASON,
                is_active=True,
            )
            _sync_pointer(student, target)
            _reconcile_same_day_attendance(student, target, start, clock)
    except IntegrityError as e:
        # Otro traslado del mismo estudiante ganó la carrera
        logger.warning(f"Traslado concurrente del estudiante {student_id}: {e}")
        raise errors.ConflictError('تخصیص همزمان دیگری برای این دانش‌آموز ثبت شد', {'student_id': student_id})

    logger.info(f"Estudiante {student.pk} asignado a la clase {target.pk} desde {start}")
    audit.record('assign_class', student_id=student.pk, class_id=target.pk, start_date=start, assignment_id=assignment.pk)
    return serialize_assignment(assignment)


def _close_open_assignments(student, start, today):
    history = list(StudentClassAssignment.objects.select_for_update().filter(student=student))

    # El nuevo intervalo no puede empezar dentro de uno ya registrado
    boundary = None
    for row in history:
        bounds = [row.start_date]
        is_current = row.is_active and (row.end_date is None or row.end_date >= today)
        if not is_current and row.end_date is not None:
            bounds.append(row.end_date)
        row_max = max(bounds)
        if boundary is None or row_max > boundary:
            boundary = row_max
    if boundary is not None and start < boundary:
        raise errors.ValidationError(
            'تاریخ شروع با سابقه کلاس‌های قبلی هم‌پوشانی دارد',
            {'start_date': start, 'earliest_allowed': boundary},
        )

    for row in history:
        if not row.is_active:
            continue
        if row.end_date is None or row.end_date >= today:
            row.end_date = start
            logger.info(f"Asignación {row.pk} cerrada: estudiante {student.pk} sale de la clase {row.school_class_id}")
        row.is_active = False
        row.save(update_fields=['end_date', 'is_active', 'updated_at'])


def _sync_pointer(student, school_class):
    student.school_class = school_class
    student.grade = school_class.grade
    student.section = school_class.section
    student.save(update_fields=['school_class', 'grade', 'section'])


def _reconcile_same_day_attendance(student, school_class, start, clock):
    today = clock.today()
    if start != today or not is_school_day(today):
        return None

    policy = getattr(settings, 'SCHOOL_PREVIOUS_CLASS_ATTENDANCE_POLICY', KEEP)
    if policy not in (KEEP, REASSIGN):
        raise ImproperlyConfigured(f"SCHOOL_PREVIOUS_CLASS_ATTENDANCE_POLICY desconocida: {policy}")

    existing = Attendance.objects.select_for_update().filter(student=student, date=today).first()
    if existing is None:
        if not getattr(settings, 'SCHOOL_AUTO_PRESENT_ON_TRANSFER', True):
            return None
        return Attendance.objects.create(
            student=student,
            school_class=school_class,
            date=today,
            status=Attendance.PRESENT,
            notes=f"تخصیص به کلاس جدید: {school_class.grade}{school_class.section}",
            created_at=clock.now(),
        )

    if policy == REASSIGN and existing.school_class_id != school_class.pk:
        existing.school_class = school_class
        existing.save(update_fields=['school_class'])
    return existing


# =====================================================
# CONSULTAS
# =====================================================
def get_class_history(student_id):
    student = Student.objects.filter(pk=student_id).first()
    if student is None:
        raise errors.NotFoundError('دانش‌آموز یافت نشد', {'student_id': student_id})

    rows = (
        student.class_assignments
        .select_related('school_class__teacher')
        .order_by('-start_date', '-created_at', '-id')
    )
    history = [serialize_assignment(row) for row in rows]
    # Si ninguna fila está activa (anomalía) todas quedan como pasadas
    current = next((row for row in history if row['is_active']), None)
    past = [row for row in history if not row['is_active']]

    return {
        'student': {'id': student.pk, 'name': student.full_name},
        'current_assignment': current,
        'past_assignments': past,
        'total_assignments': len(history),
        'history': history,
    }


def get_assignment_as_of(student_id, on_date):
    """
    Asignación del estudiante que contiene ``on_date``, o None.

    Si hay más de una (intervalos solapados) gana la creada más recientemente
    y se deja constancia en el log de integridad.
    """
    student_id = errors.as_id(student_id, 'student_id')
    day = to_date(on_date)
    matches = list(
        assignments_covering(day)
        .filter(student_id=student_id)
        .select_related('school_class')
        .order_by('-created_at', '-id')
    )
    if not matches:
        return None
    if len(matches) > 1:
        integrity_logger.warning(
            f"Estudiante {student_id}: {len(matches)} asignaciones solapadas el {day} "
            f"(ids {[m.pk for m in matches]}); se usa {matches[0].pk}"
        )
    return matches[0]


def students_in_class_as_of(class_id, on_date):
    class_id = errors.as_id(class_id, 'class_id')
    day = to_date(on_date)
    return assignments_covering(day).filter(school_class_id=class_id).select_related('student')


# =====================================================
# VERIFICACIÓN DE INTEGRIDAD
# =====================================================
def _overlaps(a, b):
    if a.end_date is not None and a.end_date <= a.start_date:
        return False
    if b.end_date is not None and b.end_date <= b.start_date:
        return False
    a_before_b_ends = b.end_date is None or a.start_date < b.end_date
    b_before_a_ends = a.end_date is None or b.start_date < a.end_date
    return a_before_b_ends and b_before_a_ends


def check_integrity(clock=None):
    """Busca estudiantes con varias asignaciones vigentes, puntero desfasado o solapes."""
    today = get_clock(clock).today()
    findings = []

    duplicated = (
        current_assignments(today)
        .values('student_id')
        .annotate(total=Count('id'))
        .filter(total__gt=1)
    )
    for row in duplicated:
        findings.append({
            'check': 'single_current',
            'student_id': row['student_id'],
            'message': f"{row['total']} asignaciones vigentes",
        })

    for assignment in current_assignments(today).select_related('student'):
        if assignment.student.school_class_id != assignment.school_class_id:
            findings.append({
                'check': 'pointer',
                'student_id': assignment.student_id,
                'message': (
                    f"puntero en clase {assignment.student.school_class_id}, "
                    f"asignación vigente en clase {assignment.school_class_id}"
                ),
            })

    rows = StudentClassAssignment.objects.order_by('student_id', 'start_date', 'id')
    for student_id, group in itertools.groupby(rows, key=lambda r: r.student_id):
        group = list(group)
        for a, b in itertools.combinations(group, 2):
            if _overlaps(a, b):
                findings.append({
                    'check': 'overlap',
                    'student_id': student_id,
                    'message': f"asignaciones {a.pk} y {b.pk} se solapan",
                })

    for finding in findings:
        integrity_logger.warning(f"[{finding['check']}] estudiante {finding['student_id']}: {finding['message']}")
    return findings
