"""
Registro y conciliación de la asistencia diaria.

La clave de un registro es (estudiante, fecha) y la fecha se compara siempre
a nivel de día: dos marcas con horas distintas del mismo día apuntan al mismo
registro. La ausencia de registro es un estado válido, distinto de ABSENT.
"""
import calendar
import datetime as _dt
import logging
from collections import Counter

from django.db import IntegrityError, transaction

from . import audit, errors, ledger
from .clock import get_clock, is_school_day, to_date
from .models import Attendance, SchoolClass, Student

logger = logging.getLogger(__name__)

VALID_STATUSES = [value for value, _label in Attendance.STATUSES]


def _check_status(status):
    if status not in VALID_STATUSES:
        raise errors.ValidationError(f'وضعیت نامعتبر: {status}', {'status': status, 'allowed': VALID_STATUSES})


def attendance_rate(present_days, total_days):
    """Porcentaje entero redondeado hacia arriba en .5; 0 si no hay días."""
    if total_days <= 0:
        return 0
    return (present_days * 200 + total_days) // (2 * total_days)


def serialize_attendance(record):
    return {
        'id': record.id,
        'student_id': record.student_id,
        'class_id': record.school_class_id,
        'date': record.date,
        'status': record.status,
        'notes': record.notes,
        'created_at': record.created_at,
    }


def _serialize_with_class(record):
    data = serialize_attendance(record)
    data['class_name'] = record.school_class.display_name
    data['teacher_name'] = record.school_class.teacher_name
    return data


# =====================================================
# MARCAR ASISTENCIA
# =====================================================
def mark_attendance(student_id, class_id, on_date, status, notes=None, clock=None):
    """Crea o sobrescribe el registro de (estudiante, fecha)."""
    if not student_id or not class_id or not on_date or not status:
        raise errors.ValidationError('اطلاعات الزامی کامل نیست')
    student_id = errors.as_id(student_id, 'student_id')
    class_id = errors.as_id(class_id, 'class_id')
    _check_status(status)
    day = to_date(on_date)
    clock = get_clock(clock)

    student = Student.objects.filter(pk=student_id).first()
    if student is None or not student.is_active:
        raise errors.NotFoundError('دانش‌آموز یافت نشد یا غیرفعال است', {'student_id': student_id})

    school_class = SchoolClass.objects.filter(pk=class_id).first()
    if school_class is None or not school_class.is_active:
        raise errors.NotFoundError('کلاس یافت نشد یا غیرفعال است', {'class_id': class_id})

    try:
        with transaction.atomic():
            record, created = Attendance.objects.update_or_create(
                student=student,
                date=day,
                defaults={
                    'status': status,
                    'notes': notes or None,
                    # el estudiante pudo haber cambiado de clase
                    'school_class': school_class,
                    'created_at': clock.now(),
                },
            )
    except IntegrityError as e:
        logger.warning(f"Registro de asistencia concurrente para {student.pk} el {day}: {e}")
        raise errors.ConflictError('حضور و غیاب این روز همزمان ثبت شد', {'student_id': student.pk, 'date': day})

    logger.info(f"Asistencia: {student} - {status} el {day}")
    audit.record('mark_attendance', student_id=student.pk, class_id=school_class.pk, date=day, status=status)

    data = serialize_attendance(record)
    data['student_name'] = student.full_name
    data['created'] = created
    return data


def bulk_mark_attendance(updates, on_date, class_id=None, clock=None):
    """
    Marca la asistencia de varios estudiantes en una sola transacción.

    Todo el lote se valida antes de escribir: si un elemento está mal formado
    o un estudiante no existe (o está inactivo) no se escribe nada.
    """
    if not isinstance(updates, (list, tuple)) or not updates:
        raise errors.ValidationError('آرایه به‌روزرسانی الزامی است')
    if not on_date:
        raise errors.ValidationError('تاریخ الزامی است')
    day = to_date(on_date)
    clock = get_clock(clock)

    student_ids = []
    for update in updates:
        if not isinstance(update, dict) or not update.get('student_id') or not update.get('status'):
            raise errors.ValidationError('هر به‌روزرسانی باید شناسه دانش‌آموز و وضعیت داشته باشد')
        _check_status(update['status'])
        sid = errors.as_id(update['student_id'], 'student_id')
        if sid in student_ids:
            raise errors.ValidationError(f'دانش‌آموز {sid} بیش از یک بار در این دسته آمده است', {'student_id': sid})
        student_ids.append(sid)

    try:
        with transaction.atomic():
            students = {
                s.pk: s for s in Student.objects.select_for_update().filter(pk__in=student_ids, is_active=True)
            }
            missing = [sid for sid in student_ids if sid not in students]
            if missing:
                raise errors.NotFoundError(
                    f"دانش‌آموزان یافت نشده یا غیرفعال: {', '.join(str(m) for m in missing)}",
                    {'missing_ids': missing},
                )

            # Clase de cada fila: la indicada, la del lote, la del historial en esa fecha o el puntero
            plan = []
            for update, sid in zip(updates, student_ids):
                cid = update.get('class_id') or class_id
                if not cid:
                    as_of = ledger.get_assignment_as_of(sid, day)
                    cid = as_of.school_class_id if as_of else students[sid].school_class_id
                if not cid:
                    raise errors.ValidationError(f'کلاس دانش‌آموز {sid} برای این تاریخ مشخص نیست', {'student_id': sid})
                plan.append((students[sid], errors.as_id(cid, 'class_id'), update))

            wanted_classes = {cid for _student, cid, _update in plan}
            known_classes = set(SchoolClass.objects.filter(pk__in=wanted_classes).values_list('pk', flat=True))
            missing_classes = sorted(wanted_classes - known_classes)
            if missing_classes:
                raise errors.NotFoundError('کلاس یافت نشد', {'missing_class_ids': missing_classes})

            now = clock.now()
            records = []
            for student, cid, update in plan:
                record, _created = Attendance.objects.update_or_create(
                    student=student,
                    date=day,
                    defaults={
                        'status': update['status'],
                        'notes': update.get('notes') or None,
                        'school_class_id': cid,
                        'created_at': now,
                    },
                )
                records.append(record)
    except IntegrityError as e:
        logger.warning(f"Lote de asistencia del {day} en conflicto: {e}")
        raise errors.ConflictError('حضور و غیاب این روز همزمان ثبت شد', {'date': day})

    by_status = Counter(record.status for record in records)
    logger.info(f"Asistencia masiva: {len(records)} registros el {day}")
    audit.record('bulk_mark_attendance', date=day, total=len(records), student_ids=student_ids)

    return {
        'date': day,
        'total_updated': len(records),
        'by_status': {s: by_status.get(s, 0) for s in VALID_STATUSES},
        'records': [serialize_attendance(record) for record in records],
    }


# =====================================================
# BORRAR ASISTENCIA
# =====================================================
def clear_class_attendance(class_id, on_date):
    """
    Borra la asistencia del día de los estudiantes que pertenecían a la clase
    en esa fecha según el historial (no según el puntero actual).
    """
    if not class_id or not on_date:
        raise errors.ValidationError('اطلاعات الزامی کامل نیست')
    class_id = errors.as_id(class_id, 'class_id')
    day = to_date(on_date)
    if not SchoolClass.objects.filter(pk=class_id).exists():
        raise errors.NotFoundError('کلاس یافت نشد', {'class_id': class_id})

    assignments = list(ledger.students_in_class_as_of(class_id, day))
    student_ids = [a.student_id for a in assignments]
    with transaction.atomic():
        deleted, _detail = Attendance.objects.filter(student_id__in=student_ids, date=day).delete()

    logger.info(f"Asistencia borrada: {deleted} registros de la clase {class_id} el {day}")
    audit.record('clear_class_attendance', class_id=class_id, date=day, deleted=deleted)
    return {
        'class_id': class_id,
        'date': day,
        'students_cleared': deleted,
        'student_names': [a.student.full_name for a in assignments],
    }


def clear_student_attendance(student_id, on_date):
    if not student_id or not on_date:
        raise errors.ValidationError('اطلاعات الزامی کامل نیست')
    student_id = errors.as_id(student_id, 'student_id')
    day = to_date(on_date)

    record = Attendance.objects.select_related('student').filter(student_id=student_id, date=day).first()
    if record is None:
        raise errors.NotFoundError('رکورد حضور و غیاب یافت نشد', {'student_id': student_id, 'date': day})
    student_name = record.student.full_name
    record.delete()

    logger.info(f"Asistencia borrada: {student_name} el {day}")
    audit.record('clear_student_attendance', student_id=student_id, date=day)
    return {'student_id': student_id, 'date': day, 'student_name': student_name}


# =====================================================
# CONSULTAS
# =====================================================
def get_student_attendance(student_id, on_date=None, month=None, year=None, clock=None):
    """
    Asistencia de un estudiante en un día concreto o en un mes.

    Para un día sin registro devuelve ``recorded=False``; no es un error.
    """
    student_id = errors.as_id(student_id, 'student_id')
    student = Student.objects.filter(pk=student_id).first()
    if student is None:
        raise errors.NotFoundError('دانش‌آموز یافت نشد', {'student_id': student_id})

    if on_date:
        day = to_date(on_date)
        record = (
            Attendance.objects.select_related('school_class__teacher')
            .filter(student=student, date=day)
            .first()
        )
        if record is None:
            return {
                'recorded': False,
                'record': None,
                'message': 'حضور و غیاب برای این تاریخ ثبت نشده است',
            }
        return {'recorded': True, 'record': _serialize_with_class(record)}

    today = get_clock(clock).today()
    try:
        month = int(month) if month not in (None, '') else today.month
        year = int(year) if year not in (None, '') else today.year
        first_day = _dt.date(year, month, 1)
        last_day = _dt.date(year, month, calendar.monthrange(year, month)[1])
    except (TypeError, ValueError):
        raise errors.ValidationError('ماه یا سال نامعتبر است', {'month': month, 'year': year})

    records = list(
        Attendance.objects.select_related('school_class__teacher')
        .filter(student=student, date__range=(first_day, last_day))
        .order_by('-date')
    )

    counts = Counter(record.status for record in records)
    total_days = len(records)
    present_days = counts[Attendance.PRESENT]
    return {
        'student': {'id': student.pk, 'name': student.full_name},
        'records': [_serialize_with_class(record) for record in records],
        'stats': {
            'total_days': total_days,
            'present_days': present_days,
            'absent_days': counts[Attendance.ABSENT],
            'late_days': counts[Attendance.LATE],
            'excused_days': counts[Attendance.EXCUSED],
            'attendance_rate': attendance_rate(present_days, total_days),
        },
        'period': {'month': month, 'year': year, 'start': first_day, 'end': last_day},
    }


# =====================================================
# CIERRE DEL DÍA
# =====================================================
def mark_missing_as_absent(on_date=None, class_id=None, clock=None):
    """
    Marca ABSENT a los estudiantes activos asignados en la fecha que no
    tengan registro. Solo en días lectivos.
    """
    clock = get_clock(clock)
    day = to_date(on_date) if on_date else clock.today()
    if not is_school_day(day):
        return {'date': day, 'checked': 0, 'created': 0, 'school_day': False}

    assignments = ledger.assignments_covering(day).filter(student__is_active=True)
    if class_id:
        assignments = assignments.filter(school_class_id=errors.as_id(class_id, 'class_id'))

    now = clock.now()
    checked = 0
    created = 0
    try:
        with transaction.atomic():
            recorded = set(Attendance.objects.filter(date=day).values_list('student_id', flat=True))
            seen = set()
            # Con solapes gana la asignación más reciente, igual que en el historial
            for assignment in assignments.order_by('student_id', '-created_at', '-id'):
                if assignment.student_id in seen:
                    continue
                seen.add(assignment.student_id)
                checked += 1
                if assignment.student_id in recorded:
                    continue
                Attendance.objects.create(
                    student_id=assignment.student_id,
                    school_class_id=assignment.school_class_id,
                    date=day,
                    status=Attendance.ABSENT,
                    notes='ثبت خودکار غیبت در پایان روز',
                    created_at=now,
                )
                created += 1
    except IntegrityError as e:
        # Alguien marcó asistencia mientras se cerraba el día
        logger.warning(f"Cierre del día {day} en conflicto: {e}")
        raise errors.ConflictError('حضور و غیاب این روز همزمان ثبت شد', {'date': day})

    logger.info(f"Cierre del día {day}: estudiantes revisados {checked}, faltas registradas {created}")
    if created:
        audit.record('mark_missing_as_absent', date=day, class_id=class_id, created=created)
    return {'date': day, 'checked': checked, 'created': created, 'school_day': True}
