"""
Consultas de lectura para el panel: estadísticas del día, faltas frecuentes y
resumen de clase.
"""
import datetime as _dt

from django.conf import settings
from django.db.models import Count, Q

from . import errors, ledger
from .attendance import VALID_STATUSES, attendance_rate
from .clock import get_clock, to_date
from .models import Attendance, SchoolClass, Student


def attendance_stats_for_day(on_date=None, clock=None):
    clock = get_clock(clock)
    day = to_date(on_date) if on_date else clock.today()

    counts = dict(
        Attendance.objects.filter(date=day).values('status').annotate(n=Count('id')).values_list('status', 'n')
    )
    by_status = {status: counts.get(status, 0) for status in VALID_STATUSES}
    active_students = Student.objects.filter(is_active=True).count()
    return {
        'date': day,
        'by_status': by_status,
        'total_marked': sum(by_status.values()),
        'active_students': active_students,
        'attendance_rate': attendance_rate(by_status[Attendance.PRESENT], active_students),
    }


def frequent_absentees(threshold=None, days=None, clock=None):
    """Estudiantes activos con más de ``threshold`` faltas en los últimos ``days`` días."""
    if threshold is None:
        threshold = getattr(settings, 'SCHOOL_FREQUENT_ABSENCE_THRESHOLD', 3)
    if days is None:
        days = getattr(settings, 'SCHOOL_FREQUENT_ABSENCE_DAYS', 30)
    try:
        threshold = int(threshold)
        days = int(days)
    except (TypeError, ValueError):
        raise errors.ValidationError('پارامترهای گزارش نامعتبر است')
    if threshold < 0 or days <= 0:
        raise errors.ValidationError('پارامترهای گزارش نامعتبر است', {'threshold': threshold, 'days': days})

    today = get_clock(clock).today()
    since = today - _dt.timedelta(days=days)
    students = (
        Student.objects.filter(is_active=True)
        .annotate(absences=Count(
            'attendances',
            filter=Q(attendances__status=Attendance.ABSENT, attendances__date__gte=since),
        ))
        .filter(absences__gt=threshold)
        .order_by('-absences', 'last_name', 'first_name')
    )
    return {
        'since': since,
        'until': today,
        'threshold': threshold,
        'students': [
            {
                'id': s.pk,
                'name': s.full_name,
                'class_id': s.school_class_id,
                'grade': s.grade,
                'section': s.section,
                'absences': s.absences,
            }
            for s in students
        ],
    }


def class_summary(class_id, clock=None):
    school_class = SchoolClass.objects.select_related('teacher').filter(pk=class_id).first()
    if school_class is None:
        raise errors.NotFoundError('کلاس یافت نشد', {'class_id': class_id})

    today = get_clock(clock).today()
    current = (
        ledger.current_assignments(today)
        .filter(school_class=school_class, student__is_active=True)
        .select_related('student')
        .order_by('student__last_name', 'student__first_name')
    )
    students = [
        {'id': a.student_id, 'name': a.student.full_name, 'student_number': a.student.student_number, 'since': a.start_date}
        for a in current
    ]
    return {
        'class_id': school_class.pk,
        'class_name': school_class.display_name,
        'grade': school_class.grade,
        'section': school_class.section,
        'teacher_name': school_class.teacher_name,
        'capacity': school_class.capacity,
        'current_students': len(students),
        'available_spots': max(school_class.capacity - len(students), 0),
        'is_active': school_class.is_active,
        'students': students,
    }
