"""
Verificación previa a un borrado definitivo.

El archivado (``is_active=False``) no pasa por aquí: no destruye nada.
"""
import logging

from django.db import DatabaseError

from . import errors
from .models import SchoolClass, Student, Teacher
from .validation import ValidationResult

logger = logging.getLogger(__name__)

STUDENT = 'student'
TEACHER = 'teacher'
CLASS = 'class'
ENTITY_TYPES = (STUDENT, TEACHER, CLASS)


def _student_deletion(student_id):
    student = Student.objects.filter(pk=student_id).first()
    if student is None:
        return ValidationResult(['دانش‌آموز یافت نشد'])

    warnings = []
    attendance_count = student.attendances.count()
    payment_count = student.payments.count()
    if attendance_count:
        warnings.append(f'{attendance_count} رکورد حضور و غیاب حذف خواهد شد')
    if payment_count:
        warnings.append(f'{payment_count} رکورد مالی حذف خواهد شد')
    return ValidationResult([], warnings)


def _teacher_deletion(teacher_id):
    teacher = Teacher.objects.filter(pk=teacher_id).first()
    if teacher is None:
        return ValidationResult(['دبیر یافت نشد'])

    active_classes = teacher.classes.filter(is_active=True).count()
    if active_classes:
        return ValidationResult([f'دبیر دارای {active_classes} کلاس فعال است و نمی‌تواند حذف شود'])
    return ValidationResult()


def _class_deletion(class_id):
    school_class = SchoolClass.objects.filter(pk=class_id).first()
    if school_class is None:
        return ValidationResult(['کلاس یافت نشد'])

    active_students = school_class.students.filter(is_active=True).count()
    if active_students:
        return ValidationResult([
            f'کلاس {school_class.display_name} دارای {active_students} دانش‌آموز فعال است و نمی‌تواند حذف شود'
        ])
    return ValidationResult()


_CHECKS = {
    STUDENT: _student_deletion,
    TEACHER: _teacher_deletion,
    CLASS: _class_deletion,
}


def validate_deletion(entity_type, entity_id):
    """
    Devuelve un ``ValidationResult``: errores bloquean el borrado, avisos
    describen lo que se borrará en cascada.
    """
    check = _CHECKS.get(entity_type)
    if check is None:
        raise errors.ValidationError(f'نوع موجودیت نامعتبر: {entity_type}', {'allowed': list(ENTITY_TYPES)})
    try:
        return check(entity_id)
    except DatabaseError:
        logger.exception(f"Error verificando el borrado de {entity_type} {entity_id}")
        return ValidationResult(['خطا در اعتبارسنجی حذف'])
