"""
Validación de integridad antes de crear o editar estudiantes y docentes.

Todas las verificaciones se ejecutan y se acumulan: el llamador recibe todos
los problemas en una sola respuesta. Si las consultas fallan, se devuelve un
resultado inválido con un único error genérico en vez de lanzar excepción.
"""
import logging
import re

from django.conf import settings
from django.db import DatabaseError

from .clock import get_clock
from .ledger import current_assignments
from .models import SchoolClass, Student, Teacher

logger = logging.getLogger(__name__)

GENERIC_ERROR = 'خطا در اعتبارسنجی داده‌ها'


class ValidationResult:
    def __init__(self, errors=None, warnings=None):
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])

    @property
    def is_valid(self):
        return not self.errors

    def as_dict(self):
        return {'is_valid': self.is_valid, 'errors': self.errors, 'warnings': self.warnings}

    def __bool__(self):
        return self.is_valid

    def __repr__(self):
        return f"<ValidationResult valid={self.is_valid} errors={self.errors} warnings={self.warnings}>"


def normalize_text(text):
    """Normaliza nombres para compararlos (ي/ك árabes -> ی/ک persas)."""
    text = str(text or '').strip().lower()
    text = text.replace('ي', 'ی').replace('ك', 'ک')
    return re.sub(r'\s+', ' ', text)


def phone_variants(raw):
    """
    Representaciones habituales de un mismo teléfono: tal cual, solo dígitos,
    con cero inicial y con prefijo de país (con y sin '+').
    """
    raw = str(raw or '').strip()
    if not raw:
        return []
    digits = re.sub(r'\D', '', raw)
    cc = str(getattr(settings, 'SCHOOL_PHONE_COUNTRY_CODE', '98'))

    national = digits
    if national.startswith('00' + cc):
        national = national[2 + len(cc):]
    elif national.startswith(cc) and len(national) > 10:
        national = national[len(cc):]
    national = national.lstrip('0')

    variants = {raw, digits}
    if national:
        variants.update({national, '0' + national, cc + national, '+' + cc + national, '00' + cc + national})
    variants.discard('')
    return sorted(variants)


def _clean(value):
    return str(value).strip() if value is not None else ''


# =====================================================
# ESTUDIANTES
# =====================================================
def validate_student_data(data, exclude_id=None, clock=None, check_capacity=True):
    """
    Verifica un estudiante propuesto.

    ``data`` admite: first_name, last_name, national_id, student_number,
    phone (opcional) y class_id. ``exclude_id`` es el estudiante que se está
    editando, para que no choque consigo mismo. Con ``check_capacity=False``
    (edición sin cambio de clase) la clase es opcional y no se mira su cupo.
    """
    errors = []
    warnings = []
    today = get_clock(clock).today()

    national_id = _clean(data.get('national_id'))
    student_number = _clean(data.get('student_number'))
    phone = _clean(data.get('phone'))
    first_name = _clean(data.get('first_name'))
    last_name = _clean(data.get('last_name'))

    class_id = data.get('class_id')
    if class_id in (None, ''):
        class_id = None
        if check_capacity:
            errors.append('کلاس انتخاب نشده است')
    else:
        try:
            class_id = int(class_id)
        except (TypeError, ValueError):
            errors.append(f'شناسه کلاس نامعتبر است: {class_id}')
            class_id = None

    try:
        others = Student.objects.all()
        if exclude_id:
            others = others.exclude(pk=exclude_id)

        if national_id and others.filter(national_id=national_id).exists():
            errors.append(f'کد ملی {national_id} قبلاً ثبت شده است')

        if student_number and others.filter(student_number=student_number).exists():
            errors.append(f'شماره دانش‌آموزی {student_number} قبلاً استفاده شده است')

        if phone and others.filter(phone__in=phone_variants(phone)).exists():
            errors.append(f'شماره تلفن {phone} قبلاً ثبت شده است')

        if class_id is not None:
            # Nombres parecidos dentro de la misma clase
            wanted_first = normalize_text(first_name)
            wanted_last = normalize_text(last_name)
            classmates = others.filter(school_class_id=class_id, is_active=True)
            for classmate in classmates:
                same_first = normalize_text(classmate.first_name) == wanted_first
                same_last = normalize_text(classmate.last_name) == wanted_last
                if same_first and same_last:
                    errors.append(f'دانش‌آموز با نام {first_name} {last_name} در این کلاس قبلاً وجود دارد')
                elif same_first or same_last:
                    warnings.append(f'دانش‌آموز با نام مشابه ({classmate.full_name}) در این کلاس وجود دارد')

            if not check_capacity:
                return ValidationResult(errors, warnings)

            # Capacidad: solo cuentan las asignaciones vigentes
            school_class = SchoolClass.objects.filter(pk=class_id).first()
            if school_class is None:
                errors.append(f'کلاس با شناسه {class_id} یافت نشد')
            else:
                occupied = current_assignments(today).filter(school_class=school_class)
                if exclude_id:
                    occupied = occupied.exclude(student_id=exclude_id)
                if occupied.count() >= school_class.capacity:
                    errors.append(f'ظرفیت کلاس {school_class.grade}{school_class.section} تکمیل است')
    except DatabaseError:
        logger.exception('Error validando datos de estudiante')
        return ValidationResult([GENERIC_ERROR])

    return ValidationResult(errors, warnings)


# =====================================================
# DOCENTES
# =====================================================
def validate_teacher_data(data, exclude_id=None):
    errors = []

    national_id = _clean(data.get('national_id'))
    employee_id = _clean(data.get('employee_id'))
    phone = _clean(data.get('phone'))
    email = _clean(data.get('email')).lower()
    first_name = _clean(data.get('first_name'))
    last_name = _clean(data.get('last_name'))

    try:
        others = Teacher.objects.all()
        if exclude_id:
            others = others.exclude(pk=exclude_id)

        if national_id and others.filter(national_id=national_id).exists():
            errors.append(f'کد ملی {national_id} قبلاً ثبت شده است')

        if employee_id and others.filter(employee_id=employee_id).exists():
            errors.append(f'کد پرسنلی {employee_id} قبلاً استفاده شده است')

        if phone and others.filter(phone__in=phone_variants(phone)).exists():
            errors.append(f'شماره تلفن {phone} قبلاً ثبت شده است')

        if email and others.filter(email__iexact=email).exists():
            errors.append(f'ایمیل {email} قبلاً ثبت شده است')

        wanted = (normalize_text(first_name), normalize_text(last_name))
        for teacher in others.only('first_name', 'last_name'):
            if (normalize_text(teacher.first_name), normalize_text(teacher.last_name)) == wanted:
                errors.append(f'دبیر با نام {first_name} {last_name} قبلاً ثبت شده است')
                break
    except DatabaseError:
        logger.exception('Error validando datos de docente')
        return ValidationResult([GENERIC_ERROR])

    return ValidationResult(errors)
