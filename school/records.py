"""
Alta, edición, archivado y borrado definitivo de registros.

El puntero de clase del estudiante no se edita aquí: el alta abre la primera
asignación a través de ``school.ledger`` y los cambios de clase también.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models.deletion import ProtectedError

from . import audit, errors, guards, ledger
from .clock import get_clock, to_date
from .forms import StudentForm, StudentPatchForm, TeacherPatchForm, bind_patch
from .models import SchoolClass, Student, Teacher
from .validation import validate_student_data, validate_teacher_data

logger = logging.getLogger(__name__)

ENROLLMENT_REASON = 'ثبت‌نام اولیه'

MODELS = {
    guards.STUDENT: Student,
    guards.TEACHER: Teacher,
    guards.CLASS: SchoolClass,
}


def _model_for(entity_type):
    model = MODELS.get(entity_type)
    if model is None:
        raise errors.ValidationError(f'نوع موجودیت نامعتبر: {entity_type}', {'allowed': list(MODELS)})
    return model


def _form_errors(form):
    return {field: [e['message'] for e in messages] for field, messages in form.errors.get_json_data().items()}


def serialize_student(student):
    return {
        'id': student.pk,
        'student_number': student.student_number,
        'first_name': student.first_name,
        'last_name': student.last_name,
        'father_name': student.father_name,
        'national_id': student.national_id,
        'phone': student.phone,
        'email': student.email,
        'class_id': student.school_class_id,
        'grade': student.grade,
        'section': student.section,
        'is_active': student.is_active,
        'enrollment_date': student.enrollment_date,
    }


def serialize_teacher(teacher):
    return {
        'id': teacher.pk,
        'first_name': teacher.first_name,
        'last_name': teacher.last_name,
        'national_id': teacher.national_id,
        'employee_id': teacher.employee_id,
        'phone': teacher.phone,
        'email': teacher.email,
        'is_active': teacher.is_active,
    }


# =====================================================
# ALTA
# =====================================================
def enroll_student(data, class_id, start_date=None, clock=None):
    """Crea el estudiante y abre su primera asignación en una sola transacción."""
    clock = get_clock(clock)
    start = to_date(start_date, 'start_date') if start_date else clock.today()
    if class_id not in (None, ''):
        class_id = errors.as_id(class_id, 'class_id')

    form = StudentForm(data)
    if not form.is_valid():
        raise errors.ValidationError('اطلاعات وارد شده صحیح نیست', {'errors': _form_errors(form)})

    check = validate_student_data({**form.cleaned_data, 'class_id': class_id}, clock=clock)
    if not check.is_valid:
        raise errors.ConflictError('؛ '.join(check.errors), check.as_dict())

    try:
        with transaction.atomic():
            student = form.save(commit=False)
            student.enrollment_date = start
            student.save()
            assignment = ledger.assign_student_to_class(
                student.pk, class_id, start, reason=ENROLLMENT_REASON, clock=clock,
            )
    except IntegrityError as e:
        # Otro alta con el mismo código ganó la carrera
        logger.warning(f"Alta concurrente de {form.cleaned_data.get('student_number')}: {e}")
        raise errors.ConflictError('اطلاعات تکراری', {'errors': ['دانش‌آموز همزمان با همین مشخصات ثبت شد']})

    student.refresh_from_db()

    logger.info(f"Estudiante matriculado: {student} ({student.student_number})")
    audit.record('enroll_student', student_id=student.pk, class_id=class_id)
    return {
        'student': serialize_student(student),
        'assignment': assignment,
        'warnings': check.warnings,
    }


# =====================================================
# EDICIÓN
# =====================================================
def update_student(student_id, patch):
    student = Student.objects.filter(pk=student_id).first()
    if student is None:
        raise errors.NotFoundError('دانش‌آموز یافت نشد', {'student_id': student_id})
    if not isinstance(patch, dict):
        raise errors.ValidationError('اطلاعات وارد شده صحیح نیست')

    form, rejected = bind_patch(StudentPatchForm, student, patch)
    if rejected:
        raise errors.ValidationError(f"فیلدهای غیرقابل ویرایش: {', '.join(rejected)}", {'fields': rejected})
    if not form.is_valid():
        raise errors.ValidationError('اطلاعات وارد شده صحیح نیست', {'errors': _form_errors(form)})

    check = validate_student_data(
        {**form.cleaned_data, 'class_id': student.school_class_id},
        exclude_id=student.pk,
        check_capacity=False,
    )
    if not check.is_valid:
        raise errors.ConflictError('اطلاعات تکراری', check.as_dict())

    try:
        with transaction.atomic():
            student = form.save()
    except IntegrityError as e:
        logger.warning(f"Edición concurrente del estudiante {student.pk}: {e}")
        raise errors.ConflictError('اطلاعات تکراری', {'student_id': student.pk})

    logger.info(f"Estudiante actualizado: {student} ({student.student_number})")
    audit.record('update_student', student_id=student.pk, fields=sorted(patch))
    return {'student': serialize_student(student), 'warnings': check.warnings}


def update_teacher(teacher_id, patch):
    teacher = Teacher.objects.filter(pk=teacher_id).first()
    if teacher is None:
        raise errors.NotFoundError('دبیر یافت نشد', {'teacher_id': teacher_id})
    if not isinstance(patch, dict):
        raise errors.ValidationError('اطلاعات وارد شده صحیح نیست')

    form, rejected = bind_patch(TeacherPatchForm, teacher, patch)
    if rejected:
        raise errors.ValidationError(f"فیلدهای غیرقابل ویرایش: {', '.join(rejected)}", {'fields': rejected})
    if not form.is_valid():
        raise errors.ValidationError('اطلاعات وارد شده صحیح نیست', {'errors': _form_errors(form)})

    check = validate_teacher_data(form.cleaned_data, exclude_id=teacher.pk)
    if not check.is_valid:
        raise errors.ConflictError('اطلاعات تکراری', check.as_dict())

    try:
        with transaction.atomic():
            teacher = form.save()
    except IntegrityError as e:
        logger.warning(f"Edición concurrente del docente {teacher.pk}: {e}")
        raise errors.ConflictError('اطلاعات تکراری', {'teacher_id': teacher.pk})

    logger.info(f"Docente actualizado: {teacher} ({teacher.employee_id})")
    audit.record('update_teacher', teacher_id=teacher.pk, fields=sorted(patch))
    return serialize_teacher(teacher)


# =====================================================
# ARCHIVADO Y BORRADO
# =====================================================
def archive(entity_type, entity_id):
    """Borrado lógico. Archivar algo ya archivado no cambia nada y es un éxito."""
    model = _model_for(entity_type)
    obj = model.objects.filter(pk=entity_id).first()
    if obj is None:
        raise errors.NotFoundError('رکورد یافت نشد', {'entity_type': entity_type, 'id': entity_id})

    changed = obj.is_active
    if changed:
        obj.is_active = False
        obj.save(update_fields=['is_active'])
        logger.info(f"{entity_type} {obj.pk} archivado")
        audit.record('archive', entity_type=entity_type, id=obj.pk)
    return {'entity_type': entity_type, 'id': obj.pk, 'is_active': False, 'changed': changed}


def hard_delete(entity_type, entity_id):
    """Borrado definitivo, siempre precedido por ``guards.validate_deletion``."""
    model = _model_for(entity_type)
    if not model.objects.filter(pk=entity_id).exists():
        raise errors.NotFoundError('رکورد یافت نشد', {'entity_type': entity_type, 'id': entity_id})

    check = guards.validate_deletion(entity_type, entity_id)
    if not check.is_valid:
        raise errors.ConflictError('؛ '.join(check.errors), check.as_dict())

    try:
        with transaction.atomic():
            obj = model.objects.select_for_update().get(pk=entity_id)
            name = str(obj)
            obj.delete()
    except model.DoesNotExist:
        raise errors.DataIntegrityError('رکورد پس از بررسی ناپدید شد', {'entity_type': entity_type, 'id': entity_id})
    except ProtectedError:
        raise errors.ConflictError(
            'این رکورد سابقه دارد و قابل حذف نیست؛ آن را بایگانی کنید',
            {'entity_type': entity_type, 'id': entity_id},
        )

    logger.info(f"{entity_type} {entity_id} ({name}) borrado definitivamente")
    audit.record('hard_delete', entity_type=entity_type, id=entity_id, warnings=check.warnings)
    return {'entity_type': entity_type, 'id': entity_id, 'name': name, 'warnings': check.warnings}
