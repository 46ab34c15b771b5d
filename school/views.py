import json

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from . import attendance, errors, guards, ledger, records, reports
from .results import Result, call
from .validation import validate_student_data


def _respond(result):
    return JsonResponse(result.as_dict(), status=result.http_status)


def _body(request):
    """Cuerpo JSON de la petición; un cuerpo vacío equivale a {}."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise errors.ValidationError('بدنه درخواست JSON معتبر نیست')
    if not isinstance(data, dict):
        raise errors.ValidationError('بدنه درخواست JSON معتبر نیست')
    return data


def _bad_body(e):
    return _respond(Result.failure(e.kind, e.message, e.details))


# =====================================================
# ASIGNACIÓN DE CLASE
# =====================================================
@csrf_exempt
@require_http_methods(["POST"])
def assign_class(request, student_id):
    """
    Traslada al estudiante a otra clase desde la fecha indicada
    """
    try:
        data = _body(request)
    except errors.ValidationError as e:
        return _bad_body(e)
    return _respond(call(
        ledger.assign_student_to_class,
        student_id,
        data.get('class_id'),
        data.get('start_date'),
        end_date=data.get('end_date'),
        reason=data.get('reason'),
    ))


@require_http_methods(["GET"])
def class_history(request, student_id):
    """Historial de clases del estudiante, vigente y pasadas"""
    return _respond(call(ledger.get_class_history, student_id))


@require_http_methods(["GET"])
def assignment_as_of(request, student_id):
    """
    Clase a la que pertenecía el estudiante en ?date=YYYY-MM-DD
    """
    def lookup():
        assignment = ledger.get_assignment_as_of(student_id, request.GET.get('date'))
        return ledger.serialize_assignment(assignment) if assignment else None
    return _respond(call(lookup))


# =====================================================
# ASISTENCIA
# =====================================================
@csrf_exempt
@require_http_methods(["POST"])
def mark_attendance(request):
    """
    Registra o sobrescribe la asistencia de un estudiante en un día
    """
    try:
        data = _body(request)
    except errors.ValidationError as e:
        return _bad_body(e)
    return _respond(call(
        attendance.mark_attendance,
        data.get('student_id'),
        data.get('class_id'),
        data.get('date'),
        data.get('status'),
        notes=data.get('notes'),
    ))


@csrf_exempt
@require_http_methods(["POST"])
def bulk_attendance(request):
    """Asistencia de varios estudiantes: todo el lote o nada"""
    try:
        data = _body(request)
    except errors.ValidationError as e:
        return _bad_body(e)
    return _respond(call(
        attendance.bulk_mark_attendance,
        data.get('updates'),
        data.get('date'),
        class_id=data.get('class_id'),
    ))


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
def clear_attendance(request):
    """POST borra la asistencia de una clase; DELETE la de un estudiante."""
    if request.method == 'DELETE':
        return _respond(call(
            attendance.clear_student_attendance,
            request.GET.get('student_id'),
            request.GET.get('date'),
        ))
    try:
        data = _body(request)
    except errors.ValidationError as e:
        return _bad_body(e)
    return _respond(call(attendance.clear_class_attendance, data.get('class_id'), data.get('date')))


@require_http_methods(["GET"])
def student_attendance(request, student_id):
    """
    Asistencia de un estudiante en un día (?date) o en un mes (?month, ?year)
    """
    return _respond(call(
        attendance.get_student_attendance,
        student_id,
        on_date=request.GET.get('date'),
        month=request.GET.get('month'),
        year=request.GET.get('year'),
    ))


@require_http_methods(["GET"])
def stats_today(request):
    """Conteo de asistencia de hoy por estado"""
    return _respond(call(reports.attendance_stats_for_day))


@require_http_methods(["GET"])
def frequent_absentees(request):
    """Estudiantes con muchas faltas en los últimos días"""
    return _respond(call(
        reports.frequent_absentees,
        threshold=request.GET.get('threshold'),
        days=request.GET.get('days'),
    ))


# =====================================================
# ESTUDIANTES, DOCENTES Y CLASES
# =====================================================
@csrf_exempt
@require_http_methods(["POST"])
def enroll_student(request):
    """
    Matricula un estudiante nuevo y abre su primera asignación de clase
    """
    try:
        data = _body(request)
    except errors.ValidationError as e:
        return _bad_body(e)
    class_id = data.pop('class_id', None)
    start_date = data.pop('start_date', None)
    return _respond(call(records.enroll_student, data, class_id, start_date=start_date))


@csrf_exempt
@require_http_methods(["POST"])
def validate_student(request):
    """Verifica duplicados, nombres y cupo sin guardar nada"""
    try:
        data = _body(request)
    except errors.ValidationError as e:
        return _bad_body(e)
    exclude_id = data.pop('exclude_id', None)

    def check():
        excluded = errors.as_id(exclude_id, 'exclude_id') if exclude_id not in (None, '') else None
        return validate_student_data(data, exclude_id=excluded).as_dict()
    return _respond(call(check))


@csrf_exempt
@require_http_methods(["PATCH"])
def update_student(request, student_id):
    """Edición parcial de los datos personales del estudiante"""
    try:
        data = _body(request)
    except errors.ValidationError as e:
        return _bad_body(e)
    return _respond(call(records.update_student, student_id, data))


@csrf_exempt
@require_http_methods(["PATCH"])
def update_teacher(request, teacher_id):
    """Edición parcial de los datos del docente"""
    try:
        data = _body(request)
    except errors.ValidationError as e:
        return _bad_body(e)
    return _respond(call(records.update_teacher, teacher_id, data))


@require_http_methods(["GET"])
def deletion_check(request, entity_type, entity_id):
    """
    Indica si el registro se puede borrar y qué se borraría en cascada
    """
    def check():
        return guards.validate_deletion(entity_type, entity_id).as_dict()
    return _respond(call(check))


@csrf_exempt
@require_http_methods(["POST"])
def archive(request, entity_type, entity_id):
    """Borrado lógico (is_active = False)"""
    return _respond(call(records.archive, entity_type, entity_id))


@csrf_exempt
@require_http_methods(["DELETE"])
def hard_delete(request, entity_type, entity_id):
    """
    Borrado definitivo, solo si la verificación de borrado lo permite
    """
    return _respond(call(records.hard_delete, entity_type, entity_id))


@require_http_methods(["GET"])
def class_summary(request, class_id):
    """Resumen de la clase con sus estudiantes actuales y cupos libres"""
    return _respond(call(reports.class_summary, class_id))
