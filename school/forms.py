import re

from django import forms
from django.forms.models import model_to_dict

from school.models import Student, Teacher

NATIONAL_ID_RE = re.compile(r'^\d{10}$')
MOBILE_RE = re.compile(r'^09\d{9}$')


class _NoUniqueCheckMixin:
    # Los duplicados los informa school.validation como conflicto
    def validate_unique(self):
        pass


def _clean_national_id(value):
    value = (value or '').strip()
    if not NATIONAL_ID_RE.match(value):
        raise forms.ValidationError('کد ملی باید ۱۰ رقم باشد')
    return value


def _clean_mobile(value):
    value = (value or '').strip()
    if value and not MOBILE_RE.match(value):
        raise forms.ValidationError('شماره تماس معتبر نیست')
    return value or None


class StudentForm(_NoUniqueCheckMixin, forms.ModelForm):
    """Alta de estudiante. La clase no es un campo: se asigna por el historial."""

    class Meta:
        model = Student
        fields = [
            'student_number', 'first_name', 'last_name', 'father_name', 'national_id',
            'phone', 'email', 'address', 'birth_date',
        ]

    def clean_national_id(self):
        return _clean_national_id(self.cleaned_data.get('national_id'))

    def clean_phone(self):
        return _clean_mobile(self.cleaned_data.get('phone'))


class StudentPatchForm(StudentForm):
    """Campos que se pueden editar de un estudiante existente."""

    class Meta(StudentForm.Meta):
        fields = [
            'first_name', 'last_name', 'father_name', 'national_id',
            'phone', 'email', 'address', 'birth_date',
        ]


class TeacherPatchForm(_NoUniqueCheckMixin, forms.ModelForm):
    class Meta:
        model = Teacher
        fields = ['first_name', 'last_name', 'national_id', 'employee_id', 'phone', 'email']

    def clean_national_id(self):
        return _clean_national_id(self.cleaned_data.get('national_id'))

    def clean_phone(self):
        phone = _clean_mobile(self.cleaned_data.get('phone'))
        if not phone:
            raise forms.ValidationError('شماره تماس الزامی است')
        return phone


def bind_patch(form_class, instance, patch):
    """
    Construye el formulario de edición parcial: los campos no enviados
    conservan su valor actual. Devuelve (form, campos_no_permitidos).
    """
    allowed = form_class._meta.fields
    rejected = sorted(key for key in patch if key not in allowed)
    data = model_to_dict(instance, fields=allowed)
    data.update({key: value for key, value in patch.items() if key in allowed})
    data = {key: ('' if value is None else value) for key, value in data.items()}
    return form_class(data, instance=instance), rejected
