import datetime as _dt
from itertools import count

from school.clock import FixedClock
from school.models import SchoolClass, Student, Teacher

# Miércoles
SCHOOL_DAY = _dt.date(2025, 1, 15)
# Sábado
WEEKEND_DAY = _dt.date(2025, 1, 18)

_seq = count(1)


def clock_at(day):
	return FixedClock(day)


def make_teacher(**kwargs):
	n = next(_seq)
	data = {
		'first_name': f'دبیر{n}',
		'last_name': 'احمدی',
		'national_id': f'{1000000000 + n}',
		'employee_id': f'EMP{n:04d}',
		'phone': f'0912{n:07d}',
	}
	data.update(kwargs)
	return Teacher.objects.create(**data)


def make_class(grade=1, section='الف', capacity=30, teacher=None, **kwargs):
	return SchoolClass.objects.create(grade=grade, section=section, capacity=capacity, teacher=teacher, **kwargs)


def make_student(**kwargs):
	n = next(_seq)
	data = {
		'student_number': f'S{n:05d}',
		'first_name': f'علی{n}',
		'last_name': f'رضایی{n}',
		'national_id': f'{2000000000 + n}',
	}
	data.update(kwargs)
	return Student.objects.create(**data)
