from django.test import TestCase, override_settings
from django.core.exceptions import ImproperlyConfigured
import datetime as _dt

from school import errors, ledger
from school.models import Attendance, Student, StudentClassAssignment
from .helpers import SCHOOL_DAY, WEEKEND_DAY, clock_at, make_class, make_student, make_teacher


class AssignStudentToClassTest(TestCase):
	def setUp(self):
		self.teacher = make_teacher(first_name='مریم', last_name='کریمی')
		self.c1 = make_class(grade=1, section='الف', capacity=2, teacher=self.teacher)
		self.c2 = make_class(grade=2, section='ب', capacity=30)
		self.student = make_student()

	def test_first_assignment_sets_pointer(self):
		# Otro estudiante ya ocupa uno de los dos cupos
		other = make_student()
		jan1 = _dt.date(2025, 1, 1)
		ledger.assign_student_to_class(other.pk, self.c1.pk, jan1, clock=clock_at(jan1))

		data = ledger.assign_student_to_class(self.student.pk, self.c1.pk, '2025-01-01', clock=clock_at(jan1))

		self.student.refresh_from_db()
		self.assertEqual(self.student.school_class_id, self.c1.pk)
		self.assertEqual(self.student.grade, 1)
		self.assertEqual(self.student.section, 'الف')
		rows = StudentClassAssignment.objects.filter(student=self.student)
		self.assertEqual(rows.count(), 1)
		self.assertTrue(rows[0].is_active)
		self.assertIsNone(rows[0].end_date)
		self.assertEqual(data['class_name'], 'پایه 1 - شعبه الف')
		self.assertEqual(data['teacher_name'], 'مریم کریمی')
		self.assertEqual(data['reason'], ledger.DEFAULT_REASON)
		self.assertEqual(data['duration'], '2025-01-01 - ادامه دارد')

	def test_transfer_closes_previous_assignment(self):
		jan1 = _dt.date(2025, 1, 1)
		feb1 = _dt.date(2025, 2, 1)
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, jan1, clock=clock_at(jan1))
		ledger.assign_student_to_class(self.student.pk, self.c2.pk, feb1, reason='جابجایی', clock=clock_at(feb1))

		old = StudentClassAssignment.objects.get(student=self.student, school_class=self.c1)
		self.assertEqual(old.end_date, feb1)
		self.assertFalse(old.is_active)
		new = StudentClassAssignment.objects.get(student=self.student, school_class=self.c2)
		self.assertTrue(new.is_active)
		self.assertIsNone(new.end_date)
		self.student.refresh_from_db()
		self.assertEqual(self.student.school_class_id, self.c2.pk)

		history = ledger.get_class_history(self.student.pk)
		self.assertEqual(history['total_assignments'], 2)
		self.assertEqual(history['current_assignment']['class_id'], self.c2.pk)
		self.assertEqual([row['id'] for row in history['past_assignments']], [old.pk])
		self.assertEqual(history['past_assignments'][0]['duration'], '2025-01-01 - 2025-02-01')

	def test_full_class_is_rejected(self):
		c3 = make_class(grade=3, section='ج', capacity=1)
		occupant = make_student()
		ledger.assign_student_to_class(occupant.pk, c3.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))

		with self.assertRaises(errors.ConflictError) as ctx:
			ledger.assign_student_to_class(self.student.pk, c3.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))

		self.assertIn('ظرفیت', ctx.exception.message)
		self.assertEqual(ctx.exception.details['capacity'], 1)
		self.assertFalse(StudentClassAssignment.objects.filter(student=self.student).exists())
		self.student.refresh_from_db()
		self.assertIsNone(self.student.school_class_id)

	def test_full_class_keeps_pointer_of_transferring_student(self):
		ledger.assign_student_to_class(self.student.pk, self.c2.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		c3 = make_class(grade=3, section='ج', capacity=1)
		ledger.assign_student_to_class(make_student().pk, c3.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))

		with self.assertRaises(errors.ConflictError):
			ledger.assign_student_to_class(self.student.pk, c3.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))

		self.student.refresh_from_db()
		self.assertEqual(self.student.school_class_id, self.c2.pk)
		self.assertEqual(StudentClassAssignment.objects.filter(student=self.student).count(), 1)

	def test_expired_assignments_do_not_count_for_capacity(self):
		c3 = make_class(grade=3, section='ج', capacity=1)
		old = make_student()
		ledger.assign_student_to_class(
			old.pk, c3.pk, _dt.date(2024, 9, 1), end_date=_dt.date(2024, 12, 31), clock=clock_at(_dt.date(2024, 9, 1)),
		)
		ledger.assign_student_to_class(self.student.pk, c3.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		self.student.refresh_from_db()
		self.assertEqual(self.student.school_class_id, c3.pk)

	def test_missing_fields(self):
		with self.assertRaises(errors.ValidationError):
			ledger.assign_student_to_class(self.student.pk, None, SCHOOL_DAY)
		with self.assertRaises(errors.ValidationError):
			ledger.assign_student_to_class(self.student.pk, self.c1.pk, None)

	def test_malformed_ids(self):
		with self.assertRaises(errors.ValidationError):
			ledger.assign_student_to_class(self.student.pk, 'abc', SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		with self.assertRaises(errors.ValidationError):
			ledger.assign_student_to_class('x', self.c1.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		with self.assertRaises(errors.ValidationError):
			ledger.get_assignment_as_of('x', SCHOOL_DAY)
		self.assertFalse(StudentClassAssignment.objects.exists())

	def test_end_before_start(self):
		with self.assertRaises(errors.ValidationError):
			ledger.assign_student_to_class(
				self.student.pk, self.c1.pk, SCHOOL_DAY, end_date=SCHOOL_DAY - _dt.timedelta(days=1),
				clock=clock_at(SCHOOL_DAY),
			)

	def test_unknown_student_and_class(self):
		with self.assertRaises(errors.NotFoundError):
			ledger.assign_student_to_class(999999, self.c1.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		with self.assertRaises(errors.NotFoundError) as ctx:
			ledger.assign_student_to_class(self.student.pk, 999999, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		self.assertEqual(ctx.exception.message, 'کلاس انتخاب شده موجود نیست')

	def test_backdated_start_inside_history_is_rejected(self):
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, _dt.date(2025, 1, 1), clock=clock_at(SCHOOL_DAY))
		with self.assertRaises(errors.ValidationError):
			ledger.assign_student_to_class(self.student.pk, self.c2.pk, _dt.date(2024, 12, 1), clock=clock_at(SCHOOL_DAY))
		self.assertEqual(StudentClassAssignment.objects.filter(student=self.student).count(), 1)

	def test_every_transfer_keeps_single_current_and_no_overlap(self):
		c3 = make_class(grade=3, section='ج')
		days = [_dt.date(2025, 1, 1), _dt.date(2025, 1, 10), _dt.date(2025, 1, 10), _dt.date(2025, 2, 3)]
		for day, target in zip(days, [self.c1, self.c2, c3, self.c1]):
			ledger.assign_student_to_class(self.student.pk, target.pk, day, clock=clock_at(day))
			current = ledger.current_assignments(day).filter(student=self.student)
			self.assertEqual(current.count(), 1)
			self.student.refresh_from_db()
			self.assertEqual(self.student.school_class_id, current[0].school_class_id)

		self.assertEqual(ledger.check_integrity(clock=clock_at(_dt.date(2025, 2, 3))), [])


class SameDayAttendanceTest(TestCase):
	def setUp(self):
		self.c1 = make_class(grade=1, section='الف')
		self.c2 = make_class(grade=1, section='ب')
		self.student = make_student()

	def test_transfer_today_on_school_day_marks_present(self):
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		record = Attendance.objects.get(student=self.student, date=SCHOOL_DAY)
		self.assertEqual(record.status, Attendance.PRESENT)
		self.assertEqual(record.school_class_id, self.c1.pk)
		self.assertEqual(record.notes, 'تخصیص به کلاس جدید: 1الف')

	def test_transfer_on_weekend_does_not_mark(self):
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, WEEKEND_DAY, clock=clock_at(WEEKEND_DAY))
		self.assertFalse(Attendance.objects.filter(student=self.student).exists())

	def test_future_start_does_not_mark(self):
		ledger.assign_student_to_class(
			self.student.pk, self.c1.pk, SCHOOL_DAY + _dt.timedelta(days=7), clock=clock_at(SCHOOL_DAY),
		)
		self.assertFalse(Attendance.objects.filter(student=self.student).exists())

	@override_settings(SCHOOL_AUTO_PRESENT_ON_TRANSFER=False)
	def test_auto_present_can_be_disabled(self):
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		self.assertFalse(Attendance.objects.filter(student=self.student).exists())

	def test_keep_policy_leaves_existing_row(self):
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, _dt.date(2025, 1, 1), clock=clock_at(SCHOOL_DAY))
		Attendance.objects.create(student=self.student, school_class=self.c1, date=SCHOOL_DAY, status=Attendance.LATE)

		ledger.assign_student_to_class(self.student.pk, self.c2.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))

		record = Attendance.objects.get(student=self.student, date=SCHOOL_DAY)
		self.assertEqual(record.status, Attendance.LATE)
		self.assertEqual(record.school_class_id, self.c1.pk)

	@override_settings(SCHOOL_PREVIOUS_CLASS_ATTENDANCE_POLICY='reassign')
	def test_reassign_policy_moves_existing_row(self):
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, _dt.date(2025, 1, 1), clock=clock_at(SCHOOL_DAY))
		Attendance.objects.create(student=self.student, school_class=self.c1, date=SCHOOL_DAY, status=Attendance.LATE)

		ledger.assign_student_to_class(self.student.pk, self.c2.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))

		record = Attendance.objects.get(student=self.student, date=SCHOOL_DAY)
		self.assertEqual(record.status, Attendance.LATE)
		self.assertEqual(record.school_class_id, self.c2.pk)

	@override_settings(SCHOOL_PREVIOUS_CLASS_ATTENDANCE_POLICY='borrar')
	def test_unknown_policy_is_a_configuration_error(self):
		with self.assertRaises(ImproperlyConfigured):
			ledger.assign_student_to_class(self.student.pk, self.c1.pk, SCHOOL_DAY, clock=clock_at(SCHOOL_DAY))
		self.assertFalse(StudentClassAssignment.objects.filter(student=self.student).exists())


class HistoryQueriesTest(TestCase):
	def setUp(self):
		self.c1 = make_class(grade=4, section='الف')
		self.c2 = make_class(grade=4, section='ب')
		self.student = make_student()
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, _dt.date(2025, 1, 1), clock=clock_at(WEEKEND_DAY))
		ledger.assign_student_to_class(self.student.pk, self.c2.pk, _dt.date(2025, 2, 1), clock=clock_at(_dt.date(2025, 2, 1)))

	def test_as_of_uses_half_open_intervals(self):
		self.assertIsNone(ledger.get_assignment_as_of(self.student.pk, '2024-12-31'))
		self.assertEqual(ledger.get_assignment_as_of(self.student.pk, '2025-01-31').school_class_id, self.c1.pk)
		# El día del traslado ya pertenece a la clase nueva
		self.assertEqual(ledger.get_assignment_as_of(self.student.pk, '2025-02-01').school_class_id, self.c2.pk)
		self.assertEqual(ledger.get_assignment_as_of(self.student.pk, '2030-01-01').school_class_id, self.c2.pk)

	def test_students_in_class_as_of(self):
		self.assertEqual([a.student_id for a in ledger.students_in_class_as_of(self.c1.pk, '2025-01-20')], [self.student.pk])
		self.assertEqual(list(ledger.students_in_class_as_of(self.c1.pk, '2025-02-01')), [])

	def test_overlap_newest_wins_and_is_logged(self):
		# Fila corrupta insertada por fuera del historial
		rogue = StudentClassAssignment.objects.create(
			student=self.student, school_class=self.c1, start_date=_dt.date(2025, 2, 10), is_active=False,
		)
		with self.assertLogs('school.integrity', level='WARNING') as logs:
			found = ledger.get_assignment_as_of(self.student.pk, '2025-02-15')
		self.assertEqual(found.pk, rogue.pk)
		self.assertIn('solapadas', logs.output[0])

	def test_history_without_active_row(self):
		StudentClassAssignment.objects.filter(student=self.student).update(is_active=False)
		history = ledger.get_class_history(self.student.pk)
		self.assertIsNone(history['current_assignment'])
		self.assertEqual(len(history['past_assignments']), 2)

	def test_history_unknown_student(self):
		with self.assertRaises(errors.NotFoundError):
			ledger.get_class_history(999999)

	def test_check_integrity_reports_pointer_drift(self):
		# Escritura directa del puntero, saltándose el historial
		Student.objects.filter(pk=self.student.pk).update(school_class=self.c1)
		with self.assertLogs('school.integrity', level='WARNING'):
			findings = ledger.check_integrity(clock=clock_at(_dt.date(2025, 2, 5)))
		self.assertEqual([f['check'] for f in findings], ['pointer'])
		self.assertEqual(findings[0]['student_id'], self.student.pk)
