from django.test import TestCase, Client
from unittest.mock import patch
import datetime as _dt
import json

from school import errors, ledger
from school.models import Attendance, Teacher
from school.results import Result, call
from .helpers import SCHOOL_DAY, WEEKEND_DAY, clock_at, make_class, make_student, make_teacher


class ResultTest(TestCase):
	def test_service_errors_keep_their_kind(self):
		def boom():
			raise errors.ConflictError('پر است', {'capacity': 1})
		result = call(boom)
		self.assertFalse(result.ok)
		self.assertEqual(result.kind, errors.CONFLICT)
		self.assertEqual(result.http_status, 409)
		self.assertEqual(result.details, {'capacity': 1})

	def test_unexpected_errors_become_generic_internal(self):
		def boom():
			raise RuntimeError('secreto')
		with self.assertLogs('school.results', level='ERROR'):
			result = call(boom)
		self.assertEqual(result.kind, errors.INTERNAL)
		self.assertEqual(result.http_status, 500)
		self.assertNotIn('secreto', result.message)

	def test_integrity_errors_are_logged_and_hidden(self):
		def boom():
			raise errors.DataIntegrityError('dos filas vigentes', {'student_id': 1})
		with self.assertLogs('school.results', level='ERROR'):
			result = call(boom)
		self.assertEqual(result.kind, errors.INTERNAL)
		self.assertEqual(result.details, {})

	def test_success(self):
		result = Result.success({'a': 1})
		self.assertEqual(result.as_dict(), {'success': True, 'data': {'a': 1}})
		self.assertEqual(result.http_status, 200)


class JsonViewsTest(TestCase):
	def setUp(self):
		self.client = Client()
		self.teacher = make_teacher()
		self.c1 = make_class(grade=1, section='الف', capacity=1, teacher=self.teacher)
		self.c2 = make_class(grade=1, section='ب')
		self.student = make_student()
		ledger.assign_student_to_class(self.student.pk, self.c1.pk, _dt.date(2025, 1, 1), clock=clock_at(WEEKEND_DAY))

	def post_json(self, url, payload, method='post'):
		return getattr(self.client, method)(url, data=json.dumps(payload), content_type='application/json')

	def test_assign_class_and_history(self):
		url = f'/api/students/{self.student.pk}/assign-class/'
		with patch('school.clock.timezone.localdate', return_value=WEEKEND_DAY):
			response = self.post_json(url, {'class_id': self.c2.pk, 'start_date': '2025-02-01', 'reason': 'درخواست والدین'})
		self.assertEqual(response.status_code, 200)
		body = response.json()
		self.assertTrue(body['success'])
		self.assertEqual(body['data']['class_id'], self.c2.pk)
		self.assertEqual(body['data']['start_date'], '2025-02-01')

		history = self.client.get(f'/api/students/{self.student.pk}/class-history/').json()['data']
		self.assertEqual(history['total_assignments'], 2)

		as_of = self.client.get(f'/api/students/{self.student.pk}/assignment/', {'date': '2025-01-20'}).json()
		self.assertEqual(as_of['data']['class_id'], self.c1.pk)

	def test_status_codes(self):
		other = make_student()
		full = self.post_json(f'/api/students/{other.pk}/assign-class/', {'class_id': self.c1.pk, 'start_date': '2025-02-01'})
		self.assertEqual(full.status_code, 409)
		self.assertEqual(full.json()['kind'], errors.CONFLICT)

		missing = self.post_json('/api/students/999999/assign-class/', {'class_id': self.c2.pk, 'start_date': '2025-02-01'})
		self.assertEqual(missing.status_code, 404)

		invalid = self.post_json(f'/api/students/{other.pk}/assign-class/', {'start_date': '2025-02-01'})
		self.assertEqual(invalid.status_code, 400)

		broken = self.client.post(f'/api/students/{other.pk}/assign-class/', data='{no json', content_type='application/json')
		self.assertEqual(broken.status_code, 400)

		wrong_method = self.client.get(f'/api/students/{other.pk}/assign-class/')
		self.assertEqual(wrong_method.status_code, 405)

	def test_malformed_ids_are_bad_requests(self):
		responses = [
			self.post_json(f'/api/students/{self.student.pk}/assign-class/', {'class_id': 'abc', 'start_date': '2025-02-01'}),
			self.post_json('/api/attendance/mark/', {'student_id': 'x', 'class_id': self.c1.pk, 'date': '2025-03-01', 'status': 'PRESENT'}),
			self.post_json('/api/attendance/clear/', {'class_id': 'abc', 'date': '2025-03-01'}),
			self.client.delete('/api/attendance/clear/?student_id=x&date=2025-03-01'),
			self.client.get(f'/api/attendance/student/{self.student.pk}/', {'month': '1', 'year': '0'}),
			self.post_json('/api/students/validate/', {'exclude_id': 'x', 'class_id': self.c2.pk}),
		]
		for response in responses:
			self.assertEqual(response.status_code, 400)
			self.assertEqual(response.json()['kind'], errors.VALIDATION)
		self.student.refresh_from_db()
		self.assertEqual(self.student.school_class_id, self.c1.pk)

	def test_mark_and_clear_attendance(self):
		payload = {'student_id': self.student.pk, 'class_id': self.c1.pk, 'date': '2025-03-01', 'status': 'ABSENT'}
		self.assertEqual(self.post_json('/api/attendance/mark/', payload).status_code, 200)
		payload['status'] = 'HOLIDAY'
		self.assertEqual(self.post_json('/api/attendance/mark/', payload).status_code, 400)

		response = self.client.delete(f'/api/attendance/clear/?student_id={self.student.pk}&date=2025-03-01')
		self.assertEqual(response.status_code, 200)
		response = self.client.delete(f'/api/attendance/clear/?student_id={self.student.pk}&date=2025-03-01')
		self.assertEqual(response.status_code, 404)

	def test_bulk_rejects_whole_batch(self):
		response = self.post_json('/api/attendance/bulk/', {
			'date': '2025-03-02',
			'updates': [
				{'student_id': self.student.pk, 'status': 'PRESENT'},
				{'student_id': 999999, 'status': 'PRESENT'},
			],
		})
		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.json()['details']['missing_ids'], [999999])
		self.assertFalse(Attendance.objects.filter(date=_dt.date(2025, 3, 2)).exists())

	def test_student_attendance_not_recorded(self):
		response = self.client.get(f'/api/attendance/student/{self.student.pk}/', {'date': SCHOOL_DAY.isoformat()})
		self.assertEqual(response.status_code, 200)
		self.assertFalse(response.json()['data']['recorded'])

	def test_validate_student(self):
		response = self.post_json('/api/students/validate/', {
			'first_name': self.student.first_name,
			'last_name': self.student.last_name,
			'national_id': self.student.national_id,
			'student_number': 'NEW-1',
			'class_id': self.c2.pk,
		})
		self.assertEqual(response.status_code, 200)
		data = response.json()['data']
		self.assertFalse(data['is_valid'])
		self.assertEqual(len(data['errors']), 1)

	def test_deletion_check_and_hard_delete(self):
		check = self.client.get(f'/api/teacher/{self.teacher.pk}/deletion-check/').json()
		self.assertFalse(check['data']['is_valid'])

		response = self.client.delete(f'/api/teacher/{self.teacher.pk}/delete/')
		self.assertEqual(response.status_code, 409)
		self.assertTrue(Teacher.objects.filter(pk=self.teacher.pk).exists())

		unknown = self.client.get(f'/api/payment/{self.teacher.pk}/deletion-check/')
		self.assertEqual(unknown.status_code, 400)

	def test_archive_twice(self):
		first = self.client.post(f'/api/student/{self.student.pk}/archive/')
		second = self.client.post(f'/api/student/{self.student.pk}/archive/')
		self.assertEqual(first.status_code, 200)
		self.assertEqual(second.status_code, 200)
		self.assertFalse(second.json()['data']['changed'])

	def test_update_student_rejects_protected_fields(self):
		response = self.post_json(f'/api/students/{self.student.pk}/', {'school_class': self.c2.pk}, method='patch')
		self.assertEqual(response.status_code, 400)

	def test_class_summary(self):
		with patch('school.clock.timezone.localdate', return_value=SCHOOL_DAY):
			data = self.client.get(f'/api/classes/{self.c1.pk}/summary/').json()['data']
		self.assertEqual(data['current_students'], 1)
		self.assertEqual(data['available_spots'], 0)
		self.assertEqual(data['teacher_name'], self.teacher.full_name)

	def test_stats_and_frequent_absentees(self):
		for offset in range(4):
			Attendance.objects.create(
				student=self.student, school_class=self.c1,
				date=SCHOOL_DAY - _dt.timedelta(days=offset), status=Attendance.ABSENT,
			)
		with patch('school.clock.timezone.localdate', return_value=SCHOOL_DAY):
			stats = self.client.get('/api/attendance/stats/today/').json()['data']
			absentees = self.client.get('/api/attendance/frequent-absentees/').json()['data']
		self.assertEqual(stats['by_status']['ABSENT'], 1)
		self.assertEqual(stats['attendance_rate'], 0)
		self.assertEqual([s['id'] for s in absentees['students']], [self.student.pk])
		self.assertEqual(absentees['students'][0]['absences'], 4)
