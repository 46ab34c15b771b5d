from django.urls import path
from . import views

urlpatterns = [
    # Estudiantes e historial de clase
    path('students/', views.enroll_student, name='enroll_student'),
    path('students/validate/', views.validate_student, name='validate_student'),
    path('students/<int:student_id>/', views.update_student, name='update_student'),
    path('students/<int:student_id>/assign-class/', views.assign_class, name='assign_class'),
    path('students/<int:student_id>/class-history/', views.class_history, name='class_history'),
    path('students/<int:student_id>/assignment/', views.assignment_as_of, name='assignment_as_of'),

    # Docentes
    path('teachers/<int:teacher_id>/', views.update_teacher, name='update_teacher'),

    # Clases
    path('classes/<int:class_id>/summary/', views.class_summary, name='class_summary'),

    # Asistencia
    path('attendance/mark/', views.mark_attendance, name='mark_attendance'),
    path('attendance/bulk/', views.bulk_attendance, name='bulk_attendance'),
    path('attendance/clear/', views.clear_attendance, name='clear_attendance'),
    path('attendance/student/<int:student_id>/', views.student_attendance, name='student_attendance'),
    path('attendance/stats/today/', views.stats_today, name='stats_today'),
    path('attendance/frequent-absentees/', views.frequent_absentees, name='frequent_absentees'),

    # Borrado
    path('<str:entity_type>/<int:entity_id>/deletion-check/', views.deletion_check, name='deletion_check'),
    path('<str:entity_type>/<int:entity_id>/archive/', views.archive, name='archive'),
    path('<str:entity_type>/<int:entity_id>/delete/', views.hard_delete, name='hard_delete'),
]
