from django.contrib import admin
from .models import Teacher, SchoolClass, Student, StudentClassAssignment, Attendance, Payment
#El puntero de clase y el historial solo se cambian desde school.ledger, aquí son de solo lectura.
admin.site.register(Teacher)
admin.site.register(SchoolClass)
admin.site.register(Payment)


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ('student_number', 'last_name', 'first_name', 'grade', 'section', 'is_active')
    list_filter = ('grade', 'section', 'is_active')
    search_fields = ('student_number', 'first_name', 'last_name', 'national_id')
    readonly_fields = ('school_class', 'grade', 'section', 'is_active')


@admin.register(StudentClassAssignment)
class StudentClassAssignmentAdmin(admin.ModelAdmin):
    list_display = ('student', 'school_class', 'start_date', 'end_date', 'is_active')
    list_filter = ('is_active',)
    readonly_fields = ('student', 'school_class', 'start_date', 'end_date', 'is_active')


@admin.register(Attendance)
class AttendanceAdmin(admin.ModelAdmin):
    list_display = ('student', 'school_class', 'date', 'status')
    list_filter = ('status', 'date')
