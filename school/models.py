"""
Aquí se colocan los modelos que representan las entidades del sistema:

Docente Clase Estudiante AsignacionDeClase Asistencia Pago
"""
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


#=======================
#Modelo Docente
#=======================
class Teacher(models.Model):
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    national_id = models.CharField(max_length=10, unique=True)
    employee_id = models.CharField(max_length=20, unique=True)
    phone = models.CharField(max_length=20)
    email = models.EmailField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __str__(self):
        return self.full_name


#=======================
#Modelo Clase
#=======================
class SchoolClass(models.Model):
    grade = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(6)])
    section = models.CharField(max_length=10)
    # SET_NULL: una clase archivada no impide borrar a su antiguo docente
    teacher = models.ForeignKey(Teacher, on_delete=models.SET_NULL, null=True, blank=True, related_name="classes")
    capacity = models.PositiveIntegerField(default=30)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['grade', 'section'],
                condition=Q(is_active=True),
                name='uq_active_class_grade_section',
            ),
        ]

    @property
    def display_name(self):
        return f"پایه {self.grade} - شعبه {self.section}"

    @property
    def teacher_name(self):
        return self.teacher.full_name if self.teacher else ''

    def __str__(self):
        return self.display_name
"""
👉 Una clase es una combinación grado/sección con un docente y una capacidad.
Solo puede haber una clase activa por cada par (grado, sección).
"""


#=======================
#Modelo Estudiante
#=======================
class Student(models.Model):
    # Código de estudiante visible para el colegio (distinto del id interno)
    student_number = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    father_name = models.CharField(max_length=100, blank=True)
    national_id = models.CharField(max_length=10, unique=True)
    phone = models.CharField(max_length=20, unique=True, null=True, blank=True)
    email = models.EmailField(null=True, blank=True)
    address = models.TextField(blank=True)
    birth_date = models.DateField(null=True, blank=True)
    # Copia de la asignación vigente; solo la escribe school.ledger
    school_class = models.ForeignKey(SchoolClass, on_delete=models.PROTECT, null=True, blank=True, related_name="students")
    grade = models.PositiveSmallIntegerField(null=True, blank=True)
    section = models.CharField(max_length=10, blank=True)
    is_active = models.BooleanField(default=True)
    enrollment_date = models.DateField(default=timezone.localdate)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __str__(self):
        return self.full_name


#=======================
#Modelo Asignación de clase
#=======================
class StudentClassAssignment(models.Model):
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="class_assignments")
    school_class = models.ForeignKey(SchoolClass, on_delete=models.PROTECT, related_name="assignments")
    start_date = models.DateField()
    # null = abierta (asignación vigente sin fecha de fin)
    end_date = models.DateField(null=True, blank=True)
    reason = models.CharField(max_length=255, blank=True)
    # Columna derivada: la mantiene únicamente school.ledger
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['student'],
                condition=Q(is_active=True),
                name='uq_one_active_assignment_per_student',
            ),
        ]
        indexes = [
            models.Index(fields=['school_class', 'start_date']),
            models.Index(fields=['student', 'start_date']),
        ]

    def covers(self, on_date):
        """Intervalo semiabierto [start_date, end_date)."""
        if on_date < self.start_date:
            return False
        return self.end_date is None or on_date < self.end_date

    def __str__(self):
        return f"{self.student} - {self.school_class} ({self.start_date} / {self.end_date or '...'})"
"""
👉 Historial de pertenencia de un estudiante a las clases.
Las filas no se borran: al trasladar se cierra la vigente y se abre una nueva.
"""


#=======================
#Modelo Asistencia
#=======================
class Attendance(models.Model):
    PRESENT = 'PRESENT'
    ABSENT = 'ABSENT'
    LATE = 'LATE'
    EXCUSED = 'EXCUSED'
    STATUSES = [
        (PRESENT, 'حاضر'),
        (ABSENT, 'غایب'),
        (LATE, 'تأخیر'),
        (EXCUSED, 'غیبت موجه'),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="attendances")
    # Clase a la que pertenecía el estudiante ese día
    school_class = models.ForeignKey(SchoolClass, on_delete=models.PROTECT, related_name="attendances")
    date = models.DateField()
    status = models.CharField(max_length=10, choices=STATUSES)
    notes = models.TextField(null=True, blank=True)
    # Se sobrescribe en cada actualización
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['student', 'date'], name='uq_attendance_student_date'),
        ]
        indexes = [
            models.Index(fields=['school_class', 'date']),
            models.Index(fields=['date', 'status']),
        ]

    def __str__(self):
        return f"{self.student} - {self.date} - {self.status}"


#=======================
#Modelo Pago
#=======================
class Payment(models.Model):
    PENDING = 'PENDING'
    PAID = 'PAID'
    OVERDUE = 'OVERDUE'
    STATUSES = [
        (PENDING, 'در انتظار'),
        (PAID, 'پرداخت شده'),
        (OVERDUE, 'معوق'),
    ]
    TYPES = [
        ('TUITION', 'شهریه'),
        ('MEAL', 'غذا'),
        ('TRANSPORT', 'سرویس'),
        ('OTHER', 'سایر'),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=0)
    due_date = models.DateField()
    paid_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUSES, default=PENDING)
    type = models.CharField(max_length=10, choices=TYPES, default='TUITION')
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.student} - {self.amount} ({self.status})"
