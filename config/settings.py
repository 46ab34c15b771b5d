"""
Configuración del proyecto.

Los valores que cambian entre instalaciones se leen de variables de entorno;
el resto son valores por defecto pensados para desarrollo con SQLite.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-only-insecure-key')
DEBUG = _env_bool('DJANGO_DEBUG', True)
ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'school',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# =====================================================
# BASE DE DATOS
# =====================================================
DATABASES = {
    'default': {
        'ENGINE': os.environ.get('DJANGO_DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('DJANGO_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.environ.get('DJANGO_DB_USER', ''),
        'PASSWORD': os.environ.get('DJANGO_DB_PASSWORD', ''),
        'HOST': os.environ.get('DJANGO_DB_HOST', ''),
        'PORT': os.environ.get('DJANGO_DB_PORT', ''),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'fa-ir'
TIME_ZONE = os.environ.get('DJANGO_TIME_ZONE', 'Asia/Tehran')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
MEDIA_ROOT = os.environ.get('DJANGO_MEDIA_ROOT', str(BASE_DIR / 'media'))

# =====================================================
# LOGGING
# =====================================================
LOG_LEVEL = os.environ.get('DJANGO_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'school': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        # Hallazgos de corrupción de datos: nunca por debajo de WARNING
        'school.integrity': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
        'school.audit': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# =====================================================
# REGLAS DEL COLEGIO
# =====================================================
SCHOOL_CLOCK = 'school.clock.SystemClock'

# Al trasladar a un estudiante con fecha de hoy en día lectivo se le marca presente
SCHOOL_AUTO_PRESENT_ON_TRANSFER = _env_bool('SCHOOL_AUTO_PRESENT_ON_TRANSFER', True)
# date.weekday(): lunes=0 ... domingo=6
SCHOOL_WEEKDAYS = (0, 1, 2, 3, 4)
# 'keep': el registro de hoy en la clase anterior no se toca
# 'reassign': el registro de hoy pasa a la clase nueva conservando su estado
SCHOOL_PREVIOUS_CLASS_ATTENDANCE_POLICY = os.environ.get('SCHOOL_PREVIOUS_CLASS_ATTENDANCE_POLICY', 'keep')

SCHOOL_PHONE_COUNTRY_CODE = '98'

SCHOOL_FREQUENT_ABSENCE_THRESHOLD = 3
SCHOOL_FREQUENT_ABSENCE_DAYS = 30
