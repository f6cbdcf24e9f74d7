import os
from pathlib import Path

BASE_DIR = Path(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

SECRET_KEY = os.getenv('SECRET_KEY')
if not SECRET_KEY:
    SECRET_KEY = 'djangogl1234!DoNotUse!BadIdea!VeryInsecure!'
DEBUG = True

ALLOWED_HOSTS = ['127.0.0.1', 'localhost']

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django_gl',
]

MIDDLEWARE = []

# Database
# https://docs.djangoproject.com/en/5.1/ref/settings/#databases
# SQLite ignores SELECT ... FOR UPDATE. Writers are serialized by opening every transaction with BEGIN IMMEDIATE,
# and tests run against a file database so that concurrent test threads share it.

if os.getenv('DJANGO_GL_DB_NAME'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DJANGO_GL_DB_NAME'),
            'USER': os.getenv('DJANGO_GL_DB_USER', 'postgres'),
            'PASSWORD': os.getenv('DJANGO_GL_DB_PASSWORD', ''),
            'HOST': os.getenv('DJANGO_GL_DB_HOST', '127.0.0.1'),
            'PORT': os.getenv('DJANGO_GL_DB_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.path.join(BASE_DIR, 'db.sqlite3'),
            'OPTIONS': {
                'transaction_mode': 'IMMEDIATE',
                'timeout': 20,
            },
            'TEST': {
                'NAME': os.path.join(BASE_DIR, 'test_db.sqlite3'),
            },
        }
    }

# Internationalization
# https://docs.djangoproject.com/en/5.1/topics/i18n/

LANGUAGE_CODE = 'en-us'

USE_TZ = True
TIME_ZONE = 'America/New_York'

USE_I18N = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
        }
    },
    'loggers': {
        'Django GL Logger': {
            'level': 'WARNING',
            'handlers': ['console'],
        }
    }
}

DJANGO_GL_CHART_OF_ACCOUNTS_PROVIDER = 'django_gl.providers.InMemoryChartOfAccountsProvider'
# DJANGO_GL_JOURNAL_NUMBER_PREFIX = 'JE'
# DJANGO_GL_BATCH_NUMBER_PREFIX = 'BATCH'
# DJANGO_GL_DOCUMENT_NUMBER_PADDING = 6
# DJANGO_GL_SEQUENCER_MAX_RETRIES = 5
