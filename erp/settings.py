"""
Django settings for the restaurant ERP project.

Every deployment-specific value is read from an ERP_* environment variable.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('ERP_SECRET_KEY', 'django-insecure-local-development-key')

DEBUG = env_bool('ERP_DEBUG', default=False)

ALLOWED_HOSTS = [h.strip() for h in os.environ.get('ERP_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if h.strip()]

# Key expected in the X-API-Key header of every API request
API_KEY = os.environ.get('ERP_API_KEY', 'demo')


INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'drf_spectacular',
    'catalog',
    'orders',
    'kitchen',
    'billing',
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

ROOT_URLCONF = 'erp.urls'

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

WSGI_APPLICATION = 'erp.wsgi.application'


# Database
# PostgreSQL is the production target (row-level locks back select_for_update);
# SQLite is the local default.

DB_ENGINE = os.environ.get('ERP_DB_ENGINE', 'sqlite')

if DB_ENGINE == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ.get('ERP_DB_NAME', 'restaurant_erp'),
            'USER': os.environ.get('ERP_DB_USER', 'erp'),
            'PASSWORD': os.environ.get('ERP_DB_PASSWORD', ''),
            'HOST': os.environ.get('ERP_DB_HOST', 'localhost'),
            'PORT': os.environ.get('ERP_DB_PORT', '5432'),
            'CONN_MAX_AGE': int(os.environ.get('ERP_DB_CONN_MAX_AGE', '60')),
            'OPTIONS': {
                'connect_timeout': int(os.environ.get('ERP_DB_CONNECT_TIMEOUT', '5')),
            },
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.environ.get('ERP_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
            'OPTIONS': {
                'timeout': int(os.environ.get('ERP_DB_CONNECT_TIMEOUT', '5')),
            },
        }
    }

# Database alias handed to the Store used by the API views
ERP_STORE_ALIAS = os.environ.get('ERP_STORE_ALIAS', 'default')


AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'erp.authentication.APIKeyAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'erp.permissions.APIKeyPermission',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'erp.handlers.api_exception_handler',
    'COERCE_DECIMAL_TO_STRING': True,
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Restaurant ERP API',
    'DESCRIPTION': 'Order lifecycle, kitchen tickets and billing for a multi-branch restaurant',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
    'APPEND_COMPONENTS': {
        'securitySchemes': {
            'ApiKeyAuth': {'type': 'apiKey', 'in': 'header', 'name': 'X-API-Key'},
        },
    },
    'SECURITY': [{'ApiKeyAuth': []}],
}


LOG_LEVEL = os.environ.get('ERP_LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s %(levelname)-8s %(name)s: %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'loggers': {
        'django': {'handlers': ['console'], 'level': 'WARNING', 'propagate': False},
        'erp': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'catalog': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'orders': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'kitchen': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'billing': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
