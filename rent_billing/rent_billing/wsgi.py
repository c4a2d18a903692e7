"""
WSGI config for the Rent Billing project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'rent_billing.settings')

application = get_wsgi_application()
