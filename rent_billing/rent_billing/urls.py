"""
URL configuration for the Rent Billing project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Apps
    path('billing/', include('apps.billing.urls')),
]
