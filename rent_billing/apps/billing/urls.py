from django.urls import path
from . import views

app_name = 'billing'

urlpatterns = [
    path('invoices/', views.InvoiceListView.as_view(), name='invoice_list'),
    path('invoices/generate/', views.GenerateInvoicesView.as_view(), name='invoice_generate'),
    path('invoices/<int:pk>/', views.InvoiceDetailView.as_view(), name='invoice_detail'),
    path('tenants/<int:tenant_id>/invoices/', views.TenantInvoiceListView.as_view(), name='tenant_invoices'),
]
