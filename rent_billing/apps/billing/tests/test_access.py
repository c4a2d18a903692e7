"""
Tenant Isolation Test Cases

1. Organization A callers never see Organization B invoices
2. Staff outside their scope get 403; tenants get 404 (no existence leak)
3. Managers see assigned properties only; landlords see owned properties only
4. JSON endpoints apply the same rules

Run: python manage.py test apps.billing.tests.test_access -v 2
"""
from django.test import TestCase
from django.urls import reverse

from apps.billing.models import Invoice, InvoiceLineItem
from apps.billing.services import InvoiceGenerator
from apps.core.access import AccessScope, Capability
from apps.core.exceptions import AccessDenied, ResourceNotFound
from apps.property.models import Property, Tenant
from apps.utilities.models import UtilityType
from .mixins import BillingSetupMixin


class InvoiceAccessMixin(BillingSetupMixin):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        InvoiceGenerator(AccessScope.system(), max_workers=1).generate_for_period(2025, 1)
        cls.invoice1 = Invoice.objects.get(tenant=cls.tenant1)
        cls.invoice2 = Invoice.objects.get(tenant=cls.tenant2)
        cls.invoice3 = Invoice.objects.get(tenant=cls.tenant3)
        cls.invoice_b = Invoice.objects.get(tenant=cls.tenant_b)


class AccessScopeTest(InvoiceAccessMixin, TestCase):

    def visible(self, user, model=Invoice):
        return set(AccessScope.for_user(user).queryset(model).values_list('pk', flat=True))

    def test_owner_sees_own_organization_only(self):
        self.assertEqual(
            self.visible(self.owner_a),
            {self.invoice1.pk, self.invoice2.pk, self.invoice3.pk}
        )
        self.assertEqual(self.visible(self.owner_b), {self.invoice_b.pk})

    def test_cross_organization_get_is_denied(self):
        scope = AccessScope.for_user(self.owner_a)

        with self.assertRaises(AccessDenied):
            scope.get(Invoice, self.invoice_b.pk)

    def test_missing_record_is_not_found(self):
        scope = AccessScope.for_user(self.owner_a)

        with self.assertRaises(ResourceNotFound):
            scope.get(Invoice, 999999)

    def test_manager_sees_assigned_property_only(self):
        self.assertEqual(self.visible(self.manager_a), {self.invoice1.pk, self.invoice2.pk})

        with self.assertRaises(AccessDenied):
            AccessScope.for_user(self.manager_a).get(Invoice, self.invoice3.pk)

    def test_landlord_sees_owned_property_only(self):
        self.assertEqual(self.visible(self.landlord_a), {self.invoice1.pk, self.invoice2.pk})
        self.assertEqual(self.visible(self.landlord_a, Property), {self.prop_a1.pk})

    def test_tenant_sees_own_invoices_only(self):
        self.assertEqual(self.visible(self.tenant_user), {self.invoice1.pk})
        self.assertEqual(self.visible(self.tenant_user, Tenant), {self.tenant1.pk})

    def test_tenant_gets_not_found_for_other_tenant_invoice(self):
        scope = AccessScope.for_user(self.tenant_user)

        with self.assertRaises(ResourceNotFound):
            scope.get(Invoice, self.invoice2.pk)
        with self.assertRaises(ResourceNotFound):
            scope.get(Invoice, self.invoice_b.pk)
        with self.assertRaises(ResourceNotFound):
            scope.get(Invoice, 999999)

    def test_tenant_cannot_open_other_tenant(self):
        scope = AccessScope.for_user(self.tenant_user)

        self.assertEqual(scope.ensure_tenant_access(self.tenant1.pk), self.tenant1)
        with self.assertRaises(ResourceNotFound):
            scope.ensure_tenant_access(self.tenant2.pk)

    def test_line_items_follow_invoice_scope(self):
        visible = AccessScope.for_user(self.tenant_user).queryset(InvoiceLineItem)

        self.assertEqual(set(visible.values_list('invoice_id', flat=True)), {self.invoice1.pk})

    def test_catalogue_visible_to_members_only(self):
        self.assertEqual(AccessScope.for_user(self.tenant_user).queryset(UtilityType).count(), 3)
        self.assertEqual(AccessScope.anonymous().queryset(UtilityType).count(), 0)

    def test_user_without_membership_sees_nothing(self):
        from django.contrib.auth.models import User
        outsider = User.objects.create_user(username='outsider', password='testpass123')

        self.assertEqual(self.visible(outsider), set())

    def test_superuser_sees_everything(self):
        from django.contrib.auth.models import User
        admin = User.objects.create_superuser(username='admin', password='testpass123')

        self.assertEqual(len(self.visible(admin)), 4)

    def test_capabilities_per_role(self):
        self.assertTrue(AccessScope.for_user(self.owner_a).has(Capability.GENERATE_INVOICES))
        self.assertTrue(AccessScope.for_user(self.tenant_user).has(Capability.VIEW_OWN_TENANT_DATA))
        self.assertFalse(AccessScope.for_user(self.tenant_user).has(Capability.GENERATE_INVOICES))
        self.assertTrue(AccessScope.for_user(self.tenant_user).is_tenant_only)
        self.assertFalse(AccessScope.for_user(self.manager_a).is_tenant_only)


class InvoiceEndpointTest(InvoiceAccessMixin, TestCase):

    def test_unauthenticated_request_rejected(self):
        response = self.client.get(reverse('billing:invoice_list'))

        self.assertEqual(response.status_code, 401)

    def test_list_is_scoped(self):
        self.client.force_login(self.owner_b)

        response = self.client.get(reverse('billing:invoice_list'))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['results'][0]['invoice_number'], self.invoice_b.invoice_number)

    def test_list_filters(self):
        self.client.force_login(self.owner_a)

        response = self.client.get(reverse('billing:invoice_list'), {'property': self.prop_a1.pk})
        self.assertEqual(response.json()['count'], 2)

        response = self.client.get(reverse('billing:invoice_list'), {'tenant': self.tenant3.pk})
        self.assertEqual([r['id'] for r in response.json()['results']], [self.invoice3.pk])

        response = self.client.get(reverse('billing:invoice_list'), {'period_start_from': '2025-02-01'})
        self.assertEqual(response.json()['count'], 0)

    def test_filter_by_foreign_property_returns_nothing(self):
        self.client.force_login(self.owner_a)

        response = self.client.get(reverse('billing:invoice_list'), {'property': self.prop_b1.pk})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['count'], 0)

    def test_invalid_filter_is_bad_request(self):
        self.client.force_login(self.owner_a)

        response = self.client.get(reverse('billing:invoice_list'), {'period_start_from': 'yesterday'})

        self.assertEqual(response.status_code, 400)

    def test_detail_includes_line_items(self):
        self.client.force_login(self.owner_a)

        response = self.client.get(reverse('billing:invoice_detail', args=[self.invoice1.pk]))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['amount'], '1000.00')
        self.assertEqual(data['line_items'][0]['description'], 'Rent - January 2025')

    def test_cross_organization_detail_forbidden(self):
        self.client.force_login(self.owner_a)

        response = self.client.get(reverse('billing:invoice_detail', args=[self.invoice_b.pk]))

        self.assertEqual(response.status_code, 403)
        self.assertNotIn('amount', response.json())

    def test_tenant_detail_of_other_tenant_not_found(self):
        self.client.force_login(self.tenant_user)

        response = self.client.get(reverse('billing:invoice_detail', args=[self.invoice2.pk]))

        self.assertEqual(response.status_code, 404)

    def test_tenant_invoices_endpoint(self):
        self.client.force_login(self.tenant_user)

        own = self.client.get(reverse('billing:tenant_invoices', args=[self.tenant1.pk]))
        other = self.client.get(reverse('billing:tenant_invoices', args=[self.tenant_b.pk]))

        self.assertEqual(own.status_code, 200)
        self.assertEqual(own.json()['count'], 1)
        self.assertEqual(other.status_code, 404)

    def test_generate_requires_capability(self):
        self.client.force_login(self.tenant_user)

        response = self.client.post(reverse('billing:invoice_generate'), {'year': 2025, 'month': 2})

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Invoice.objects.filter(period_start__month=2).exists())

    def test_generate_for_own_organization(self):
        self.client.force_login(self.owner_a)

        response = self.client.post(
            reverse('billing:invoice_generate'),
            {'year': 2025, 'month': 2},
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['created'], 3)
        self.assertFalse(Invoice.objects.filter(tenant=self.tenant_b, period_start__month=2).exists())

    def test_generate_repeat_is_noop(self):
        self.client.force_login(self.owner_a)

        response = self.client.post(reverse('billing:invoice_generate'), {'year': 2025, 'month': 1})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['created'], 0)
        self.assertEqual(response.json()['skipped'], 3)

    def test_generate_invalid_month(self):
        self.client.force_login(self.owner_a)

        response = self.client.post(reverse('billing:invoice_generate'), {'year': 2025, 'month': 13})

        self.assertEqual(response.status_code, 400)
