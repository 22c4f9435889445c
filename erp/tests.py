from unittest import mock

from django.db import IntegrityError, OperationalError
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Branch
from orders.models import Order

from .errors import AlreadyBilled, NotFound, StorageError
from .store import Store


class StoreTests(TestCase):
    """Test the injected store handle"""

    def test_open_and_close(self):
        """Test the store can be used as a context manager"""
        store = Store('default')
        self.assertFalse(store.is_open)

        with store as opened:
            self.assertIs(opened, store)
            self.assertTrue(store.is_open)

        self.assertFalse(store.is_open)
        # Closing twice is harmless
        store.close()

    def test_guard_translates_database_errors(self):
        """Test raw database errors become StorageError"""
        store = Store()

        with self.assertRaises(StorageError) as ctx:
            with store.guard():
                raise OperationalError('server closed the connection unexpectedly')

        self.assertIsInstance(ctx.exception.__cause__, OperationalError)
        self.assertEqual(ctx.exception.kind, 'StorageError')

    def test_guard_translates_unexpected_integrity_errors(self):
        """Test integrity errors nobody mapped are storage errors too"""
        with self.assertRaises(StorageError):
            with Store().guard():
                raise IntegrityError('FOREIGN KEY constraint failed')

    def test_guard_passes_service_errors_through(self):
        """Test service errors are not rewrapped"""
        with self.assertRaises(AlreadyBilled):
            with Store().guard():
                raise AlreadyBilled()

    def test_atomic_rolls_back_on_error(self):
        """Test a failing block leaves nothing behind"""
        store = Store()
        branch = Branch.objects.create(name="Main Street")

        with self.assertRaises(NotFound):
            with store.atomic():
                Order.objects.create(branch=branch, order_type=Order.COUNTER)
                raise NotFound('Item 99 not found')

        self.assertEqual(Order.objects.count(), 0)


class ErrorRenderingTests(APITestCase):
    """Test error kinds and API key handling over HTTP"""

    def setUp(self):
        self.client.defaults['HTTP_X_API_KEY'] = 'demo'

    def test_not_found_kind(self):
        """Test service errors render their kind"""
        url = reverse('get_order', kwargs={'order_id': 999})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'NotFound')
        self.assertIn('error', response.data)

    def test_serializer_errors_are_validation_errors(self):
        """Test request-shape failures carry kind ValidationError and field details"""
        url = reverse('create_order')
        response = self.client.post(url, {'order_type': 'DINE_IN'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'ValidationError')
        self.assertIn('branch_id', response.data['fields'])

    def test_storage_failure(self):
        """Test storage failures surface as 503 StorageError"""
        with mock.patch.object(Order.objects, 'using', side_effect=OperationalError('database is locked')):
            url = reverse('get_order', kwargs={'order_id': 1})
            response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['kind'], 'StorageError')

    def test_missing_api_key(self):
        """Test requests without an API key are rejected"""
        del self.client.defaults['HTTP_X_API_KEY']
        url = reverse('get_order', kwargs={'order_id': 1})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_invalid_api_key(self):
        """Test requests with a wrong API key are rejected"""
        self.client.defaults['HTTP_X_API_KEY'] = 'wrong'
        url = reverse('get_order', kwargs={'order_id': 1})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
