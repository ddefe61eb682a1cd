"""
Tests for cancelling a pre-registration before the community opens.
"""

from unittest.mock import patch

import stripe
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from communities.models import CommunityMember
from communities.services.pre_registration import cancel_pre_registration
from .helpers import make_community, make_member, make_user


@patch('stripe.Customer.delete')
@patch('stripe.PaymentMethod.detach')
@patch('stripe.Invoice.void_invoice')
@patch('stripe.Invoice.delete')
@patch('stripe.Invoice.retrieve')
@patch('stripe.Subscription.cancel')
class CancelPreRegistrationTests(APITestCase):

    def setUp(self):
        self.user = make_user()
        self.community = make_community()
        self.member = make_member(self.community, self.user)
        self.client.force_authenticate(self.user)
        self.url = reverse('communities:cancel_pre_registration', kwargs={'slug': self.community.slug})

    def test_cancel_reverses_everything(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        mock_retrieve.return_value = {'id': 'in_dancer', 'status': 'open'}

        response = self.client.post(self.url, {'userId': str(self.user.pk)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {
            'success': True,
            'message': 'Pre-registration cancelled successfully',
        })
        options = {'stripe_account': 'acct_test123'}
        mock_cancel.assert_called_once_with('sub_dancer', **options)
        mock_void.assert_called_once_with('in_dancer', **options)
        mock_delete_invoice.assert_not_called()
        mock_detach.assert_called_once_with('pm_dancer', **options)
        mock_delete_customer.assert_called_once_with('cus_dancer', **options)
        self.assertFalse(CommunityMember.objects.filter(pk=self.member.pk).exists())

        # A second cancel finds nothing
        response = self.client.post(self.url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Pre-registration not found')

    def test_draft_invoice_is_deleted(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        mock_retrieve.return_value = {'id': 'in_dancer', 'status': 'draft'}

        cancel_pre_registration(self.community.slug, self.user)

        mock_delete_invoice.assert_called_once_with('in_dancer', stripe_account='acct_test123')
        mock_void.assert_not_called()

    def test_already_gone_stripe_objects_are_fine(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        mock_cancel.side_effect = stripe.InvalidRequestError(
            'No such subscription', 'id', code='resource_missing'
        )
        mock_retrieve.side_effect = stripe.InvalidRequestError(
            'No such invoice', 'id', code='resource_missing'
        )

        saga = cancel_pre_registration(self.community.slug, self.user)

        self.assertEqual(saga.skipped, [])
        self.assertEqual(saga.context['cancel_subscription'], 'missing')
        self.assertEqual(saga.context['void_invoice'], 'missing')
        self.assertFalse(CommunityMember.objects.exists())

    def test_stripe_failures_do_not_block_cancellation(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        mock_retrieve.return_value = {'id': 'in_dancer', 'status': 'void'}
        mock_detach.side_effect = stripe.APIConnectionError('timeout')

        with self.assertLogs('communities.services.pre_registration', level='ERROR') as logs:
            saga = cancel_pre_registration(self.community.slug, self.user)

        self.assertEqual([name for name, _ in saga.skipped], ['detach_payment_method'])
        self.assertTrue(any('detach_payment_method failed' in line for line in logs.output))
        mock_delete_customer.assert_called_once()
        self.assertFalse(CommunityMember.objects.exists())

    def test_unexpected_error_keeps_the_row(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        mock_retrieve.return_value = {'id': 'in_dancer', 'status': 'open'}
        mock_detach.side_effect = RuntimeError('bug')

        with self.assertRaises(RuntimeError):
            cancel_pre_registration(self.community.slug, self.user)

        self.assertTrue(CommunityMember.objects.filter(pk=self.member.pk).exists())
        mock_delete_customer.assert_not_called()

    def test_active_member_cannot_cancel(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        self.member.activate()

        response = self.client.post(self.url, {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Member is not in pre-registration status')
        mock_cancel.assert_not_called()
        self.assertTrue(CommunityMember.objects.filter(pk=self.member.pk).exists())

    def test_cannot_cancel_for_someone_else(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        other = make_user('other')

        response = self.client.post(self.url, {'userId': str(other.pk)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(CommunityMember.objects.filter(pk=self.member.pk).exists())

    def test_pending_member_without_stripe_objects(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        pending_user = make_user('pending')
        make_member(
            self.community,
            pending_user,
            status=CommunityMember.Status.PENDING_PRE_REGISTRATION,
            stripe_subscription_id=None,
            stripe_invoice_id=None,
            pre_registration_payment_method_id=None,
            stripe_customer_id=None,
        )

        saga = cancel_pre_registration(self.community.slug, pending_user)

        self.assertEqual(saga.step_names, ['delete_member'])
        mock_cancel.assert_not_called()
        self.assertFalse(CommunityMember.objects.filter(user=pending_user).exists())

    def test_path_with_and_without_trailing_slash(
        self, mock_cancel, mock_retrieve, mock_delete_invoice, mock_void, mock_detach, mock_delete_customer
    ):
        mock_retrieve.return_value = {'id': 'in_dancer', 'status': 'open'}

        response = self.client.post('/community/salsa-club/cancel-pre-registration', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.post('/community/salsa-club/cancel-pre-registration/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Pre-registration not found')
