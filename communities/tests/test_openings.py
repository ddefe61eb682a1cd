"""
Tests for the opening-day reconciliation job and its cron entry points.
"""

from datetime import timedelta
from unittest.mock import patch

import stripe
from django.core import mail
from django.db import DatabaseError
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from communities.models import Community, CommunityMember, EmailPreference
from communities.services.openings import process_community_openings
from communities.tasks import process_community_openings_task, send_community_opening_emails
from .helpers import make_community, make_member, make_user, stripe_obj


def subscriptions(statuses):
    """Fake Subscription.retrieve answering from a {subscription_id: status} map."""
    def retrieve(subscription_id, **kwargs):
        value = statuses[subscription_id]
        if isinstance(value, Exception):
            raise value
        return stripe_obj(id=subscription_id, status=value)
    return retrieve


@patch('communities.tasks.send_community_opening_emails.delay')
@patch('stripe.Subscription.retrieve')
class ProcessCommunityOpeningsTests(TestCase):

    def setUp(self):
        self.community = make_community(opening_date=timezone.now() - timedelta(hours=1))
        self.good = make_member(self.community, make_user('good'))
        self.missing = make_member(self.community, make_user('missing'))
        CommunityMember.objects.filter(pk=self.missing.pk).update(stripe_subscription_id=None)
        self.past_due = make_member(self.community, make_user('late'))

    def test_opening_reconciles_members(self, mock_retrieve, mock_delay):
        mock_retrieve.side_effect = subscriptions({'sub_good': 'active', 'sub_late': 'past_due'})

        report = process_community_openings()

        self.community.refresh_from_db()
        self.assertEqual(self.community.status, Community.Status.ACTIVE)
        mock_delay.assert_called_once_with(self.community.pk)

        result = report.as_dict()
        self.assertEqual(result['message'], 'Community openings processed')
        self.assertEqual(result['processed'], 1)
        community_result = result['results'][0]
        self.assertTrue(community_result['success'])
        self.assertTrue(community_result['opened'])
        self.assertEqual(community_result['membersProcessed'], 3)
        self.assertEqual(community_result['successCount'], 1)
        self.assertEqual(community_result['failCount'], 2)

        by_user = {r['userId']: r for r in community_result['memberResults']}
        self.assertEqual(by_user[self.good.user_id]['message'], 'Subscription in good standing')
        self.assertEqual(by_user[self.missing.user_id]['error'], 'No subscription found')
        self.assertEqual(by_user[self.past_due.user_id]['error'], 'Unexpected subscription status: past_due')

        self.missing.refresh_from_db()
        self.past_due.refresh_from_db()
        self.good.refresh_from_db()
        self.assertEqual(self.missing.status, CommunityMember.Status.INACTIVE)
        self.assertEqual(self.past_due.status, CommunityMember.Status.PRE_REGISTERED)
        self.assertEqual(self.good.status, CommunityMember.Status.PRE_REGISTERED)

    def test_second_run_is_a_no_op(self, mock_retrieve, mock_delay):
        mock_retrieve.side_effect = subscriptions({'sub_good': 'active', 'sub_late': 'active'})
        process_community_openings()
        mock_retrieve.reset_mock()

        report = process_community_openings()

        self.assertEqual(report.as_dict(), {
            'message': 'No communities ready to open',
            'processed': 0,
            'results': [],
        })
        mock_retrieve.assert_not_called()
        mock_delay.assert_called_once()

    def test_transient_errors_are_retried(self, mock_retrieve, mock_delay):
        calls = []

        def flaky(subscription_id, **kwargs):
            calls.append(subscription_id)
            if subscription_id == 'sub_good' and calls.count('sub_good') == 1:
                raise stripe.APIConnectionError('connection reset')
            return stripe_obj(id=subscription_id, status='active')

        mock_retrieve.side_effect = flaky

        report = process_community_openings()

        self.assertEqual(calls.count('sub_good'), 2)
        self.assertEqual(report.results[0].success_count, 2)

    def test_member_failure_does_not_block_opening(self, mock_retrieve, mock_delay):
        mock_retrieve.side_effect = subscriptions({
            'sub_good': stripe.APIConnectionError('still down'),
            'sub_late': 'trialing',
        })

        report = process_community_openings()

        result = report.results[0]
        self.assertTrue(result.opened)
        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.fail_count, 2)
        # Retry budget from COMMUNITY_OPENING_RETRY_ATTEMPTS
        self.assertEqual(
            [c.args[0] for c in mock_retrieve.call_args_list].count('sub_good'),
            2,
        )
        self.community.refresh_from_db()
        self.assertEqual(self.community.status, Community.Status.ACTIVE)

    def test_non_transient_errors_are_not_retried(self, mock_retrieve, mock_delay):
        mock_retrieve.side_effect = subscriptions({
            'sub_good': stripe.InvalidRequestError('No such subscription', 'id', code='resource_missing'),
            'sub_late': 'active',
        })

        process_community_openings()

        self.assertEqual(
            [c.args[0] for c in mock_retrieve.call_args_list].count('sub_good'),
            1,
        )

    def test_future_and_non_pre_registration_communities_are_skipped(self, mock_retrieve, mock_delay):
        Community.objects.filter(pk=self.community.pk).update(opening_date=timezone.now() + timedelta(days=1))
        make_community(
            slug='already-open',
            status=Community.Status.ACTIVE,
            opening_date=timezone.now() - timedelta(days=3),
        )

        report = process_community_openings()

        self.assertEqual(report.processed, 0)
        mock_retrieve.assert_not_called()

    def test_listing_failure_propagates(self, mock_retrieve, mock_delay):
        with patch(
            'communities.services.openings.communities_ready_to_open',
            side_effect=DatabaseError('connection lost'),
        ):
            with self.assertRaises(DatabaseError):
                process_community_openings()

    def test_community_failure_is_reported_per_community(self, mock_retrieve, mock_delay):
        mock_retrieve.side_effect = subscriptions({'sub_good': 'active', 'sub_late': 'active'})

        with patch.object(Community, 'open', side_effect=DatabaseError('deadlock')):
            report = process_community_openings()

        result = report.as_dict()['results'][0]
        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'deadlock')
        mock_delay.assert_not_called()

    def test_scheduled_task_returns_report(self, mock_retrieve, mock_delay):
        mock_retrieve.side_effect = subscriptions({'sub_good': 'active', 'sub_late': 'active'})

        result = process_community_openings_task.delay().get()

        self.assertEqual(result['processed'], 1)


class OpeningEmailTaskTests(TestCase):

    def test_sends_to_members_who_did_not_opt_out(self):
        community = make_community(status=Community.Status.ACTIVE)
        make_member(community, make_user('alice'))
        make_member(community, make_user('bob'))
        make_member(community, make_user('carol'), status=CommunityMember.Status.INACTIVE)
        EmailPreference.objects.create(email='bob@example.com', community_updates=False)

        sent = send_community_opening_emails(community.pk)

        self.assertEqual(sent, 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['alice@example.com'])
        self.assertIn('is now open', mail.outbox[0].subject)

    def test_unknown_community(self):
        self.assertEqual(send_community_opening_emails(123456), 0)


@patch('stripe.Subscription.retrieve')
class CronEndpointTests(TestCase):

    def setUp(self):
        self.url = reverse('process_community_openings')
        self.community = make_community(opening_date=timezone.now() - timedelta(minutes=5))

    def test_requires_bearer_secret(self, mock_retrieve):
        self.assertEqual(self.client.get(self.url).status_code, 401)
        response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer wrong-secret')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {'error': 'Unauthorized'})

        self.community.refresh_from_db()
        self.assertEqual(self.community.status, Community.Status.PRE_REGISTRATION)

    def test_runs_openings(self, mock_retrieve):
        response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer test-cron-secret')

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['processed'], 1)
        self.assertEqual(body['results'][0]['communityId'], self.community.pk)
        self.assertTrue(body['results'][0]['opened'])

    def test_listing_failure_is_a_500(self, mock_retrieve):
        with patch(
            'communities.services.openings.communities_ready_to_open',
            side_effect=DatabaseError('connection lost'),
        ):
            response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer test-cron-secret')

        self.assertEqual(response.status_code, 500)
        self.assertIn('error', response.json())

    def test_bare_path_is_not_redirected(self, mock_retrieve):
        for path in ('/cron/process-community-openings', '/cron/process-community-openings/'):
            response = self.client.get(path, HTTP_AUTHORIZATION='Bearer test-cron-secret')
            self.assertEqual(response.status_code, 200)

        self.community.refresh_from_db()
        self.assertEqual(self.community.status, Community.Status.ACTIVE)

    def test_empty_secret_rejects_everything(self, mock_retrieve):
        with self.settings(CRON_SECRET=''):
            response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer ')
        self.assertEqual(response.status_code, 401)

    @patch('dance_hub.celery.app.send_task')
    def test_trigger_task_queues_celery_task(self, mock_send, mock_retrieve):
        mock_send.return_value = stripe_obj(id='task-123')
        url = reverse('cron_trigger_task', kwargs={'task_name': 'process_community_openings'})

        response = self.client.post(url, HTTP_AUTHORIZATION='Bearer test-cron-secret')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['task_id'], 'task-123')
        mock_send.assert_called_once_with('communities.tasks.process_community_openings_task')

    def test_trigger_unknown_task(self, mock_retrieve):
        url = reverse('cron_trigger_task', kwargs={'task_name': 'mine_bitcoin'})
        response = self.client.post(url, HTTP_AUTHORIZATION='Bearer test-cron-secret')
        self.assertEqual(response.status_code, 404)

    def test_list_tasks(self, mock_retrieve):
        url = reverse('cron_list_tasks')
        self.assertEqual(self.client.get(url).status_code, 401)

        response = self.client.get(url, HTTP_AUTHORIZATION='Bearer test-cron-secret')
        self.assertEqual(response.json(), {'tasks': ['process_community_openings'], 'count': 1})
