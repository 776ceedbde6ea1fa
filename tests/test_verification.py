from __future__ import annotations

import io
import urllib.error
from datetime import timedelta
from unittest.mock import MagicMock, patch

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from linkgraph.models import AuthorityDomain, ExternalEdge
from linkgraph.store import load_domains
from linkgraph.verification import check_url, verify_external_edges

from .factories import make_node, make_platform


def _response(status: int) -> MagicMock:
    response = MagicMock()
    response.__enter__.return_value.status = status
    return response


class CheckUrlTests(TestCase):
    @patch('linkgraph.verification.urllib.request.urlopen')
    def test_head_rejection_falls_back_to_get(self, mock_urlopen) -> None:
        mock_urlopen.side_effect = [
            urllib.error.HTTPError('https://example.org', 405, 'Method Not Allowed', {}, None),
            _response(200),
        ]

        self.assertTrue(check_url('https://example.org', timeout=1))
        methods = [call.args[0].get_method() for call in mock_urlopen.call_args_list]
        self.assertEqual(methods, ['HEAD', 'GET'])

    @patch('linkgraph.verification.urllib.request.urlopen')
    def test_not_found_is_broken(self, mock_urlopen) -> None:
        mock_urlopen.side_effect = urllib.error.HTTPError('https://example.org', 404, 'Not Found', {}, None)

        self.assertFalse(check_url('https://example.org', timeout=1))
        self.assertEqual(mock_urlopen.call_count, 1)

    @patch('linkgraph.verification.urllib.request.urlopen')
    def test_network_errors_are_broken(self, mock_urlopen) -> None:
        mock_urlopen.side_effect = urllib.error.URLError('no route')

        self.assertFalse(check_url('https://example.org', timeout=1))


class VerifyExternalEdgesTests(TestCase):
    def setUp(self) -> None:
        self.platform = make_platform()
        self.node = make_node(self.platform, 'Work permit')
        self.domain = AuthorityDomain.objects.create(
            domain='service-public.fr', name='Service Public', source_type='government', authority_score=90,
        )
        self.edge = ExternalEdge.objects.create(
            source=self.node, domain=self.domain, url='https://service-public.fr',
            anchor_text='Service Public', authority_score=90, source_type='government',
        )

    @override_settings(LINKGRAPH_DOMAIN_FAILURE_LIMIT=2)
    def test_repeated_failures_deactivate_the_domain(self) -> None:
        first = verify_external_edges(stale_days=0, checker=lambda url: False)
        self.domain.refresh_from_db()
        self.edge.refresh_from_db()

        self.assertEqual(first['broken'], 1)
        self.assertEqual(self.edge.verification_status, 'broken')
        self.assertEqual(self.domain.failure_count, 1)
        self.assertTrue(self.domain.is_active)
        self.assertEqual(load_domains()[0].broken, True)

        second = verify_external_edges(stale_days=0, checker=lambda url: False)
        self.domain.refresh_from_db()

        self.assertEqual(second['deactivated_domains'], ['service-public.fr'])
        self.assertFalse(self.domain.is_active)
        self.assertEqual(load_domains(), [])

    def test_passing_check_resets_failures(self) -> None:
        AuthorityDomain.objects.filter(pk=self.domain.pk).update(failure_count=2)

        result = verify_external_edges(checker=lambda url: True)

        self.domain.refresh_from_db()
        self.edge.refresh_from_db()
        self.assertEqual(result['active'], 1)
        self.assertEqual(self.domain.failure_count, 0)
        self.assertEqual(self.edge.verification_status, 'active')
        self.assertIsNotNone(self.edge.last_verified_at)

    def test_recently_verified_edges_are_skipped(self) -> None:
        ExternalEdge.objects.filter(pk=self.edge.pk).update(last_verified_at=timezone.now() - timedelta(days=1))
        checker = MagicMock(return_value=True)

        result = verify_external_edges(stale_days=7, checker=checker)

        self.assertEqual(result['checked_edges'], 0)
        checker.assert_not_called()

    @patch('linkgraph.verification.urllib.request.urlopen', return_value=_response(200))
    def test_management_command(self, mock_urlopen) -> None:
        out = io.StringIO()

        call_command('verify_external_links', stdout=out)

        self.assertIn('1 active', out.getvalue())
