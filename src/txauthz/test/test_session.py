"""
Tests for `txauthz.session`.
"""
from josepy.jwa import RS384
from treq.testing import StubTreq
from twisted.internet.task import Clock
from twisted.internet.testing import MemoryReactorClock
from twisted.python.url import URL
from twisted.trial.unittest import TestCase

from txauthz.errors import ProtocolError
from txauthz.session import (
    LETSENCRYPT_DIRECTORY, LETSENCRYPT_STAGING_DIRECTORY, Session)
from txauthz.test.doubles import (
    CannedResponse, FakeCA, make_session, RSA_KEY_512)
from txauthz.transport import _DEFAULT_TIMEOUT, _default_client, JWSClient
from txauthz.util import check_directory_url_type


class SessionTests(TestCase):
    """
    `.Session.create` discovers the CA's resources from its directory.
    """
    def setUp(self):
        self.ca = FakeCA()
        self.clock = Clock()
        self.client = JWSClient(StubTreq(self.ca), self.clock)

    def create(self, **kwargs):
        return Session.create(
            self.clock, URL.fromText(self.ca.directory_url), RSA_KEY_512,
            jws_client=self.client, **kwargs)

    def test_directory_url_type(self):
        """
        `.Session.create` expects a ``twisted.python.url.URL`` instance for
        the ``url`` argument.
        """
        with self.assertRaises(TypeError):
            Session.create(
                self.clock, self.ca.directory_url, RSA_KEY_512,
                jws_client=self.client)

    def test_well_known_directories(self):
        """
        The Let's Encrypt directories are usable as ``url`` as they are.
        """
        for url in [LETSENCRYPT_DIRECTORY, LETSENCRYPT_STAGING_DIRECTORY]:
            check_directory_url_type(url)
            self.assertEqual(u'https', url.scheme)
            self.assertEqual((u'directory',), url.path)

    def test_create(self):
        """
        The directory is fetched once, and its nonce kept for the first
        signed request.
        """
        session = self.successResultOf(self.create(alg=RS384, timeout=10))
        self.assertEqual(self.ca.directory_url, session.directory_url)
        self.assertEqual(self.ca.directory(), session.directory)
        self.assertEqual(RSA_KEY_512, session.key)
        self.assertIs(RS384, session.alg)
        self.assertIs(self.client, session.client)
        self.assertIs(self.clock, session.clock)
        self.assertEqual(10, self.client.timeout)
        self.assertEqual(self.ca.issued_nonces, [session.nonce])
        self.assertIsNone(session.account_uri)
        self.assertEqual(
            [(u'GET', self.ca.directory_url)],
            [(r.method, r.url) for r in self.ca.requests])

    def test_default_timeout(self):
        self.successResultOf(self.create())
        self.assertEqual(_DEFAULT_TIMEOUT, self.client.timeout)

    def test_directory_not_an_object(self):
        self.ca.expect(u'GET', u'/directory', CannedResponse(json=[1, 2]))
        self.failureResultOf(self.create(), ProtocolError)

    def test_default_client(self):
        """
        Without a client, one is built on the reactor.
        """
        reactor = MemoryReactorClock()
        client = _default_client(None, reactor)
        self.assertIsInstance(client, JWSClient)
        self.assertIs(self.client, _default_client(self.client, reactor))

    def test_resource_uri(self):
        session = make_session(self.ca)
        self.assertEqual(
            self.ca.url(u'/acme/new-authz'),
            session.resource_uri(u'new-authz'))
        with self.assertRaises(ProtocolError):
            session.resource_uri(u'key-change')

    def test_nonce_url(self):
        """
        Nonces come from ``new-nonce`` where the CA has one, and from the
        directory otherwise.
        """
        session = make_session(self.ca)
        self.assertEqual(self.ca.directory_url, session.nonce_url)
        session.directory[u'new-nonce'] = self.ca.url(u'/acme/new-nonce')
        self.assertEqual(self.ca.url(u'/acme/new-nonce'), session.nonce_url)

    def test_terms_of_service(self):
        session = make_session(self.ca)
        self.assertIsNone(session.terms_of_service)
        session.directory[u'meta'] = {
            u'terms-of-service': u'https://ca.example/tos'}
        self.assertEqual(u'https://ca.example/tos', session.terms_of_service)

    def test_stop(self):
        session = make_session(self.ca)
        self.successResultOf(session.stop())


__all__ = ['SessionTests']
