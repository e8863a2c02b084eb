"""
The session: everything shared by the resources of one account.
"""
import attr
from eliot.twisted import DeferredContext
from josepy.jwa import RS256
from twisted.internet.defer import DeferredLock
from twisted.python.url import URL

from txauthz.errors import ProtocolError
from txauthz.logging import LOG_ACME_CONSUME_DIRECTORY
from txauthz.transport import _DEFAULT_TIMEOUT, _default_client
from txauthz.util import check_directory_url_type, tap

#: Let's Encrypt production directory.
LETSENCRYPT_DIRECTORY = URL.fromText(
    u'https://acme-v01.api.letsencrypt.org/directory')

#: Let's Encrypt staging directory, for testing against.
LETSENCRYPT_STAGING_DIRECTORY = URL.fromText(
    u'https://acme-staging.api.letsencrypt.org/directory')


@attr.s(eq=False)
class Session(object):
    """
    Connection to a CA for one account key.

    Resources bound to a session share its key, its transport and its nonce.
    The nonce is only ever touched by the transport while it holds
    ``nonce_lock``.

    :ivar str directory_url: The URL of the directory.
    :ivar dict directory: The directory, mapping resource names (eg.
        ``u'new-reg'``) to their URLs.
    :ivar ~josepy.jwk.JWK key: The account key.
    :ivar ~txauthz.transport.JWSClient client: The transport.
    :ivar clock: ``IReactorTime`` provider.
    :ivar alg: The signing algorithm.
    :ivar str account_uri: The registration location, once known; requests
        are then signed with it as key ID.
    :ivar str nonce: The nonce the next signed request will use.
    """
    directory_url = attr.ib()
    directory = attr.ib(repr=False)
    key = attr.ib(repr=False)
    client = attr.ib(repr=False)
    clock = attr.ib(repr=False)
    alg = attr.ib(default=RS256)
    account_uri = attr.ib(default=None)
    nonce = attr.ib(default=None, repr=False)
    nonce_lock = attr.ib(
        default=attr.Factory(DeferredLock), init=False, repr=False)

    @classmethod
    def create(cls, reactor, url, key, alg=RS256, jws_client=None,
               timeout=_DEFAULT_TIMEOUT):
        """
        Start a session by fetching the directory.

        :param reactor: The Twisted reactor to use.
        :param ~twisted.python.url.URL url: The URL of the directory.
        :param ~josepy.jwk.JWK key: The account key.
        :param alg: The signing algorithm to use.
        :param jws_client: The underlying client to use, or ``None`` to
            construct one.
        :param int timeout: Number of seconds to wait for an HTTP response
            during ACME server interaction.

        :return: The session.
        :rtype: ``Deferred[Session]``
        """
        check_directory_url_type(url)
        action = LOG_ACME_CONSUME_DIRECTORY(
            url=url, key_type=key.typ, alg=alg.name)
        with action.context():
            jws_client = _default_client(jws_client, reactor)
            jws_client.timeout = timeout
            directory_url = url.asText()
            return (
                DeferredContext(jws_client.get(directory_url))
                .addCallback(
                    cls._from_directory, directory_url, key, alg,
                    jws_client, reactor)
                .addCallback(
                    tap(lambda session: action.add_success_fields(
                        directory=session.directory)))
                .addActionFinish())

    @classmethod
    def _from_directory(cls, response, directory_url, key, alg, jws_client,
                        reactor):
        if not isinstance(response.json, dict):
            raise ProtocolError(
                'Directory is not a JSON object', url=directory_url)
        session = cls(
            directory_url=directory_url,
            directory=response.json,
            key=key,
            client=jws_client,
            clock=reactor,
            alg=alg)
        if response.nonce is not None:
            jws_client._add_nonce(response, session)
        return session

    def resource_uri(self, name):
        """
        Look up the URL of a resource in the directory.

        :param str name: The resource name, eg. ``u'new-authz'``.

        :raises txauthz.errors.ProtocolError: If the CA does not offer it.
        """
        uri = self.directory.get(name)
        if not isinstance(uri, str):
            raise ProtocolError(
                'Directory has no {!r} resource'.format(name),
                url=self.directory_url)
        return uri

    @property
    def nonce_url(self):
        """
        Where to get a fresh nonce from.
        """
        return self.directory.get(u'new-nonce') or self.directory_url

    @property
    def terms_of_service(self):
        """
        The terms of service URL advertised in the directory, if any.
        """
        meta = self.directory.get(u'meta')
        if isinstance(meta, dict):
            return meta.get(u'terms-of-service')
        return None

    def stop(self):
        """
        Stop the underlying transport.
        """
        return self.client.stop()


__all__ = ['Session', 'LETSENCRYPT_DIRECTORY', 'LETSENCRYPT_STAGING_DIRECTORY']
