"""
Signed-request transport: the `JWSClient` and the responses it hands back.

Every signed exchange consumes the session's current nonce and installs the
one the CA sends back, even when the CA rejects the request.  The whole
"read nonce, send, install new nonce" sequence runs under the session's
nonce lock so two requests never race for the same nonce.
"""
import json
import re

import attr
import treq
from acme import messages
from acme.jws import JWS
from eliot.twisted import DeferredContext
from josepy.errors import DeserializationError
from josepy.json_util import decode_b64jose
from treq.client import HTTPClient
from twisted.internet import defer
from twisted.internet.error import (
    ConnectError, ConnectionClosed, DNSLookupError)
from twisted.python.failure import Failure
from twisted.web import http
from twisted.web.client import (
    Agent, HTTPConnectionPool, ResponseFailed, ResponseNeverReceived)
from twisted.web.http_headers import Headers

from txauthz import __version__
from txauthz.errors import (
    AccountExists, AgreementRequired, BadNonceError, CAProblemError,
    DeadlineExceeded, NotFoundError, ProtocolError, TransportError,
    problem_code, problem_error_type)
from txauthz.logging import (
    LOG_HTTP_PARSE_LINKS, LOG_JWS_ADD_NONCE, LOG_JWS_BAD_NONCE_RETRY,
    LOG_JWS_CHECK_RESPONSE, LOG_JWS_GET, LOG_JWS_GET_NONCE, LOG_JWS_HEAD,
    LOG_JWS_POST, LOG_JWS_REQUEST, LOG_JWS_SIGN)
from txauthz.util import parse_retry_after

_DEFAULT_TIMEOUT = 40

JSON_CONTENT_TYPE = b'application/json'
JOSE_CONTENT_TYPE = b'application/jose+json'
JSON_ERROR_CONTENT_TYPE = b'application/problem+json'
DER_CONTENT_TYPE = b'application/pkix-cert'
REPLAY_NONCE_HEADER = b'Replay-Nonce'

_NETWORK_ERRORS = (
    ConnectError, ConnectionClosed, DNSLookupError, ResponseFailed,
    ResponseNeverReceived)


# Borrowed from requests, with modifications.
def _parse_header_links(headers):
    """
    Parse the links from a Link: header field.

    ..  todo:: Links with the same relation collide at the moment.

    :param headers: The ``twisted.web.http_headers.Headers`` of a response.

    :rtype: `dict`
    :return: A dictionary of parsed links, keyed by ``rel`` or ``url``.
    """
    values = headers.getRawHeaders(b'link', [b''])
    value = b','.join(values).decode('ascii')
    with LOG_HTTP_PARSE_LINKS(raw_link=value) as action:
        links = {}
        replace_chars = u' \'"'
        for val in re.split(u', *<', value):
            if not val:
                continue
            try:
                url, params = val.split(u';', 1)
            except ValueError:
                url, params = val, u''

            link = {}
            link[u'url'] = url.strip(u'<> \'"')
            for param in params.split(u';'):
                try:
                    key, value = param.split(u'=')
                except ValueError:
                    break
                link[key.strip(replace_chars)] = value.strip(replace_chars)
            links[link.get(u'rel') or link.get(u'url')] = link
        action.add_success_fields(parsed_links=links)
        return links


def _first_header(headers, name):
    value = headers.getRawHeaders(name, [None])[0]
    if isinstance(value, bytes):
        return value.decode('ascii', 'replace')
    return value


@attr.s(frozen=True)
class ACMEResponse(object):
    """
    A complete response from the CA.

    :ivar str url: The URL the request was made to.
    :ivar int code: The HTTP status code.
    :ivar headers: The ``twisted.web.http_headers.Headers``.
    :ivar bytes content: The raw body.
    :ivar json: The decoded JSON body, once the response has been checked
        and it had one; ``None`` otherwise.
    :ivar str nonce: The ``Replay-Nonce`` the CA sent, if any.
    :ivar retry_after: Seconds the CA asked us to wait, if it did.
    """
    url = attr.ib()
    code = attr.ib()
    headers = attr.ib(repr=False)
    content = attr.ib(default=b'', repr=False)
    json = attr.ib(default=None, repr=False)
    nonce = attr.ib(default=None)
    retry_after = attr.ib(default=None)

    @property
    def content_type(self):
        return _first_header(self.headers, b'content-type')

    @property
    def location(self):
        return _first_header(self.headers, b'location')

    @property
    def links(self):
        return _parse_header_links(self.headers)

    def link(self, rel):
        """
        The URL of the link with the given relation, or ``None``.
        """
        link = self.links.get(rel)
        if link is None:
            return None
        return link[u'url']


def expect_code(response, codes):
    """
    Ensure we got one of the expected response codes.
    """
    if response.code not in codes:
        raise ProtocolError(
            'Expected {!r} response but got {!r}'.format(
                codes, response.code),
            url=response.url)
    return response


def _problem_error(problem, response):
    """
    Build the exception for a problem document.
    """
    kwargs = dict(
        problem=problem,
        code=response.code,
        url=response.url,
        retry_after=response.retry_after)
    if response.code == http.CONFLICT and response.location is not None:
        return AccountExists(location=response.location, **kwargs)
    error_type = problem_error_type(problem)
    if error_type is AgreementRequired:
        return AgreementRequired(
            terms_of_service=response.link(u'terms-of-service'), **kwargs)
    return error_type(**kwargs)


def _decode_json(response):
    try:
        return json.loads(response.content.decode('utf-8'))
    except ValueError:
        return None


def _default_client(jws_client, reactor):
    """
    Make a client if we didn't get one.
    """
    if jws_client is None:
        pool = HTTPConnectionPool(reactor)
        agent = Agent(reactor, pool=pool)
        jws_client = JWSClient(HTTPClient(agent), reactor, pool=pool)
    return jws_client


class JWSClient(object):
    """
    HTTP client using JWS-signed messages for ACME.

    :param treq_client: A ``treq.client.HTTPClient`` (or something with the
        same ``request`` method, like ``treq.testing.StubTreq``).
    :param clock: ``IReactorTime`` provider used for request timeouts.
    :param pool: The ``HTTPConnectionPool`` to close on `stop`, if any.
    """
    timeout = _DEFAULT_TIMEOUT

    def __init__(self, treq_client, clock, pool=None,
                 user_agent=u'txauthz/{}'.format(__version__).encode('ascii')):
        self._treq = treq_client
        self._clock = clock
        self._pool = pool
        self._user_agent = user_agent
        self._requests = set()

    def _wrap_in_jws(self, nonce, obj, url, session):
        """
        Wrap ``JSONDeSerializable`` object in ACME JWS.

        :param str nonce: The base64url nonce to sign with.
        :param ~josepy.interfaces.JSONDeSerializable obj: The claims.
        :param str url: URL to the request for which we wrap the payload.
        :param ~txauthz.session.Session session: The session whose key signs.

        :rtype: `bytes`
        :return: JSON-encoded data
        """
        with LOG_JWS_SIGN(key_type=session.key.typ, alg=session.alg.name,
                          nonce=nonce, kid=session.account_uri):
            return (
                JWS.sign(
                    payload=obj.json_dumps().encode('utf-8'),
                    key=session.key,
                    alg=session.alg,
                    nonce=decode_b64jose(nonce),
                    url=url,
                    kid=session.account_uri,
                    )
                .json_dumps()
                .encode('utf-8'))

    def send(self, method, url, timeout=None, **kwargs):
        """
        Send an HTTP request and collect the complete response.

        The response status is not checked.

        :param str method: The HTTP method to use.
        :param str url: The URL to make the request to.
        :param timeout: Seconds to wait for the whole response; the client
            default if ``None``.

        :raises txauthz.errors.TransportError: If the network failed us.
        :raises txauthz.errors.DeadlineExceeded: If the response did not
            arrive in time.

        :return: Deferred firing with the `ACMEResponse`.
        """
        if timeout is None:
            timeout = self.timeout

        def cb_collect(response):
            return (
                treq.content(response)
                .addCallback(
                    lambda content: ACMEResponse(
                        url=url,
                        code=response.code,
                        headers=response.headers,
                        content=content,
                        nonce=_first_header(
                            response.headers, REPLAY_NONCE_HEADER),
                        retry_after=parse_retry_after(
                            _first_header(response.headers, b'retry-after'),
                            self._clock.seconds()))))

        def eb_network(failure):
            failure.trap(*_NETWORK_ERRORS)
            raise TransportError(url=url, reason=failure.value)

        def on_timeout(result, timeout):
            return Failure(DeadlineExceeded(url=url, timeout=timeout))

        def cb_done(result):
            self._requests.discard(d)
            return result

        action = LOG_JWS_REQUEST(method=method, url=url)
        with action.context():
            headers = kwargs.setdefault('headers', Headers())
            headers.setRawHeaders(b'user-agent', [self._user_agent])
            d = self._treq.request(method, url, **kwargs)
            self._requests.add(d)
            d.addCallback(cb_collect)
            d.addErrback(eb_network)
            d.addTimeout(timeout, self._clock, onTimeoutCancel=on_timeout)
            d.addBoth(cb_done)
            return (
                DeferredContext(d)
                .addCallback(self._cb_log_response, action)
                .addActionFinish())

    @staticmethod
    def _cb_log_response(response, action):
        action.add_success_fields(
            code=response.code, content_type=response.content_type)
        return response

    @classmethod
    def check_response(cls, response, content_type=JSON_CONTENT_TYPE):
        """
        Check response code, content and its type.

        :param ACMEResponse response: The response.
        :param bytes content_type: Expected Content-Type response header, or
            ``None`` to accept anything.  Empty bodies are always accepted.

        :raises txauthz.errors.NotFoundError: On 404 or 410.
        :raises txauthz.errors.CAProblemError: If server response body
            carries HTTP Problem (draft-ietf-appsawg-http-problem-00).
        :raises txauthz.errors.TransportError: On other non-2xx responses.
        :raises txauthz.errors.ProtocolError: On unexpected 2xx content.

        :rtype: ACMEResponse
        :return: The response, with ``json`` filled in for JSON bodies.
        """
        response_ct = (response.content_type or u'').lower()
        expected_ct = (
            None if content_type is None else content_type.decode('ascii'))
        with LOG_JWS_CHECK_RESPONSE(
                code=response.code,
                expected_content_type=expected_ct,
                response_content_type=response.content_type):
            if not 200 <= response.code < 300:
                problem = None
                jobj = _decode_json(response)
                if (response_ct.startswith(
                        JSON_ERROR_CONTENT_TYPE.decode('ascii'))
                        and isinstance(jobj, dict)):
                    try:
                        problem = messages.Error.from_json(jobj)
                    except DeserializationError:
                        problem = None
                if response.code in (http.NOT_FOUND, http.GONE):
                    raise NotFoundError(url=response.url, problem=problem)
                if problem is None and response.code == http.CONFLICT:
                    problem = messages.Error(detail=u'Conflict')
                if problem is not None:
                    raise _problem_error(problem, response)
                raise TransportError(
                    url=response.url,
                    reason=http.RESPONSES.get(response.code),
                    code=response.code)
            if expected_ct is None or not response.content:
                return response
            if expected_ct not in response_ct:
                raise ProtocolError(
                    'Unexpected response Content-Type: {0!r}. '
                    'Expecting {1!r}.'.format(
                        response.content_type, expected_ct),
                    url=response.url)
            if expected_ct == JSON_CONTENT_TYPE.decode('ascii'):
                jobj = _decode_json(response)
                if jobj is None:
                    raise ProtocolError(
                        'Response is not JSON.', url=response.url)
                return attr.evolve(response, json=jobj)
            return response

    def _add_nonce(self, response, session):
        """
        Install the nonce from a response in the session.

        The previous nonce was spent by the request, so it is replaced even if
        the response carries none.

        :return: The response, unmodified.
        """
        with LOG_JWS_ADD_NONCE(raw_nonce=response.nonce):
            session.nonce = None
            if response.nonce is not None:
                try:
                    decode_b64jose(response.nonce)
                except DeserializationError as error:
                    raise ProtocolError(
                        'Invalid nonce {!r}: {}'.format(response.nonce, error),
                        url=response.url)
                session.nonce = response.nonce
            return response

    def _get_nonce(self, session, timeout):
        """
        Get the nonce to sign the next request with, asking the CA for one if
        the session has none.
        """
        action = LOG_JWS_GET_NONCE()
        if session.nonce is not None:
            with action:
                action.add_success_fields(nonce=session.nonce)
                return defer.succeed(session.nonce)

        def cb_extract(response):
            if session.nonce is None:
                raise ProtocolError(
                    'No nonce in response', url=response.url)
            action.add_success_fields(nonce=session.nonce)
            return session.nonce

        with action.context():
            return (
                DeferredContext(self.head(session.nonce_url, timeout=timeout))
                .addCallback(self._add_nonce, session)
                .addCallback(cb_extract)
                .addActionFinish())

    def head(self, url, timeout=None, **kwargs):
        """
        Send HEAD request without checking the response.

        Note that `check_response` is not called, as there will be no
        response body to check.

        :param str url: The URL to make the request to.
        """
        with LOG_JWS_HEAD().context():
            return DeferredContext(
                self.send(u'HEAD', url, timeout=timeout, **kwargs)
                ).addActionFinish()

    def get(self, url, content_type=JSON_CONTENT_TYPE, session=None,
            timeout=None, **kwargs):
        """
        Send GET request and check response.

        Unsigned requests do not take the session's nonce lock; a nonce in
        the response replaces the one the session holds.

        :param str url: The URL to make the request to.
        :param bytes content_type: The expected content type of the response.
        :param ~txauthz.session.Session session: A session to install the
            nonce from the response in.

        :raises txauthz.errors.CAProblemError: If server response body
            carries HTTP Problem (draft-ietf-appsawg-http-problem-00).
        :raises txauthz.errors.ProtocolError: In case of other protocol
            errors.

        :return: Deferred firing with the checked `ACMEResponse`.
        """
        def cb_install_nonce(response):
            if session is not None and response.nonce is not None:
                self._add_nonce(response, session)
            return response

        with LOG_JWS_GET().context():
            return (
                DeferredContext(
                    self.send(u'GET', url, timeout=timeout, **kwargs))
                .addCallback(cb_install_nonce)
                .addCallback(self.check_response, content_type=content_type)
                .addActionFinish())

    def _post(self, url, obj, session, content_type, timeout, **kwargs):
        """
        POST an object and check the response.  The session lock must be held.
        """
        headers = kwargs.setdefault('headers', Headers())
        headers.setRawHeaders(b'content-type', [JOSE_CONTENT_TYPE])
        return (
            self._get_nonce(session, timeout)
            .addCallback(self._wrap_in_jws, obj, url, session)
            .addCallback(
                lambda data: self.send(
                    u'POST', url, data=data, timeout=timeout, **kwargs))
            .addCallback(self._add_nonce, session)
            .addCallback(self.check_response, content_type=content_type))

    def _post_with_retry(self, url, obj, session, content_type, timeout,
                         **kwargs):
        def give_up(f):
            f.trap(CAProblemError)
            if problem_code(f.value.problem) == u'badNonce':
                raise BadNonceError(
                    'Nonce rejected twice', url=url, problem=f.value.problem)
            return f

        def retry_bad_nonce(f):
            f.trap(CAProblemError)
            if problem_code(f.value.problem) == u'badNonce':
                # The rejection carried a fresh nonce, which is now in the
                # session.
                with LOG_JWS_BAD_NONCE_RETRY(url=url):
                    return (
                        self._post(
                            url, obj, session, content_type, timeout,
                            **kwargs)
                        .addErrback(give_up))
            return f

        return (
            self._post(url, obj, session, content_type, timeout, **kwargs)
            .addErrback(retry_bad_nonce))

    def post(self, url, obj, session, content_type=JSON_CONTENT_TYPE,
             timeout=None, **kwargs):
        """
        POST an object signed with the session key and check the response.
        Retry once if a badNonce error is received.

        :param str url: The URL to request.
        :param ~josepy.interfaces.JSONDeSerializable obj: The claims.
        :param ~txauthz.session.Session session: The session to sign with.
        :param bytes content_type: The expected content type of the response.
            By default, JSON.
        :param timeout: Seconds for the whole exchange, including the wait
            for the session's nonce lock; the client default if ``None``.

        :raises txauthz.errors.CAProblemError: If server response body
            carries HTTP Problem (draft-ietf-appsawg-http-problem-00).
        :raises txauthz.errors.BadNonceError: If the nonce was rejected again
            on the retry.
        :raises txauthz.errors.DeadlineExceeded: If the timeout expired.
        :raises txauthz.errors.ProtocolError: In case of other protocol
            errors.

        :return: Deferred firing with the checked `ACMEResponse`.
        """
        if timeout is None:
            timeout = self.timeout
        started = self._clock.seconds()

        def on_timeout(result, timeout):
            return Failure(DeadlineExceeded(url=url, timeout=timeout))

        def cb_locked(lock):
            # Waiting for the lock counts against the deadline.
            remaining = timeout - (self._clock.seconds() - started)

            def release(result):
                lock.release()
                return result

            return (
                defer.maybeDeferred(
                    self._post_with_retry, url, obj, session, content_type,
                    remaining, **kwargs)
                .addBoth(release))

        with LOG_JWS_POST().context():
            acquired = session.nonce_lock.acquire()
            acquired.addTimeout(
                timeout, self._clock, onTimeoutCancel=on_timeout)
            return (
                DeferredContext(acquired)
                .addCallback(cb_locked)
                .addActionFinish())

    def stop(self):
        """
        Stops the operation.

        This cancels pending operations and does cleanup.

        :return: A deferred which fires when the client is stopped.
        """
        for d in list(self._requests):
            d.cancel()
        self._requests.clear()
        if self._pool is not None:
            return self._pool.closeCachedConnections()
        return defer.succeed(None)


__all__ = [
    'ACMEResponse', 'JWSClient', 'expect_code', 'JSON_CONTENT_TYPE',
    'JOSE_CONTENT_TYPE', 'JSON_ERROR_CONTENT_TYPE', 'DER_CONTENT_TYPE',
    'REPLAY_NONCE_HEADER']
