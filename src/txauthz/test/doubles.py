"""
Test doubles.
"""
import json

import attr
from acme.jws import JWS
from cryptography.hazmat.primitives.asymmetric import rsa
from josepy.b64 import b64decode, b64encode
from josepy.jwk import JWKRSA
from treq.testing import StubTreq
from twisted.internet.defer import Deferred
from twisted.internet.task import Clock
from twisted.web import http
from twisted.web.resource import Resource

from txauthz.session import Session
from txauthz.transport import (
    JSON_CONTENT_TYPE, JSON_ERROR_CONTENT_TYPE, JWSClient)


# from cryptography:

RSA_KEY_512_RAW = rsa.RSAPrivateNumbers(
    p=int(
        "d57846898d5c0de249c08467586cb458fa9bc417cdf297f73cfc52281b787cd9", 16
    ),
    q=int(
        "d10f71229e87e010eb363db6a85fd07df72d985b73c42786191f2ce9134afb2d", 16
    ),
    d=int(
        "272869352cacf9c866c4e107acc95d4c608ca91460a93d28588d51cfccc07f449"
        "18bbe7660f9f16adc2b4ed36ca310ef3d63b79bd447456e3505736a45a6ed21", 16
    ),
    dmp1=int(
        "addff2ec7564c6b64bc670d250b6f24b0b8db6b2810099813b7e7658cecf5c39", 16
    ),
    dmq1=int(
        "463ae9c6b77aedcac1397781e50e4afc060d4b216dc2778494ebe42a6850c81", 16
    ),
    iqmp=int(
        "54deef8548f65cad1d411527a32dcb8e712d3e128e4e0ff118663fae82a758f4", 16
    ),
    public_numbers=rsa.RSAPublicNumbers(
        e=65537,
        n=int(
            "ae5411f963c50e3267fafcf76381c8b1e5f7b741fdb2a544bcf48bd607b10c991"
            "90caeb8011dc22cf83d921da55ec32bd05cac3ee02ca5e1dbef93952850b525",
            16
        ),
    )
).private_key()

RSA_KEY_512 = JWKRSA(key=RSA_KEY_512_RAW)

# A random example token for the challenge tests that need one
EXAMPLE_TOKEN = u'BWYcfxzmOha7-7LoxziqPZIUr99BCz3BfbN9kzSFnrU'
OTHER_TOKEN = u'rSoI9JpyvFi-ltdnBW0W1DjKstzG7cHixjzcOjwzAEQ'

CA_BASE = u'https://ca.example'

DIRECTORY_PATHS = {
    u'new-reg': u'/acme/new-reg',
    u'new-authz': u'/acme/new-authz',
    u'new-cert': u'/acme/new-cert',
    u'revoke-cert': u'/acme/revoke-cert',
    }


@attr.s
class CannedResponse(object):
    """
    A response the fake CA will send.

    :ivar nonce: ``True`` to issue a fresh nonce, ``None`` for no nonce, or a
        string to send as is.
    """
    code = attr.ib(default=http.OK)
    json = attr.ib(default=None)
    content = attr.ib(default=None)
    content_type = attr.ib(default=None)
    headers = attr.ib(default=attr.Factory(dict))
    nonce = attr.ib(default=True)


def problem(typ, detail=u'', code=http.BAD_REQUEST, **kwargs):
    """
    A canned problem document response.
    """
    return CannedResponse(
        code=code,
        json={u'type': u'urn:acme:error:' + typ, u'detail': detail},
        content_type=JSON_ERROR_CONTENT_TYPE,
        **kwargs)


@attr.s
class RecordedRequest(object):
    """
    A request the fake CA received.
    """
    method = attr.ib()
    url = attr.ib()
    headers = attr.ib(repr=False)
    body = attr.ib(repr=False)

    @property
    def jws(self):
        return JWS.from_json(json.loads(self.body.decode('utf-8')))

    @property
    def protected(self):
        jobj = json.loads(self.body.decode('utf-8'))
        return json.loads(b64decode(jobj[u'protected']).decode('utf-8'))

    @property
    def claims(self):
        return json.loads(self.jws.payload.decode('utf-8'))

    @property
    def nonce(self):
        return self.protected[u'nonce']

    def verify(self, key=RSA_KEY_512):
        return self.jws.verify(key.public_key())


class FakeCA(Resource):
    """
    An in-memory CA that plays back canned responses.

    Responses are queued per method and path; a HEAD request without a queued
    response is answered with a fresh nonce, and the directory is always
    available.
    """
    isLeaf = True

    def __init__(self, base=CA_BASE):
        Resource.__init__(self)
        self.base = base
        self.requests = []
        self.issued_nonces = []
        self._responses = {}

    def url(self, path):
        return self.base + path

    @property
    def directory_url(self):
        return self.url(u'/directory')

    def directory(self):
        return {
            name: self.url(path) for name, path in DIRECTORY_PATHS.items()}

    def expect(self, method, path, *responses):
        """
        Queue responses for requests to a path.
        """
        self._responses.setdefault((method, path), []).extend(responses)

    def pending(self):
        """
        Queued responses that were never requested.
        """
        return {key: value for key, value in self._responses.items() if value}

    def next_nonce(self):
        nonce = b64encode(
            u'nonce-{}'.format(len(self.issued_nonces)).encode('ascii')
            ).decode('ascii')
        self.issued_nonces.append(nonce)
        return nonce

    def signed(self, method=u'POST'):
        return [r for r in self.requests if r.method == method]

    def _canned(self, method, path):
        queue = self._responses.get((method, path))
        if queue:
            return queue.pop(0)
        if method == u'HEAD':
            return CannedResponse()
        if method == u'GET' and path == u'/directory':
            return CannedResponse(json=self.directory())
        return CannedResponse(code=http.NOT_FOUND, nonce=None)

    def render(self, request):
        method = request.method.decode('ascii')
        path = request.path.decode('ascii')
        self.requests.append(RecordedRequest(
            method=method,
            url=self.url(path),
            headers=request.requestHeaders,
            body=request.content.read()))
        canned = self._canned(method, path)

        request.setResponseCode(canned.code)
        nonce = canned.nonce
        if nonce is True:
            nonce = self.next_nonce()
        if nonce is not None:
            request.setHeader(b'replay-nonce', nonce.encode('ascii'))
        for name, values in canned.headers.items():
            request.responseHeaders.setRawHeaders(name, values)

        content_type = canned.content_type
        if canned.content is not None:
            content = canned.content
        elif canned.json is not None:
            content = json.dumps(canned.json).encode('utf-8')
            if content_type is None:
                content_type = JSON_CONTENT_TYPE
        else:
            content = b''
        if content_type is not None:
            request.setHeader(b'content-type', content_type)
        return content


class HangingTreq(object):
    """
    A treq client whose requests never complete.
    """
    def __init__(self):
        self.requests = []

    def request(self, method, url, **kwargs):
        d = Deferred()
        self.requests.append((method, url, kwargs, d))
        return d


class FailingTreq(object):
    """
    A treq client whose requests fail with ``exception``.
    """
    def __init__(self, exception):
        self.exception = exception

    def request(self, method, url, **kwargs):
        d = Deferred()
        d.errback(self.exception)
        return d


def make_session(ca=None, clock=None, key=RSA_KEY_512, nonce=None,
                 treq_client=None):
    """
    Build a session against a fake CA, bypassing directory discovery.
    """
    if ca is None:
        ca = FakeCA()
    if clock is None:
        clock = Clock()
    if treq_client is None:
        treq_client = StubTreq(ca)
    session = Session(
        directory_url=ca.directory_url,
        directory=ca.directory(),
        key=key,
        client=JWSClient(treq_client, clock),
        clock=clock)
    session.nonce = nonce
    return session


__all__ = [
    'RSA_KEY_512', 'RSA_KEY_512_RAW', 'EXAMPLE_TOKEN', 'OTHER_TOKEN',
    'CannedResponse', 'problem', 'RecordedRequest', 'FakeCA', 'HangingTreq',
    'FailingTreq', 'make_session']
