"""
Get a domain authorized and a certificate issued, answering the ``http-01``
challenge with a local web server.

The web server listens on port 5002; whatever serves port 80 of the domain
has to forward ``/.well-known/acme-challenge/`` to it.

Each time it starts, it generates a new account key.
"""
import sys

from eliot import to_file
from josepy.jwk import JWKRSA
from twisted.internet import defer, reactor
from twisted.internet.endpoints import TCP4ServerEndpoint
from twisted.python.url import URL
from twisted.web import http
from twisted.web.resource import Resource
from twisted.web.server import Site
from zope.interface import implementer

from txauthz.client import answer_challenges
from txauthz.interfaces import IResponder
from txauthz.registration import Registration
from txauthz.session import LETSENCRYPT_STAGING_DIRECTORY, Session
from txauthz.util import csr_for_names, generate_private_key

LOG_PATH = 'eliot-log.json'


class StaticTextResource(Resource, object):
    """
    A resource returning a static page.
    """
    isLeaf = True

    def __init__(self, content='', content_type='text/plain', code=http.OK):
        self._content = content.encode('utf-8')
        self._content_type = content_type.encode('ascii')
        self._code = code
        super(StaticTextResource, self).__init__()

    def render(self, request):
        request.setHeader(b'Content-Type', self._content_type)
        request.setResponseCode(self._code)
        return self._content


@implementer(IResponder)
class HTTP01Responder(Resource, object):
    """
    Web resource for the ``http-01`` challenge responder.
    """
    challenge_type = u'http-01'

    def start_responding(self, server_name, challenge):
        self.putChild(
            challenge.token.encode('ascii'),
            StaticTextResource(challenge.prepare()))

    def stop_responding(self, server_name, challenge):
        encoded_token = challenge.token.encode('ascii')
        if self.getStaticEntity(encoded_token) is not None:
            self.delEntity(encoded_token)


def start_http01_server(responder):
    root = Resource()
    well_known = Resource()
    root.putChild(b'.well-known', well_known)
    well_known.putChild(b'acme-challenge', responder)
    endpoint = TCP4ServerEndpoint(reactor, 5002)
    return endpoint.listen(Site(root))


@defer.inlineCallbacks
def main(directory_url, domain):
    responder = HTTP01Responder()
    yield start_http01_server(responder)

    session = yield Session.create(
        reactor, URL.fromText(directory_url),
        key=JWKRSA(key=generate_private_key(u'rsa')))
    try:
        registration = yield Registration.create(
            session, contact=[u'mailto:hostmaster@' + domain])
        if (registration.terms_of_service is not None and
                registration.agreement != registration.terms_of_service):
            yield registration.agree_to_terms_of_service()
        print('Account URI: %s' % (registration.location,))

        authorization = yield registration.authorize_domain(domain)
        yield answer_challenges(authorization, [responder], reactor)
        print('Authorization for %s is %s' % (domain, authorization.status))
        if authorization.status != u'valid':
            return

        csr = csr_for_names([domain], generate_private_key(u'rsa'))
        certificate = yield registration.request_certificate(csr)
        chain = yield certificate.download()
        for pem_object in chain or []:
            print(pem_object.as_text())
    finally:
        yield session.stop()


if __name__ == '__main__':
    if len(sys.argv) < 2:
        print('Usage: %s DOMAIN [DIRECTORY_URL]\n' % (sys.argv[0],))
        sys.exit(1)
    domain = sys.argv[1]
    if len(sys.argv) > 2:
        directory_url = sys.argv[2]
    else:
        directory_url = LETSENCRYPT_STAGING_DIRECTORY.asText()
    to_file(open(LOG_PATH, 'w'))

    d = main(directory_url, domain)
    d.addErrback(lambda failure: print(failure))
    d.addBoth(lambda _: reactor.stop())
    reactor.run()
