"""
Issued certificates.
"""
import attr
import pem
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from eliot.twisted import DeferredContext, inline_callbacks
from twisted.internet import defer
from twisted.web import http

from txauthz.errors import ProtocolError
from txauthz.logging import (
    LOG_ACME_REQUEST_CERTIFICATE, LOG_ACME_REVOKE_CERTIFICATE)
from txauthz.messages import CertificateRequest, Revocation
from txauthz.transport import DER_CONTENT_TYPE, expect_code
from txauthz.util import tap

#: How many ``up`` links to follow before giving up on a chain.
MAX_CHAIN_LENGTH = 10


def _der_to_pem(der, url):
    try:
        certificate = x509.load_der_x509_certificate(der)
    except ValueError as error:
        raise ProtocolError(
            'Invalid certificate: {}'.format(error), url=url)
    return pem.Certificate(certificate.public_bytes(Encoding.PEM))


@attr.s(eq=False)
class Certificate(object):
    """
    A certificate issued by the CA.

    :ivar str location: Where the certificate can be downloaded from.
    :ivar bytes der: The certificate, once downloaded.
    :ivar str chain_uri: Where the issuer certificate can be downloaded from.
    """
    session = attr.ib(repr=False)
    location = attr.ib()
    der = attr.ib(default=None, repr=False)
    chain_uri = attr.ib(default=None)
    retry_after = attr.ib(default=None, repr=False)

    @classmethod
    def request(cls, session, csr, timeout=None):
        """
        Request a certificate.

        Authorizations for every name in the CSR must already be valid.

        :param session: The `~txauthz.session.Session` of a registered
            account.
        :param cryptography.x509.CertificateSigningRequest csr: The CSR.

        :return: ``Deferred`` firing with the `Certificate`; its ``der`` is
            ``None`` if the CA has not issued it yet.
        """
        action = LOG_ACME_REQUEST_CERTIFICATE()
        with action.context():
            return (
                DeferredContext(
                    session.client.post(
                        session.resource_uri(u'new-cert'),
                        CertificateRequest(csr=csr),
                        session,
                        content_type=DER_CONTENT_TYPE,
                        timeout=timeout))
                .addCallback(cls._cb_issued, session)
                .addCallback(
                    tap(lambda cert: action.add_success_fields(
                        location=cert.location)))
                .addActionFinish())

    @classmethod
    def _cb_issued(cls, response, session):
        expect_code(response, {http.CREATED})
        if response.location is None:
            raise ProtocolError(
                'Certificate issued without a Location', url=response.url)
        return cls(session=session, location=response.location)._record(
            response)

    @classmethod
    def fetch(cls, session, location, timeout=None):
        """
        Bind a certificate to its location and fetch it.

        :return: ``Deferred`` firing with the `Certificate`.
        """
        certificate = cls(session=session, location=location)
        return (
            session.client.get(
                location, content_type=DER_CONTENT_TYPE, session=session,
                timeout=timeout)
            .addCallback(certificate._record))

    def _record(self, response):
        if response.content:
            self.der = response.content
        self.chain_uri = response.link(u'up')
        self.retry_after = response.retry_after
        return self

    @inline_callbacks
    def download(self, timeout=None):
        """
        Download the certificate and its chain.

        The chain is found by following ``up`` links.

        :return: ``Deferred`` firing with a list of `pem.Certificate`, the
            issued certificate first, or with ``None`` if the CA has not
            issued it yet.
        """
        client = self.session.client
        response = yield client.get(
            self.location, content_type=DER_CONTENT_TYPE,
            session=self.session, timeout=timeout)
        self._record(response)
        if not response.content:
            defer.returnValue(None)
        certificates = [_der_to_pem(response.content, response.url)]
        uri = self.chain_uri
        seen = {self.location}
        while uri is not None and uri not in seen:
            if len(certificates) > MAX_CHAIN_LENGTH:
                raise ProtocolError('Certificate chain too long', url=uri)
            seen.add(uri)
            response = yield client.get(
                uri, content_type=DER_CONTENT_TYPE, session=self.session,
                timeout=timeout)
            certificates.append(_der_to_pem(response.content, response.url))
            uri = response.link(u'up')
        defer.returnValue(certificates)

    def revoke(self, reason=None, timeout=None):
        """
        Revoke the certificate.

        :param int reason: The CRL reason code, if any.

        :return: ``Deferred`` firing with ``None`` once the CA has revoked it.
        """
        if self.der is None:
            raise ValueError('Download the certificate before revoking it')
        action = LOG_ACME_REVOKE_CERTIFICATE(
            location=self.location, reason=reason)
        with action.context():
            return (
                DeferredContext(
                    self.session.client.post(
                        self.session.resource_uri(u'revoke-cert'),
                        Revocation(certificate=self.der, reason=reason),
                        self.session,
                        content_type=None,
                        timeout=timeout))
                .addCallback(expect_code, {http.OK})
                .addCallback(lambda _: None)
                .addActionFinish())


__all__ = ['Certificate', 'MAX_CHAIN_LENGTH']
