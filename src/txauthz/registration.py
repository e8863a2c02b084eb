"""
Registrations: the account on the CA side.
"""
import attr
from eliot.twisted import DeferredContext
from twisted.web import http

from txauthz.authorization import Authorization
from txauthz.certificate import Certificate
from txauthz.errors import AccountExists, ProtocolError
from txauthz.logging import LOG_ACME_REGISTER, LOG_ACME_UPDATE_REGISTRATION
from txauthz.messages import (
    NewRegistration, RegistrationBody, UpdateRegistration)
from txauthz.resource import Resource, STATUS_DEACTIVATED, STATUS_REVOKED
from txauthz.transport import expect_code
from txauthz.util import tap


@attr.s(eq=False)
class Registration(Resource):
    """
    An account.

    Creating or loading a registration binds the session to it: later
    requests are signed with its location as key ID.

    :ivar key: The account public key, as the CA reports it.
    :ivar contact: The contact URIs, eg. ``(u'mailto:admin@example.com',)``.
    :ivar str agreement: The terms of service URL the account agreed to.
    :ivar str terms_of_service: The terms of service URL the CA currently
        links to.
    """
    resource_type = u'reg'
    body_class = RegistrationBody
    terminal_statuses = frozenset([STATUS_DEACTIVATED, STATUS_REVOKED])
    deactivation_class = UpdateRegistration

    key = attr.ib(default=None, init=False, repr=False)
    contact = attr.ib(default=(), init=False)
    agreement = attr.ib(default=None, init=False)
    authorizations_uri = attr.ib(default=None, init=False, repr=False)
    certificates_uri = attr.ib(default=None, init=False, repr=False)
    terms_of_service = attr.ib(default=None, init=False, repr=False)
    _created = attr.ib(default=False, init=False, repr=False)

    @classmethod
    def create(cls, session, contact=(), agreement=None, timeout=None):
        """
        Register the session key with the CA.

        If the key is already registered, the existing registration is used
        instead, with its contact details updated if any were given.

        :param session: The `~txauthz.session.Session`.
        :param contact: Contact URIs.
        :param str agreement: The terms of service URL to agree to.

        :return: ``Deferred`` firing with the `Registration`.
        """
        message = NewRegistration(contact=tuple(contact), agreement=agreement)
        action = LOG_ACME_REGISTER(registration=message)
        with action.context():
            return (
                DeferredContext(
                    session.client.post(
                        session.resource_uri(u'new-reg'), message, session,
                        timeout=timeout))
                .addCallbacks(
                    cls._cb_created, cls._eb_existing,
                    callbackArgs=(session,),
                    errbackArgs=(session, contact, timeout))
                .addCallback(
                    tap(lambda reg: action.add_success_fields(
                        location=reg.location,
                        existing=not reg._created)))
                .addActionFinish())

    @classmethod
    def _cb_created(cls, response, session):
        expect_code(response, {http.CREATED})
        if response.location is None:
            raise ProtocolError(
                'Registration created without a Location', url=response.url)
        reg = cls._bind(session, response.location)
        reg._created = True
        return reg._cb_update(response)

    @classmethod
    def _eb_existing(cls, failure, session, contact, timeout):
        failure.trap(AccountExists)
        reg = cls._bind(session, failure.value.location)
        if contact:
            return reg.modify(contact=tuple(contact), timeout=timeout)
        return reg.update(timeout=timeout)

    @classmethod
    def _bind(cls, session, location):
        session.account_uri = location
        return cls(session=session, location=location)

    @classmethod
    def fetch(cls, session, location, timeout=None):
        """
        Load a registration by its location.  This binds the session to it.
        """
        return cls._bind(session, location).update(timeout=timeout)

    def _fetch(self, timeout):
        return self.session.client.post(
            self.location, UpdateRegistration(), self.session,
            timeout=timeout)

    def _decode(self, body):
        if body.key is not None and body.key != self.session.key.public_key():
            raise ProtocolError(
                'Registration is for a different key', url=self.location)
        return dict(
            key=body.key,
            contact=body.contact,
            agreement=body.agreement,
            authorizations_uri=body.authorizations,
            certificates_uri=body.certificates)

    def _record_response(self, response):
        super(Registration, self)._record_response(response)
        self.terms_of_service = response.link(u'terms-of-service')

    def modify(self, contact=None, agreement=None, timeout=None):
        """
        Change the contact details or agree to terms of service.

        Fields left as ``None`` are not changed.

        :return: ``Deferred`` firing with the registration itself.
        """
        message = UpdateRegistration(contact=contact, agreement=agreement)
        action = LOG_ACME_UPDATE_REGISTRATION(
            registration=message, location=self.location)
        with action.context():
            return (
                DeferredContext(
                    self.session.client.post(
                        self.location, message, self.session,
                        timeout=timeout))
                .addCallback(self._cb_update)
                .addCallback(
                    tap(lambda reg: action.add_success_fields(
                        status=reg.status)))
                .addActionFinish())

    def agree_to_terms_of_service(self, timeout=None):
        """
        Agree to the terms of service the CA last linked to.
        """
        if self.terms_of_service is None:
            raise ValueError('No terms of service to agree to')
        return self.modify(agreement=self.terms_of_service, timeout=timeout)

    def authorize_domain(self, domain, timeout=None):
        """
        Ask the CA for a new authorization for a domain name.

        :return: ``Deferred`` firing with the
            `~txauthz.authorization.Authorization`.
        """
        return Authorization.create(self.session, domain, timeout=timeout)

    def request_certificate(self, csr, timeout=None):
        """
        Request a certificate for identifiers authorized on this account.

        :param cryptography.x509.CertificateSigningRequest csr: The CSR.

        :return: ``Deferred`` firing with the
            `~txauthz.certificate.Certificate`.
        """
        return Certificate.request(self.session, csr, timeout=timeout)


__all__ = ['Registration']
