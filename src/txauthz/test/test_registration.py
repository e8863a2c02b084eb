"""
Tests for `txauthz.registration`.
"""
from josepy.jwk import JWKRSA
from twisted.trial.unittest import TestCase
from twisted.web import http

from txauthz.authorization import Authorization
from txauthz.errors import AgreementRequired, ProtocolError, StatusRegression
from txauthz.registration import Registration
from txauthz.test.doubles import (
    CannedResponse, FakeCA, make_session, problem, RSA_KEY_512)
from txauthz.test.test_authorization import authz_json
from txauthz.util import generate_private_key

REG_PATH = u'/acme/reg/1'
TOS = u'https://ca.example/tos'
TOS_LINK = b'<https://ca.example/tos>;rel="terms-of-service"'
CONTACT = (u'mailto:admin@example.com',)


def reg_json(ca, key=RSA_KEY_512, contact=CONTACT, **extra):
    jobj = {
        u'key': key.public_key().to_json(),
        u'contact': list(contact),
        u'authorizations': ca.url(REG_PATH + u'/authz'),
        u'certificates': ca.url(REG_PATH + u'/cert'),
        }
    jobj.update(extra)
    return jobj


class RegistrationTests(TestCase):
    def setUp(self):
        self.ca = FakeCA()
        self.session = make_session(self.ca)
        self.location = self.ca.url(REG_PATH)

    def created(self, **kwargs):
        return CannedResponse(
            code=http.CREATED,
            json=reg_json(self.ca, **kwargs),
            headers={b'location': [self.location.encode('ascii')],
                     b'link': [TOS_LINK]})

    def test_create(self):
        """
        Registering binds the session to the new registration, and records
        the terms of service the CA links to.
        """
        self.ca.expect(u'POST', u'/acme/new-reg', self.created())
        reg = self.successResultOf(
            Registration.create(self.session, contact=CONTACT))
        self.assertEqual(self.location, reg.location)
        self.assertEqual(self.location, self.session.account_uri)
        self.assertEqual(CONTACT, reg.contact)
        self.assertEqual(u'valid', reg.status)
        self.assertEqual(TOS, reg.terms_of_service)
        self.assertEqual(RSA_KEY_512.public_key(), reg.key)
        self.assertEqual(
            self.ca.url(REG_PATH + u'/authz'), reg.authorizations_uri)
        [request] = self.ca.signed()
        self.assertEqual(
            {u'resource': u'new-reg', u'contact': list(CONTACT)},
            request.claims)
        self.assertNotIn(u'kid', request.protected)

    def test_create_with_agreement(self):
        self.ca.expect(
            u'POST', u'/acme/new-reg', self.created(agreement=TOS))
        reg = self.successResultOf(
            Registration.create(self.session, agreement=TOS))
        self.assertEqual(TOS, reg.agreement)
        [request] = self.ca.signed()
        self.assertEqual(
            {u'resource': u'new-reg', u'agreement': TOS}, request.claims)

    def test_create_existing(self):
        """
        If the key is already registered, the existing registration is loaded
        instead.
        """
        self.ca.expect(
            u'POST', u'/acme/new-reg',
            problem(u'malformed', u'Registration key is already in use',
                    code=http.CONFLICT,
                    headers={b'location': [self.location.encode('ascii')]}))
        self.ca.expect(
            u'POST', REG_PATH, CannedResponse(json=reg_json(self.ca)))
        reg = self.successResultOf(Registration.create(self.session))
        self.assertEqual(self.location, reg.location)
        self.assertEqual(self.location, self.session.account_uri)
        self.assertEqual(CONTACT, reg.contact)
        _, fetch = self.ca.signed()
        self.assertEqual(self.location, fetch.url)
        self.assertEqual({u'resource': u'reg'}, fetch.claims)
        self.assertEqual(self.location, fetch.protected[u'kid'])

    def test_create_existing_new_contact(self):
        """
        Contact details given for an existing registration replace the ones
        it had.
        """
        contact = (u'mailto:other@example.com',)
        self.ca.expect(
            u'POST', u'/acme/new-reg',
            problem(u'malformed', code=http.CONFLICT,
                    headers={b'location': [self.location.encode('ascii')]}))
        self.ca.expect(
            u'POST', REG_PATH,
            CannedResponse(
                code=http.ACCEPTED, json=reg_json(self.ca, contact=contact)))
        reg = self.successResultOf(
            Registration.create(self.session, contact=contact))
        self.assertEqual(contact, reg.contact)
        _, modify = self.ca.signed()
        self.assertEqual(
            {u'resource': u'reg', u'contact': list(contact)}, modify.claims)

    def test_create_agreement_required(self):
        self.ca.expect(
            u'POST', u'/acme/new-reg',
            problem(u'agreementRequired', u'Agree first',
                    code=http.FORBIDDEN, headers={b'link': [TOS_LINK]}))
        f = self.failureResultOf(
            Registration.create(self.session), AgreementRequired)
        self.assertEqual(TOS, f.value.terms_of_service)
        self.assertIsNone(self.session.account_uri)

    def test_create_without_location(self):
        self.ca.expect(
            u'POST', u'/acme/new-reg',
            CannedResponse(code=http.CREATED, json=reg_json(self.ca)))
        self.failureResultOf(
            Registration.create(self.session), ProtocolError)

    def test_different_key(self):
        """
        A registration reported for another key is rejected.
        """
        other = JWKRSA(key=generate_private_key(u'rsa'))
        self.ca.expect(u'POST', u'/acme/new-reg', self.created(key=other))
        self.failureResultOf(
            Registration.create(self.session), ProtocolError)

    def test_fetch(self):
        self.ca.expect(
            u'POST', REG_PATH, CannedResponse(json=reg_json(self.ca)))
        reg = self.successResultOf(
            Registration.fetch(self.session, self.location))
        self.assertEqual(CONTACT, reg.contact)
        self.assertEqual(self.location, self.session.account_uri)
        [request] = self.ca.signed()
        self.assertEqual({u'resource': u'reg'}, request.claims)

    def test_agree_to_terms_of_service(self):
        self.ca.expect(u'POST', u'/acme/new-reg', self.created())
        reg = self.successResultOf(Registration.create(self.session))
        self.ca.expect(
            u'POST', REG_PATH,
            CannedResponse(
                code=http.ACCEPTED, json=reg_json(self.ca, agreement=TOS)))
        self.assertIs(
            reg, self.successResultOf(reg.agree_to_terms_of_service()))
        self.assertEqual(TOS, reg.agreement)
        _, request = self.ca.signed()
        self.assertEqual(
            {u'resource': u'reg', u'agreement': TOS}, request.claims)
        self.assertEqual(self.location, request.protected[u'kid'])

    def test_no_terms_of_service(self):
        reg = Registration(session=self.session, location=self.location)
        with self.assertRaises(ValueError):
            reg.agree_to_terms_of_service()

    def test_deactivate(self):
        self.ca.expect(u'POST', u'/acme/new-reg', self.created())
        reg = self.successResultOf(Registration.create(self.session))
        self.ca.expect(
            u'POST', REG_PATH,
            CannedResponse(json=reg_json(self.ca, status=u'deactivated')))
        self.successResultOf(reg.deactivate())
        self.assertEqual(u'deactivated', reg.status)
        _, request = self.ca.signed()
        self.assertEqual(
            {u'resource': u'reg', u'status': u'deactivated'},
            request.claims)

    def test_deactivated_stays(self):
        """
        A registration seen deactivated does not come back.
        """
        self.ca.expect(
            u'POST', REG_PATH,
            CannedResponse(json=reg_json(self.ca, status=u'deactivated')),
            CannedResponse(json=reg_json(self.ca, status=u'valid')))
        reg = self.successResultOf(
            Registration.fetch(self.session, self.location))
        self.failureResultOf(reg.update(), StatusRegression)
        self.assertEqual(u'deactivated', reg.status)

    def test_authorize_domain(self):
        self.ca.expect(u'POST', u'/acme/new-reg', self.created())
        reg = self.successResultOf(Registration.create(self.session))
        self.ca.expect(
            u'POST', u'/acme/new-authz',
            CannedResponse(
                code=http.CREATED,
                json=authz_json(self.ca),
                headers={b'location': [
                    self.ca.url(u'/acme/authz/1').encode('ascii')]}))
        authz = self.successResultOf(reg.authorize_domain(u'example.com'))
        self.assertIsInstance(authz, Authorization)
        self.assertEqual(u'example.com', authz.identifier)
        _, request = self.ca.signed()
        self.assertEqual(self.location, request.protected[u'kid'])


__all__ = ['RegistrationTests']
