"""
ACME protocol messages.

Claims sent to the CA and bodies received from it.  Every claim document
names the kind of resource it addresses in its ``resource`` field.

..  seealso:: `acme.messages`
"""
import josepy as jose
from acme import fields
from acme.messages import Error, Identifier, IDENTIFIER_FQDN

from txauthz.util import decode_csr, encode_csr


def fqdn_identifier(fqdn):
    """
    Construct an identifier from an FQDN.

    Trivial implementation, just saves on typing.

    :param str fqdn: The domain name.

    :return: The identifier.
    :rtype: `~acme.messages.Identifier`
    """
    return Identifier(typ=IDENTIFIER_FQDN, value=fqdn)


def _decode_identifier(value):
    if isinstance(value, dict) and value.get(u'type') is not None:
        return Identifier(typ=value[u'type'], value=value.get(u'value'))
    raise jose.DeserializationError(
        'Invalid identifier: {!r}'.format(value))


def _decode_strings(value):
    if not isinstance(value, (list, tuple)):
        raise jose.DeserializationError(
            'Expected a list, got {!r}'.format(value))
    return tuple(value)


def _decode_combinations(value):
    try:
        return tuple(tuple(combination) for combination in value)
    except TypeError:
        raise jose.DeserializationError(
            'Invalid combinations: {!r}'.format(value))


def _decode_challenges(value):
    if not isinstance(value, (list, tuple)) or not all(
            isinstance(c, dict) for c in value):
        raise jose.DeserializationError(
            'Invalid challenges: {!r}'.format(value))
    return tuple(value)


def _encode_identifier(identifier):
    typ = getattr(identifier.typ, 'name', identifier.typ)
    return {u'type': typ, u'value': identifier.value}


# Claims


class NewRegistration(jose.JSONObjectWithFields):
    """
    ACME new-reg request.
    """
    resource_type = 'new-reg'
    resource = fields.fixed('resource', resource_type)
    contact = jose.Field('contact', omitempty=True, default=())
    agreement = jose.Field('agreement', omitempty=True)


class UpdateRegistration(jose.JSONObjectWithFields):
    """
    ACME reg request; an empty one just asks for the current state.
    """
    resource_type = 'reg'
    resource = fields.fixed('resource', resource_type)
    contact = jose.Field('contact', omitempty=True)
    agreement = jose.Field('agreement', omitempty=True)
    status = jose.Field('status', omitempty=True)


class NewAuthorization(jose.JSONObjectWithFields):
    """
    ACME new-authz request.
    """
    resource_type = 'new-authz'
    resource = fields.fixed('resource', resource_type)
    identifier = jose.Field(
        'identifier', encoder=_encode_identifier, decoder=_decode_identifier)


class UpdateAuthorization(jose.JSONObjectWithFields):
    """
    ACME authz request.
    """
    resource_type = 'authz'
    resource = fields.fixed('resource', resource_type)
    status = jose.Field('status', omitempty=True)


class ChallengeAnswer(jose.JSONObjectWithFields):
    """
    ACME challenge request, announcing that a challenge may be validated.
    """
    resource_type = 'challenge'
    resource = fields.fixed('resource', resource_type)
    typ = jose.Field('type')
    key_authorization = jose.Field('keyAuthorization', omitempty=True)


class CertificateRequest(jose.JSONObjectWithFields):
    """
    ACME new-cert request.

    Wraps a Cryptography CSR object instead of a PyOpenSSL one.

    ..  seealso:: `cryptography.x509.CertificateSigningRequest`
    """
    resource_type = 'new-cert'
    resource = fields.fixed('resource', resource_type)
    csr = jose.Field('csr', decoder=decode_csr, encoder=encode_csr)


class Revocation(jose.JSONObjectWithFields):
    """
    ACME revoke-cert request.

    :ivar bytes certificate: The DER certificate to revoke.
    """
    resource_type = 'revoke-cert'
    resource = fields.fixed('resource', resource_type)
    certificate = jose.Field(
        'certificate',
        encoder=jose.encode_b64jose, decoder=jose.decode_b64jose)
    reason = jose.Field('reason', omitempty=True)


# Bodies


class RegistrationBody(jose.JSONObjectWithFields):
    """
    An account, as the CA sees it.
    """
    key = jose.Field('key', omitempty=True, decoder=jose.JWK.from_json)
    contact = jose.Field(
        'contact', omitempty=True, default=(), decoder=_decode_strings)
    agreement = jose.Field('agreement', omitempty=True)
    status = jose.Field('status', omitempty=True, default=u'valid')
    authorizations = jose.Field('authorizations', omitempty=True)
    certificates = jose.Field('certificates', omitempty=True)


class ChallengeBody(jose.JSONObjectWithFields):
    """
    A challenge, as the CA sees it.

    Older CAs put the challenge location in ``uri``, newer ones in ``url``.
    """
    typ = jose.Field('type')
    status = jose.Field('status', omitempty=True, default=u'pending')
    uri = jose.Field('uri', omitempty=True)
    url = jose.Field('url', omitempty=True)
    token = jose.Field('token', omitempty=True)
    validated = fields.rfc3339('validated', omitempty=True)
    error = jose.Field('error', omitempty=True, decoder=Error.from_json)
    key_authorization = jose.Field('keyAuthorization', omitempty=True)
    href = jose.Field('href', omitempty=True)

    @property
    def location(self):
        return self.uri or self.url


class AuthorizationBody(jose.JSONObjectWithFields):
    """
    An authorization, as the CA sees it.

    ``challenges`` stays raw JSON; the challenge classes decode it.
    """
    identifier = jose.Field(
        'identifier', omitempty=True,
        encoder=_encode_identifier, decoder=_decode_identifier)
    status = jose.Field('status', omitempty=True, default=u'pending')
    expires = fields.rfc3339('expires', omitempty=True)
    challenges = jose.Field(
        'challenges', omitempty=True, default=(), decoder=_decode_challenges)
    combinations = jose.Field(
        'combinations', omitempty=True, decoder=_decode_combinations)


__all__ = [
    'fqdn_identifier', 'NewRegistration', 'UpdateRegistration',
    'NewAuthorization', 'UpdateAuthorization', 'ChallengeAnswer',
    'CertificateRequest', 'Revocation', 'RegistrationBody', 'ChallengeBody',
    'AuthorizationBody']
