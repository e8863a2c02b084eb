"""
TLS challenge implementations.

Only tls-sni-02: the CA connects with SNI set to one name and expects a
self-signed certificate carrying two.
"""
import attr

from txauthz.challenges._base import (
    KeyAuthorizationChallenge, register_challenge)
from txauthz.util import sha256_digest


def _sni_name(value, suffix):
    h = sha256_digest(value.encode('utf-8')).hex()
    return u'{}.{}.{}'.format(h[:32], h[32:], suffix)


@register_challenge
@attr.s(eq=False)
class TLSSNI02Challenge(KeyAuthorizationChallenge):
    typ = u'tls-sni-02'

    @property
    def subject(self):
        """
        SAN A: the server name the CA will send, derived from the token.
        """
        return _sni_name(self.token, u'token.acme.invalid')

    @property
    def san_b(self):
        """
        SAN B: derived from the key authorization.
        """
        return _sni_name(self.key_authorization(), u'ka.acme.invalid')

    def prepare(self):
        """
        :return: Both names the certificate must carry, SAN A first.
        """
        return (self.subject, self.san_b)


__all__ = ['TLSSNI02Challenge']
