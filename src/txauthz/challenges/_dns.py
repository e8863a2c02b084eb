"""
``dns-01`` challenge implementation.
"""
import attr
from josepy.b64 import b64encode

from txauthz.challenges._base import (
    KeyAuthorizationChallenge, register_challenge)
from txauthz.util import sha256_digest


@register_challenge
@attr.s(eq=False)
class DNS01Challenge(KeyAuthorizationChallenge):
    """
    Publish a digest of the key authorization in a TXT record.
    """
    typ = u'dns-01'
    LABEL = u'_acme-challenge'

    def digest(self):
        """
        The TXT record value: the unpadded base64url SHA-256 of the key
        authorization.

        :rtype: str
        """
        return b64encode(
            sha256_digest(self.key_authorization().encode('utf-8'))
            ).decode('ascii')

    def prepare(self):
        return self.digest()

    def record_name(self, domain):
        """
        The name of the TXT record to publish for ``domain``.
        """
        return u'{}.{}'.format(self.LABEL, domain)


__all__ = ['DNS01Challenge']
