"""
``http-01`` challenge implementation.
"""
import attr

from txauthz.challenges._base import (
    KeyAuthorizationChallenge, register_challenge)


@register_challenge
@attr.s(eq=False)
class HTTP01Challenge(KeyAuthorizationChallenge):
    """
    Serve the key authorization over plain HTTP at a well-known path.
    """
    typ = u'http-01'
    URI_ROOT_PATH = u'.well-known/acme-challenge'

    @property
    def path(self):
        """
        The path the CA will request, including the leading slash.
        """
        return u'/{}/{}'.format(self.URI_ROOT_PATH, self.token)

    def uri(self, domain):
        """
        The full URL the CA will request for ``domain``.
        """
        return u'http://{}{}'.format(domain, self.path)


__all__ = ['HTTP01Challenge']
