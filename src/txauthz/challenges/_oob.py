"""
``oob-01`` challenge implementation.
"""
import attr

from txauthz.challenges._base import Challenge, register_challenge


@register_challenge
@attr.s(eq=False)
class OOB01Challenge(Challenge):
    """
    Out-of-band validation: a human visits ``href`` and follows the CA's
    instructions.
    """
    typ = u'oob-01'

    href = attr.ib(default=None, init=False)

    def _decode(self, body):
        derived = super(OOB01Challenge, self)._decode(body)
        derived[u'href'] = body.href
        return derived

    def prepare(self):
        return self.href


__all__ = ['OOB01Challenge']
