"""
The challenge model shared by every challenge type.
"""
import attr
from eliot.twisted import DeferredContext
from josepy.b64 import b64encode
from twisted.internet.defer import fail, succeed
from zope.interface import implementer

from txauthz.errors import ProtocolError
from txauthz.interfaces import IChallenge
from txauthz.logging import LOG_ACME_TRIGGER_CHALLENGE
from txauthz.messages import ChallengeAnswer, ChallengeBody
from txauthz.resource import (
    Resource, STATUS_INVALID, STATUS_PENDING, STATUS_PROCESSING,
    STATUS_VALID)
from txauthz.util import tap


_CHALLENGE_TYPES = {}


def register_challenge(cls):
    """
    Class decorator registering a challenge implementation for its ``typ``.
    """
    _CHALLENGE_TYPES[cls.typ] = cls
    return cls


def challenge_class(typ):
    """
    Get the implementation for a challenge type.

    Unknown types get the generic `Challenge`.
    """
    return _CHALLENGE_TYPES.get(typ, Challenge)


def challenge_from_json(session, jobj):
    """
    Build a challenge of the right type from its JSON description.

    :param session: The `~txauthz.session.Session` to bind it to.
    :param dict jobj: The challenge as found in an authorization.

    :raises txauthz.errors.ProtocolError: If it makes no sense.
    """
    if not isinstance(jobj, dict):
        raise ProtocolError('Invalid challenge: {!r}'.format(jobj))
    cls = challenge_class(jobj.get(u'type'))
    return cls(session=session, location=None).unmarshal(jobj)


_STATUS_ORDER = {
    STATUS_PENDING: 0,
    STATUS_PROCESSING: 1,
    STATUS_VALID: 2,
    STATUS_INVALID: 2,
    }


@implementer(IChallenge)
@attr.s(eq=False)
class Challenge(Resource):
    """
    A challenge of a type we have no specific support for.

    It can still be inspected, triggered and refreshed; only `prepare` has
    nothing to compute.

    :ivar str token: The CA-issued token, if any.
    :ivar validated: When the CA validated the challenge, if it did.
    :ivar error: The `acme.messages.Error` explaining why the challenge is
        invalid, if it is.
    """
    resource_type = u'challenge'
    body_class = ChallengeBody
    terminal_statuses = frozenset([STATUS_VALID, STATUS_INVALID])

    token = attr.ib(default=None, init=False)
    validated = attr.ib(default=None, init=False, repr=False)
    error = attr.ib(default=None, init=False, repr=False)

    @property
    def typ(self):
        if self.body is None:
            return None
        return self.body.typ

    @classmethod
    def fetch(cls, session, location, timeout=None):
        """
        Fetch a challenge by its location; the result has the class matching
        the type the CA reports.
        """
        def cb_bind(response):
            challenge = challenge_class(
                response.json.get(u'type')
                if isinstance(response.json, dict) else None)(
                    session=session, location=location)
            return challenge._cb_update(response)

        return session.client.get(
            location, session=session, timeout=timeout).addCallback(cb_bind)

    def _decode(self, body):
        typ = self.__class__.typ
        if isinstance(typ, str) and body.typ != typ:
            raise ProtocolError(
                'Expected a {} challenge, got {}'.format(typ, body.typ),
                url=self.location)
        location = body.location
        if location is None:
            location = self.location
        elif self.location is not None and location != self.location:
            raise ProtocolError(
                'Challenge location changed to {}'.format(location),
                url=self.location)
        return dict(
            location=location,
            token=body.token,
            validated=body.validated,
            error=body.error)

    def _regressed(self, previous, current):
        if current not in _STATUS_ORDER or previous not in _STATUS_ORDER:
            return super(Challenge, self)._regressed(previous, current)
        return _STATUS_ORDER[current] < _STATUS_ORDER[previous]

    def prepare(self):
        """
        Nothing to compute for a challenge type we do not know.
        """
        return None

    def _answer(self):
        return ChallengeAnswer(typ=self.typ)

    def trigger(self, timeout=None):
        """
        Tell the CA that the challenge is ready to be validated.

        A challenge that is no longer pending is left alone.
        """
        if self.status not in (None, STATUS_PENDING):
            return succeed(self)
        if self.location is None:
            return fail(ProtocolError('Challenge has no location'))
        action = LOG_ACME_TRIGGER_CHALLENGE(
            location=self.location, challenge_type=self.typ)
        with action.context():
            return (
                DeferredContext(
                    self.session.client.post(
                        self.location, self._answer(), self.session,
                        timeout=timeout))
                .addCallback(self._cb_triggered)
                .addCallback(
                    tap(lambda challenge: action.add_success_fields(
                        status=challenge.status)))
                .addActionFinish())

    def _cb_triggered(self, response):
        if response.json is not None:
            self.unmarshal(response.json)
        self._record_response(response)
        return self


@attr.s(eq=False)
class KeyAuthorizationChallenge(Challenge):
    """
    A challenge proven with a key authorization: the token and the account
    key thumbprint, joined by a dot.
    """
    def _decode(self, body):
        derived = super(KeyAuthorizationChallenge, self)._decode(body)
        if not body.token:
            raise ProtocolError(
                '{} challenge without a token'.format(body.typ),
                url=derived[u'location'])
        return derived

    def key_authorization(self):
        """
        The key authorization for the session's account key.

        :rtype: str
        """
        thumbprint = b64encode(self.session.key.thumbprint()).decode('ascii')
        return u'{}.{}'.format(self.token, thumbprint)

    def prepare(self):
        return self.key_authorization()

    def _answer(self):
        return ChallengeAnswer(
            typ=self.typ, key_authorization=self.key_authorization())


__all__ = [
    'Challenge', 'KeyAuthorizationChallenge', 'register_challenge',
    'challenge_class', 'challenge_from_json']
