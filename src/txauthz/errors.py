"""
Exception types for txauthz.
"""
import attr


@attr.s(auto_exc=True)
class ACMEError(Exception):
    """
    Base class for everything txauthz raises on purpose.
    """


@attr.s(auto_exc=True)
class TransportError(ACMEError):
    """
    The exchange with the CA failed below the protocol level: the connection
    could not be made or was lost, or the CA answered with a non-2xx response
    that carries no problem document.

    These are always safe to retry, but txauthz never does so by itself.
    """
    url = attr.ib()
    reason = attr.ib(default=None)
    code = attr.ib(default=None)

    def __str__(self):
        return repr(self)


@attr.s(auto_exc=True)
class ProtocolError(ACMEError):
    """
    The CA sent something we could not make sense of.
    """
    message = attr.ib()
    url = attr.ib(default=None)

    def __str__(self):
        return repr(self)


@attr.s(auto_exc=True)
class BadNonceError(ProtocolError):
    """
    The CA rejected our nonce twice in a row, even after we retried with the
    fresh nonce it handed us.
    """
    problem = attr.ib(default=None)


@attr.s(auto_exc=True)
class StatusRegression(ProtocolError):
    """
    A resource that was observed in a terminal state came back in an earlier
    one.
    """
    previous = attr.ib(default=None)
    current = attr.ib(default=None)


@attr.s(auto_exc=True)
class CAProblemError(ACMEError):
    """
    The CA rejected a request with a structured problem document.

    :ivar problem: The `acme.messages.Error` the CA sent.
    :ivar int code: The HTTP status code.
    :ivar str url: The URL the request was made to.
    :ivar retry_after: Seconds the CA asked us to wait, or ``None``.
    """
    problem = attr.ib()
    code = attr.ib(default=None)
    url = attr.ib(default=None)
    retry_after = attr.ib(default=None)

    @property
    def typ(self):
        return self.problem.typ

    @property
    def detail(self):
        return self.problem.detail

    @property
    def error_code(self):
        """
        The problem type without its namespace, eg. ``u'badNonce'``.

        Both ``urn:ietf:params:acme:error:`` and the older ``urn:acme:error:``
        prefixes are in use, so only the last component is significant.
        """
        return problem_code(self.problem)

    def __str__(self):
        return '{} ({}): {}'.format(self.url, self.code, self.problem)


@attr.s(auto_exc=True)
class RateLimited(CAProblemError):
    """
    The CA is refusing requests until ``retry_after`` has passed.
    """


@attr.s(auto_exc=True)
class Unauthorized(CAProblemError):
    """
    The account is not allowed to perform the request.
    """


@attr.s(auto_exc=True)
class AgreementRequired(CAProblemError):
    """
    The account has to agree to the (possibly updated) terms of service.
    """
    terms_of_service = attr.ib(default=None)


@attr.s(auto_exc=True)
class AccountExists(CAProblemError):
    """
    A registration already exists for the key; ``location`` points at it.
    """
    location = attr.ib(default=None)


@attr.s(auto_exc=True)
class NotFoundError(ACMEError):
    """
    The resource location no longer resolves (expired or deleted).
    """
    url = attr.ib()
    problem = attr.ib(default=None)

    def __str__(self):
        return repr(self)


@attr.s(auto_exc=True)
class DeadlineExceeded(ACMEError, TimeoutError):
    """
    An operation did not finish before its deadline.
    """
    url = attr.ib(default=None)
    timeout = attr.ib(default=None)

    def __str__(self):
        return repr(self)


@attr.s(auto_exc=True)
class PollingTimeout(DeadlineExceeded):
    """
    A resource did not reach a terminal status in time.

    The resource keeps its last snapshot; ``status`` is its last observed
    (non-terminal) status.
    """
    resource = attr.ib(default=None, repr=False)
    status = attr.ib(default=None)


def problem_code(problem):
    """
    Get the namespace-less code of a problem document.

    :param ~acme.messages.Error problem: The problem.

    :rtype: str
    """
    return problem.typ.split(':')[-1]


_PROBLEM_TYPES = {
    u'rateLimited': RateLimited,
    u'unauthorized': Unauthorized,
    u'agreementRequired': AgreementRequired,
    }


def problem_error_type(problem):
    """
    Pick the `CAProblemError` subclass to raise for a problem document.
    """
    return _PROBLEM_TYPES.get(problem_code(problem), CAProblemError)


__all__ = [
    'ACMEError', 'TransportError', 'ProtocolError', 'BadNonceError',
    'StatusRegression', 'CAProblemError', 'RateLimited', 'Unauthorized',
    'AgreementRequired', 'AccountExists', 'NotFoundError',
    'DeadlineExceeded', 'PollingTimeout', 'problem_code',
    'problem_error_type']
