"""
Eliot message and action definitions.
"""
from eliot import ActionType, Field, fields

NONCE = Field.for_types(
    u'nonce',
    [str, None],
    u'A nonce value')

URL = Field(u'url', lambda url: url.asText(), u'A URL object')

LOCATION = Field.for_types(
    u'location',
    [str, None],
    u'The location URI of a resource')

STATUS = Field.for_types(
    u'status',
    [str, None],
    u'The status of a resource')

LOG_JWS_SIGN = ActionType(
    u'txauthz:jws:sign',
    fields(NONCE, Field.for_types(u'kid', [str, None], u'Account URI'),
           key_type=str, alg=str),
    fields(),
    u'Signing a message with JWS')

LOG_JWS_HEAD = ActionType(
    u'txauthz:jws:http:head',
    fields(),
    fields(),
    u'A JWSClient HEAD request')

LOG_JWS_GET = ActionType(
    u'txauthz:jws:http:get',
    fields(),
    fields(),
    u'A JWSClient GET request')

LOG_JWS_POST = ActionType(
    u'txauthz:jws:http:post',
    fields(),
    fields(),
    u'A JWSClient POST request')

LOG_JWS_REQUEST = ActionType(
    u'txauthz:jws:http:request',
    fields(method=str, url=str),
    fields(Field.for_types(u'content_type',
                           [str, None],
                           u'Content-Type header field'),
           code=int),
    u'A JWSClient request')

LOG_JWS_CHECK_RESPONSE = ActionType(
    u'txauthz:jws:http:check-response',
    fields(Field.for_types(u'response_content_type',
                           [str, None],
                           u'Content-Type header field'),
           Field.for_types(u'expected_content_type',
                           [str, None],
                           u'Expected Content-Type'),
           code=int),
    fields(),
    u'Checking a JWSClient response')

LOG_JWS_GET_NONCE = ActionType(
    u'txauthz:jws:nonce:get',
    fields(),
    fields(NONCE),
    u'Consuming a nonce')

LOG_JWS_ADD_NONCE = ActionType(
    u'txauthz:jws:nonce:add',
    fields(Field.for_types(u'raw_nonce',
                           [str, None],
                           u'Nonce header field')),
    fields(),
    u'Installing a nonce in a session')

LOG_JWS_BAD_NONCE_RETRY = ActionType(
    u'txauthz:jws:nonce:retry',
    fields(url=str),
    fields(),
    u'Retrying a request rejected for a bad nonce')

LOG_HTTP_PARSE_LINKS = ActionType(
    u'txauthz:http:parse-links',
    fields(raw_link=str),
    fields(parsed_links=dict),
    u'Parsing HTTP Links')

LOG_ACME_CONSUME_DIRECTORY = ActionType(
    u'txauthz:acme:session:from-url',
    fields(URL, key_type=str, alg=str),
    fields(directory=dict),
    u'Creating a session from a remote directory')

LOG_ACME_REGISTER = ActionType(
    u'txauthz:acme:registration:create',
    fields(Field(u'registration',
                 lambda reg: reg.to_json(),
                 u'An ACME registration')),
    fields(LOCATION, existing=bool),
    u'Registering with an ACME server')

LOG_ACME_UPDATE_REGISTRATION = ActionType(
    u'txauthz:acme:registration:update',
    fields(Field(u'registration',
                 lambda reg: reg.to_json(),
                 u'An ACME registration'),
           LOCATION),
    fields(STATUS),
    u'Updating a registration')

LOG_ACME_CREATE_AUTHORIZATION = ActionType(
    u'txauthz:acme:authorization:create',
    fields(identifier=str),
    fields(LOCATION, STATUS),
    u'Creating an authorization')

LOG_ACME_TRIGGER_CHALLENGE = ActionType(
    u'txauthz:acme:challenge:trigger',
    fields(LOCATION, challenge_type=str),
    fields(STATUS),
    u'Announcing that a challenge is ready to be validated')

LOG_ACME_ANSWER_CHALLENGES = ActionType(
    u'txauthz:acme:authorization:answer',
    fields(Field.for_types(u'identifier', [str, None], u'The identifier'),
           challenge_types=list),
    fields(STATUS),
    u'Answering the challenges of an authorization')

LOG_ACME_REQUEST_CERTIFICATE = ActionType(
    u'txauthz:acme:certificate:request',
    fields(),
    fields(LOCATION),
    u'Requesting a certificate')

LOG_ACME_REVOKE_CERTIFICATE = ActionType(
    u'txauthz:acme:certificate:revoke',
    fields(LOCATION, Field.for_types(u'reason', [int, None], u'CRL reason')),
    fields(),
    u'Revoking a certificate')

LOG_RESOURCE_UPDATE = ActionType(
    u'txauthz:resource:update',
    fields(LOCATION, resource_type=str),
    fields(STATUS),
    u'Refreshing a resource from the CA')

LOG_RESOURCE_DEACTIVATE = ActionType(
    u'txauthz:resource:deactivate',
    fields(LOCATION, resource_type=str),
    fields(),
    u'Deactivating a resource')

LOG_POLL = ActionType(
    u'txauthz:poll',
    fields(LOCATION, timeout=float),
    fields(STATUS, attempts=int),
    u'Polling a resource until it reaches a terminal status')

LOG_POLL_WAIT = ActionType(
    u'txauthz:poll:wait',
    fields(STATUS, delay=float),
    fields(),
    u'Waiting before polling a resource again')
