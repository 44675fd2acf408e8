
# Standard library
from xml.dom.minidom import parseString
from xml.parsers.expat import ExpatError

# Application modules
from txcaslink.constants import CAS_NAMESPACE
from txcaslink.exceptions import InvalidTicket, UpstreamValidationError
from txcaslink.http import createHTTPClient
from txcaslink.session import authenticate_request, destroy_session, \
                        get_session_state, resolve_session_user
from txcaslink.utils import add_query_params, get_request_url, \
                        get_single_param_or_default, log_cas_event, \
                        log_http_event, redirect, http_status_filter

# External modules
import treq
from twisted.internet import defer
from twisted.internet import reactor as default_reactor


def parse_service_response(body):
    """
    Parse a CAS 2.0 `serviceResponse` document.

    @return: The username from a `cas:authenticationSuccess` element.
    @raise InvalidTicket: The document reports `cas:authenticationFailure`.
    @raise UpstreamValidationError: The document is not a CAS response.
    """
    if isinstance(body, bytes):
        body = body.decode('utf-8')
    try:
        dom = parseString(body)
    except ExpatError as ex:
        raise UpstreamValidationError("Could not parse CAS response: %s" % ex)
    try:
        nodes = dom.getElementsByTagNameNS(CAS_NAMESPACE, 'authenticationSuccess')
        if nodes:
            nodes = nodes[0].getElementsByTagNameNS(CAS_NAMESPACE, 'user')
            if nodes and nodes[0].firstChild is not None:
                username = nodes[0].firstChild.nodeValue.strip()
                if username != "":
                    return username
            raise UpstreamValidationError("CAS success response names no user.")
        nodes = dom.getElementsByTagNameNS(CAS_NAMESPACE, 'authenticationFailure')
        if nodes:
            code = nodes[0].getAttribute('code')
            raise InvalidTicket("CAS server rejected the ticket (%s)." % code)
        raise UpstreamValidationError("Unrecognized CAS response.")
    finally:
        dom.unlink()


class CASTicketChecker(object):
    """
    Validates tickets issued by an external CAS server using its
    `/serviceValidate` endpoint.
    """

    def __init__(self, cas_url, validate_path='/serviceValidate',
                 http_client=None, reactor=None, verify_cert=True):
        if http_client is None:
            if reactor is None:
                reactor = default_reactor
            http_client = createHTTPClient(reactor, verify_cert=verify_cert)
        self.cas_url = cas_url.rstrip('/')
        self.validate_path = validate_path
        self.http_client = http_client

    @defer.inlineCallbacks
    def checkTicket(self, ticket, service):
        url = self.cas_url + self.validate_path
        params = {'ticket': ticket, 'service': service}
        try:
            response = yield self.http_client.get(url, params=params)
        except Exception as ex:
            raise UpstreamValidationError(
                "Could not contact CAS server at '%s': %s" % (url, ex))
        response = yield http_status_filter(
            response,
            [(200, 200)],
            UpstreamValidationError,
            msg="CAS server returned an unexpected status.")
        body = yield treq.content(response)
        return parse_service_response(body)


class ClientRole(object):
    """
    Delegates login to an external CAS server.

    Only the CAS username is kept in the session.  The local account is
    resolved through `realm` for every request.
    """

    def __init__(self, config, checker, realm, after_login=None):
        self.config = config
        self.checker = checker
        self.realm = realm
        self.after_login = after_login

    def serviceURL(self, request):
        if self.config.service_url is not None:
            return self.config.service_url
        return get_request_url(request)

    def afterLoginURL(self, request, avatar):
        if self.after_login is None:
            return defer.succeed(self.config.after_login_url)
        return defer.maybeDeferred(self.after_login, request, avatar)

    @defer.inlineCallbacks
    def login(self, request):
        """
        Handle the local login route.

        @raise InvalidTicket: The CAS server rejected the ticket.
        @raise UpstreamValidationError: The CAS server could not be used.
        @raise InsufficientIdentity: No local account matches the CAS user.
        @raise DirectoryError: The directory lookup failed.
        """
        log_http_event(request, redact_args=['ticket'])
        ticket = get_single_param_or_default(request, 'ticket', None)
        service = self.serviceURL(request)
        state = get_session_state(request)
        if ticket:
            try:
                username = yield self.checker.checkTicket(ticket, service)
            except InvalidTicket:
                log_cas_event("CAS server rejected ticket", [
                    ('client_ip', request.getClientIP()),
                    ('service', service)])
                destroy_session(request)
                raise
            state.username = username
            log_cas_event("Validated ticket with CAS server", [
                ('client_ip', request.getClientIP()),
                ('username', username)])
        elif state.username is None:
            url = add_query_params(self.config.login_url, [('service', service)])
            redirect(request, url)
            return None
        avatar = yield resolve_session_user(request, self.realm)
        url = yield self.afterLoginURL(request, avatar)
        redirect(request, url)
        return None

    def logout(self, request):
        log_http_event(request)
        state = get_session_state(request)
        if state.username is not None:
            log_cas_event("Logged out", [
                ('client_ip', request.getClientIP()),
                ('username', state.username)])
        destroy_session(request)
        redirect(request, self.config.logout_url)
        return None

    def authenticateRequest(self, request):
        return authenticate_request(request, self.realm)
