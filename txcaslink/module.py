
# Standard library
from textwrap import dedent
from urllib.parse import unquote_to_bytes

# Application modules
from txcaslink.account_realm import AccountRealm
from txcaslink.basic_realm import BasicRealm
from txcaslink.client import CASTicketChecker, ClientRole
from txcaslink.constants import VIEW_INSUFFICIENT, VIEW_AUTH_FAILED, \
                        VIEW_INVALID_SERVICE, VIEW_ERROR_5XX, VIEW_NOT_FOUND
from txcaslink.exceptions import BadRequestError, InsufficientIdentity, \
                        InvalidService, InvalidTicket, MissingService, \
                        StoreError, ViewNotImplementedError
from txcaslink.http import createHTTPClient
from txcaslink.issuer import TicketIssuer
from txcaslink.server import ServerRole, log_ticket_expiration
from txcaslink.service_matcher import JSONServiceMatcher, PrefixServiceMatcher
from txcaslink.session import authenticate_request, get_session_state
from txcaslink.utils import escape_html, get_request_uri, \
                        get_single_param_or_default, log_cas_event, log_failure
from txcaslink.validator import TicketValidator

# External modules
from klein import Klein
from twisted.internet import defer
from twisted.internet import reactor as default_reactor
from twisted.python import log


class CASModule(object):
    """
    CAS client and/or server routes for a host web application.

    A role is enabled by passing its configuration.  Every request that is
    not handled by a CAS route runs the middleware pipeline and is then
    delegated to `host`.
    """

    app = Klein()

    def __init__(self, server_config=None, client_config=None,
                 ticket_store=None, service_matcher=None, directory=None,
                 hardcoded_users=None, realm=None, checker=None,
                 page_views=None, host=None, after_login=None, after_resolve=None,
                 reactor=None):
        """
        @param server_config: A ServerConfig.  Enables the server role.
        @param client_config: A ClientConfig.  Enables the client role.
        @param ticket_store: The ITicketStore used by the server role.
        @param service_matcher: An IServiceMatcher.  Built from
            `server_config` when not given.
        @param directory: An IDirectory used to resolve CAS usernames.
        @param hardcoded_users: Overrides the users in `client_config`.
        @param realm: An IRealm that produces ICASUser avatars.  Defaults to
            an AccountRealm, or a BasicRealm when there is no client role and
            no user source.
        @param checker: Validates upstream tickets for the client role.
        @param page_views: A mapping of functions used to render pages.
            - All views may either be synchronous or async (deferreds).
            - List of views:
                - insufficient: CAS login succeeded but there is no local
                    account.  Should accept args (request,).
                - auth_failed: The CAS server rejected the ticket.
                    Should accept args (err, request).
                - invalid_service: Should accept args (service, request).
                - error5xx: Should accept args (err, request).
                - not_found: Should accept args (request,).
        @param host: An IResource for every request not handled here.
        @param after_login: A callable (request, avatar) that returns the
            URL to redirect to after a client role login.
        @param after_resolve: A callable (avatar) run by the default
            AccountRealm after a CAS username is resolved.  It may return a
            replacement avatar or a deferred.
        """
        if reactor is None:
            reactor = default_reactor
        self.reactor = reactor
        self.host = host

        if realm is None:
            users = hardcoded_users
            if users is None and client_config is not None:
                users = client_config.hardcoded_users
            if client_config is not None or directory is not None or users:
                realm = AccountRealm(users, directory, after_resolve=after_resolve)
            else:
                realm = BasicRealm()
        self.realm = realm

        self.server = None
        if server_config is not None:
            assert ticket_store is not None, "No Ticket Store was configured."
            if service_matcher is None:
                if server_config.services_file is not None:
                    service_matcher = JSONServiceMatcher(
                        server_config.services_file, reactor=reactor)
                else:
                    service_matcher = PrefixServiceMatcher(server_config.services)
            self.ticket_store = ticket_store
            self.service_matcher = service_matcher
            issuer = TicketIssuer(ticket_store, service_matcher, server_config)
            validator = TicketValidator(
                ticket_store, consume=server_config.consume_tickets)
            self.server = ServerRole(server_config, issuer, validator)
            ticket_store.register_ticket_expiration_callback(log_ticket_expiration)

        self.client = None
        if client_config is not None:
            if checker is None:
                checker = CASTicketChecker(
                    client_config.cas_url,
                    client_config.validate_path,
                    createHTTPClient(reactor, verify_cert=client_config.verify_cert))
            self.client = ClientRole(client_config, checker, realm,
                                     after_login=after_login)

        default_page_views = {
                VIEW_INSUFFICIENT: self._renderInsufficient,
                VIEW_AUTH_FAILED: self._renderAuthFailed,
                VIEW_INVALID_SERVICE: self._renderInvalidService,
                VIEW_ERROR_5XX: self._renderError5xx,
                VIEW_NOT_FOUND: self._renderNotFound,
            }
        self._default_page_views = default_page_views
        if page_views is None:
            page_views = default_page_views
        else:
            temp = dict(default_page_views)
            temp.update(page_views)
            page_views = temp
            del temp
        self.page_views = page_views

    def resource(self):
        return self.app.resource()

    #===================================================================
    # Errback filters and page views
    #===================================================================

    def _set_response_code_filter(self, result, code, request, msg=None):
        """
        Set the response code during deferred chain processing.
        """
        request.setResponseCode(code, message=msg)
        return result

    def _log_failure_filter(self, err, request):
        return log_failure(err, request)

    def _bad_request_errback(self, err, request):
        err.trap(BadRequestError)
        return self.handle_bad_request(request, err)

    def _get_page_view(self, symbol, *args):
        """
        Render a page view.  A custom view that raises
        ViewNotImplementedError falls back to the built-in view.
        """
        def eb(err, symbol, *args):
            err.trap(ViewNotImplementedError)
            log.err(err)
            return defer.maybeDeferred(self._default_page_views[symbol], *args)

        d = defer.maybeDeferred(self.page_views[symbol], *args)
        d.addErrback(eb, symbol, *args)
        return d

    def _page_view_errback(self, err, symbol, *args):
        return self._get_page_view(symbol, err, *args)

    def _add_error_handlers(self, d, request):
        d.addErrback(self._bad_request_errback, request)
        d.addErrback(self._log_failure_filter, request)
        d.addErrback(self._set_response_code_filter, 500, request)
        d.addErrback(self._page_view_errback, VIEW_ERROR_5XX, request)
        return d

    def _renderInsufficient(self, request):
        return dedent("""\
            <html>
                <head>
                    <title>Insufficient Access</title>
                </head>
                <body>
                    <h1>Insufficient Access</h1>
                    <p>
                        You signed in successfully, but you do not have an
                        account on this site.
                    </p>
                </body>
            </html>
            """)

    def _renderAuthFailed(self, err, request):
        request.setResponseCode(403)
        return dedent("""\
            <html>
                <head>
                    <title>Authentication Failed</title>
                </head>
                <body>
                    <h1>Authentication Failed</h1>
                    <p>
                        Your sign in could not be confirmed.  Please try again.
                    </p>
                </body>
            </html>
            """)

    def _renderInvalidService(self, service, request):
        request.setResponseCode(403)
        return "invalid service"

    def _renderError5xx(self, err, request):
        request.setResponseCode(500)
        return dedent("""\
            <html>
                <head>
                    <title>Internal Error - 500</title>
                </head>
                <body>
                    <h1>HTTP 500 - Internal Error</h1>
                    <p>
                        Please contact your system administrator.
                    </p>
                </body>
            </html>
            """)

    def _renderNotFound(self, request):
        request.setResponseCode(404)
        return dedent("""\
            <html>
            <head>
                <title>Not Found</title>
            </head>
            <body>
                <h1>Not Found</h1>
                <p>
                The resource you were looking for was not found.
                </p>
            </body>
            </html>
            """)

    #===================================================================
    # Middleware
    #===================================================================

    def establishSession(self, request, username):
        """
        Mark the session of `request` as authenticated for `username`.
        Host login code calls this in deployments without a client role.
        """
        state = get_session_state(request)
        state.username = username
        log_cas_event("Established session", [
            ('client_ip', request.getClientIP()),
            ('username', username)])

    def authenticateRequest(self, request):
        if self.client is not None:
            return self.client.authenticateRequest(request)
        return authenticate_request(request, self.realm)

    @defer.inlineCallbacks
    def runMiddleware(self, request):
        """
        Authenticate the request, then resume any pending CAS login.

        @return: A deferred that fires with True if the request was
            redirected.
        """
        yield self.authenticateRequest(request)
        if self.server is not None:
            redirected = yield self.server.continuePendingLogin(request)
            return redirected
        return False

    def _renderHost(self, redirected, request):
        if redirected:
            return None
        if self.host is None:
            log.msg('[ERROR] type="not_found" client_ip="%s" uri="%s"' % (
                        request.getClientIP(), get_request_uri(request)))
            return self._get_page_view(VIEW_NOT_FOUND, request)
        # Klein resolves a returned resource against `postpath`, which the
        # matched route has already consumed.
        request.prepath = []
        request.postpath = [
            unquote_to_bytes(segment) for segment in request.path[1:].split(b"/")]
        return self.host

    @app.route('/', branch=True)
    def dispatch(self, request):
        d = self.runMiddleware(request)
        d.addCallback(self._renderHost, request)
        return self._add_error_handlers(d, request)

    #===================================================================
    # Client role
    #===================================================================

    @app.route('/login')
    def login(self, request):
        if self.client is None or request.method != b'GET':
            return self.dispatch(request)

        def insufficient(err, request):
            err.trap(InsufficientIdentity)
            log_cas_event("No local account for CAS user", [
                ('client_ip', request.getClientIP()),
                ('reason', err.getErrorMessage())])
            return self._get_page_view(VIEW_INSUFFICIENT, request)

        def auth_failed(err, request):
            err.trap(InvalidTicket)
            request.setResponseCode(403)
            return self._get_page_view(VIEW_AUTH_FAILED, err, request)

        d = self.client.login(request)
        d.addErrback(insufficient, request)
        d.addErrback(auth_failed, request)
        return self._add_error_handlers(d, request)

    @app.route('/logout')
    def logout(self, request):
        if self.client is None or request.method != b'GET':
            return self.dispatch(request)
        return self.client.logout(request)

    #===================================================================
    # Server role
    #===================================================================

    @app.route('/cas/login')
    def cas_login(self, request):
        if self.server is None:
            return self.dispatch(request)

        def service_err(err, request):
            err.trap(InvalidService)
            log_cas_event("Rejected service", [
                ('client_ip', request.getClientIP()),
                ('reason', err.getErrorMessage())])
            if err.check(MissingService):
                request.setResponseCode(400)
                return "missing service"
            service = get_single_param_or_default(request, 'service', None)
            return self._get_page_view(VIEW_INVALID_SERVICE, service, request)

        def store_err(err, request):
            err.trap(StoreError)
            log_failure(err, request)
            request.setResponseCode(500)
            return "error"

        d = self.authenticateRequest(request)
        d.addCallback(lambda _: self.server.login(request))
        d.addErrback(service_err, request)
        d.addErrback(store_err, request)
        return self._add_error_handlers(d, request)

    @app.route('/cas/logout', methods=['GET'])
    def cas_logout(self, request):
        if self.server is None:
            return self.dispatch(request)
        return self.server.logout(request)

    @app.route('/cas/validate')
    def cas_validate(self, request):
        if self.server is None:
            return self.dispatch(request)
        d = defer.maybeDeferred(self.server.validate, request)
        return self._add_error_handlers(d, request)

    @app.route('/cas/serviceValidate')
    def cas_serviceValidate(self, request):
        if self.server is None:
            return self.dispatch(request)
        d = defer.maybeDeferred(self.server.serviceValidate, request)
        return self._add_error_handlers(d, request)

    @app.handle_errors(BadRequestError)
    def handle_bad_request(self, request, failure):
        log.msg('[ERROR] type="bad_request" client_ip="%s" uri="%s" reason="%s"' % (
                    request.getClientIP(), get_request_uri(request),
                    failure.getErrorMessage()))
        request.setResponseCode(400)
        return dedent("""\
            <html>
                <head>
                    <title>Bad Request</title>
                </head>
                <body>
                    <h1>Bad Request</h1>
                    <p>%s</p>
                </body>
            </html>
            """) % escape_html(failure.getErrorMessage())
