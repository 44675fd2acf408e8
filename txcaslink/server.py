
# Application modules
from txcaslink.constants import CODE_INTERNAL_ERROR, CODE_INVALID_REQUEST, \
                        CODE_INVALID_TICKET
from txcaslink.exceptions import InvalidService, InvalidTicket, StoreError
from txcaslink.interface import ICASUser
from txcaslink.session import get_session_state
from txcaslink.utils import get_single_param_or_default, log_cas_event, \
                        log_failure, log_http_event, redirect, set_content_type

# External modules
from twisted.internet import defer
from twisted.python import log


def log_ticket_expiration(ticket, value, explicit):
    """
    Expiration callback for the ticket store.  Consumed tickets are logged
    when they are validated, so only timeouts are logged here.
    """
    if not explicit:
        log_cas_event("Ticket expired", [
            ('ticket', ticket),
            ('username', value)])


class ServerRole(object):
    """
    Issues and validates service tickets for the services in the allow-list.
    """

    def __init__(self, config, issuer, validator):
        self.config = config
        self.issuer = issuer
        self.validator = validator

    def _rememberTicket(self, request, service, ticket):
        state = get_session_state(request)
        state.tickets[service] = ticket
        log_cas_event("Issued service ticket", [
            ('client_ip', request.getClientIP()),
            ('service', service),
            ('ticket', ticket)])

    @defer.inlineCallbacks
    def login(self, request):
        """
        Issue a ticket for `service` to an authenticated caller, or remember
        the service and send the caller to the local login page.

        The caller is authenticated when the request carries an `ICASUser`
        component.

        @raise MissingService: No service was supplied.
        @raise InvalidService: The service is not in the allow-list.
        @raise StoreError: The ticket could not be stored.
        """
        log_http_event(request)
        service = get_single_param_or_default(request, 'service', None)
        self.issuer.checkService(service)
        user = request.getComponent(ICASUser)
        if user is None:
            state = get_session_state(request)
            state.pending_service = service
            state.pending_ticket = None
            log_cas_event("Login required for service", [
                ('client_ip', request.getClientIP()),
                ('service', service)])
            redirect(request, self.config.login_path)
            return None
        ticket = yield self.issuer.issueTicket(user.username, service)
        self._rememberTicket(request, service, ticket)
        redirect(request, self.issuer.serviceURLWithTicket(service, ticket))
        return None

    def logout(self, request):
        log_http_event(request)
        redirect(request, self.config.logout_path)
        return None

    def validate(self, request):
        """
        Plain text validation.  The response cannot reveal the username.
        """
        log_http_event(request, redact_args=['ticket'])
        ticket = get_single_param_or_default(request, 'ticket', None)
        set_content_type(request, 'text/plain; charset=utf-8')

        def success(username, request):
            log_cas_event("Validated service ticket (/validate)", [
                ('client_ip', request.getClientIP()),
                ('username', username)])
            return self.validator.render_validate_success()

        def failure(err, request):
            err.trap(InvalidTicket)
            log_cas_event("Failed to validate service ticket (/validate)", [
                ('client_ip', request.getClientIP())])
            return self.validator.render_validate_failure()

        def store_error(err, request):
            err.trap(StoreError)
            log_failure(err, request)
            request.setResponseCode(500)
            return "no"

        d = self.validator.validate(ticket)
        d.addCallbacks(success, failure, callbackArgs=(request,),
                       errbackArgs=(request,))
        d.addErrback(store_error, request)
        return d

    def serviceValidate(self, request):
        """
        CAS 2.0 XML validation.
        """
        log_http_event(request, redact_args=['ticket'])
        ticket = get_single_param_or_default(request, 'ticket', None)
        set_content_type(request, 'text/xml; charset=utf-8')
        validator = self.validator
        if not ticket:
            return validator.render_service_validate_failure(CODE_INVALID_REQUEST)

        def success(username, request):
            log_cas_event("Validated service ticket (/serviceValidate)", [
                ('client_ip', request.getClientIP()),
                ('username', username)])
            return validator.render_service_validate_success(username)

        def failure(err, request):
            err.trap(InvalidTicket)
            log_cas_event("Failed to validate service ticket (/serviceValidate)", [
                ('client_ip', request.getClientIP())])
            return validator.render_service_validate_failure(
                CODE_INVALID_TICKET, ticket)

        def store_error(err, request):
            err.trap(StoreError)
            log_failure(err, request)
            request.setResponseCode(500)
            return validator.render_service_validate_failure(
                CODE_INTERNAL_ERROR, message="Tickets cannot be validated right now.")

        d = validator.validate(ticket)
        d.addCallbacks(success, failure, callbackArgs=(request,),
                       errbackArgs=(request,))
        d.addErrback(store_error, request)
        return d

    @defer.inlineCallbacks
    def continuePendingLogin(self, request):
        """
        Middleware.  Once the caller is authenticated, send them on to the
        service they asked for before logging in.

        @return: A deferred that fires with True if the request was
            redirected.
        """
        state = get_session_state(request)
        if not state.hasPending():
            return False
        user = request.getComponent(ICASUser)
        if user is None:
            return False
        service = state.pending_service
        ticket = state.pending_ticket
        state.clearPending()
        if ticket is None:
            try:
                ticket = yield self.issuer.issueTicket(user.username, service)
            except InvalidService as ex:
                log.msg("[WARNING] Pending service '%s' is no longer allowed: %s" % (
                    service, ex))
                return False
            self._rememberTicket(request, service, ticket)
        redirect(request, self.issuer.serviceURLWithTicket(service, ticket))
        return True
