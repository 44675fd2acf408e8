
# Standard library
from textwrap import dedent

# Application modules
from txcaslink.constants import CAS_NAMESPACE
from txcaslink.exceptions import InvalidTicket
from txcaslink.utils import escape_html

# External modules
from twisted.internet import defer


class TicketValidator(object):
    """
    Looks up a service ticket exactly once and renders the CAS protocol
    response for `/validate` (plain text) or `/serviceValidate` (XML).

    When `consume` is True a ticket is removed from the store on its first
    successful validation.  Otherwise it remains valid until it expires.
    """

    def __init__(self, ticket_store, consume=True):
        self.ticket_store = ticket_store
        self.consume = consume

    @defer.inlineCallbacks
    def validate(self, ticket):
        """
        @return: A deferred that fires with the username bound to `ticket`.
        @raise InvalidTicket: The ticket does not exist or has expired.
        @raise StoreError: The ticket store failed.
        """
        if not ticket:
            raise InvalidTicket("No ticket was supplied.")
        if self.consume:
            username = yield self.ticket_store.popTicket(ticket)
        else:
            username = yield self.ticket_store.getTicket(ticket)
        if username is None:
            raise InvalidTicket("Ticket '%s' is not valid." % ticket)
        return username

    def render_validate_success(self):
        return "yes\n"

    def render_validate_failure(self):
        return "no\n"

    def render_service_validate_success(self, username):
        return dedent("""\
            <cas:serviceResponse xmlns:cas="%(ns)s">
                <cas:authenticationSuccess>
                    <cas:user>%(user)s</cas:user>
                </cas:authenticationSuccess>
            </cas:serviceResponse>
            """) % {
                'ns': CAS_NAMESPACE,
                'user': escape_html(username)}

    def render_service_validate_failure(self, code, ticket=None, message=None):
        if message is not None:
            msg = escape_html(message)
        elif ticket is None:
            msg = "No ticket was supplied."
        else:
            msg = "Ticket %s not recognized." % escape_html(ticket)
        return dedent("""\
            <cas:serviceResponse xmlns:cas="%(ns)s">
                <cas:authenticationFailure code="%(code)s">
                    %(msg)s
                </cas:authenticationFailure>
            </cas:serviceResponse>
            """) % {
                'ns': CAS_NAMESPACE,
                'code': escape_html(code),
                'msg': msg}
