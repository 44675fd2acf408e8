
# Standard library
import random
import string
from urllib.parse import urlencode

# Application modules
from txcaslink.constants import SERVICE_TICKET_PREFIX
from txcaslink.settings import ServerConfig

# External modules
from twisted.internet import defer


class TicketIssuer(object):
    """
    Mints service tickets for allowed services and records the
    ticket -> username binding in the ticket store.
    """

    charset = string.ascii_letters + string.digits + '-'

    def __init__(self, ticket_store, service_matcher, config=None):
        if config is None:
            config = ServerConfig()
        self.ticket_store = ticket_store
        self.service_matcher = service_matcher
        self.config = config
        self.rand = random.SystemRandom()

    def _generate(self, prefix):
        r = list(prefix)
        size = self.config.ticket_size
        while len(r) < size:
            r.append(self.rand.choice(self.charset))
        return ''.join(r)

    def checkService(self, service):
        return self.service_matcher.checkService(service)

    @defer.inlineCallbacks
    def issueTicket(self, username, service):
        """
        Issue a ticket binding `username` for `service`.

        @raise MissingService: No service was supplied.
        @raise InvalidService: The service is not in the allow-list.
        @raise StoreError: The ticket could not be stored.
        @return: A deferred that fires with the ticket.
        """
        self.checkService(service)
        ticket = self._generate(SERVICE_TICKET_PREFIX)
        yield self.ticket_store.setTicket(
            ticket, username, self.config.ticket_lifespan)
        return ticket

    def serviceURLWithTicket(self, service, ticket):
        query = urlencode({'ticket': ticket})
        if '?' in service:
            return service + '&' + query
        return service + '?' + query
