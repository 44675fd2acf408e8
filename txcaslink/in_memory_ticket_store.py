# Standard library
import sys
from textwrap import dedent

# Application modules
from txcaslink.interface import ITicketStore, ITicketStoreFactory
import txcaslink.settings
import txcaslink.utils

# External modules
from twisted.internet import defer
from twisted.internet import reactor as default_reactor
from twisted.plugin import IPlugin
from twisted.python import log
from zope.interface import implementer


@implementer(IPlugin, ITicketStoreFactory)
class InMemoryTicketStoreFactory(object):

    tag = "memory_ticket_store"

    opt_help = dedent('''\
            A ticket store that manages all CAS tickets in local
            memory.  It is easy to configure and quick to retreive
            and modify tickets.  It is constained to a single process,
            however, so no high availability.  Also, any tickets in
            the store when the CAS process is stopped are lost.
            Valid options include:

            - debug
            ''')

    opt_usage = '''A colon-separated key=value list.'''

    def generateTicketStore(self, argstring=""):
        """
        """
        scp = txcaslink.settings.load_settings('caslink', syspath='/etc/caslink')
        settings = txcaslink.settings.export_settings_to_dict(scp)
        ts_settings = settings.get('InMemoryTicketStore', {})
        ts_settings.update(txcaslink.settings.parse_argstring(argstring))
        if 'debug' in ts_settings:
            ts_settings['_debug'] = txcaslink.settings.get_bool(ts_settings['debug'])
        txcaslink.utils.filter_args(InMemoryTicketStore.__init__, ts_settings, ['self', 'reactor'])
        buf = ["[CONFIG][InMemoryTicketStore] Settings:"]
        for k in sorted(ts_settings.keys()):
            buf.append(" - %s: %s" % (k, ts_settings[k]))
        sys.stderr.write('\n'.join(buf))
        sys.stderr.write('\n')
        return InMemoryTicketStore(**ts_settings)


@implementer(ITicketStore)
class InMemoryTicketStore(object):
    """
    A ticket store that exists entirely in system memory.

    Every operation runs to completion on the reactor thread, so a ticket
    is either fully stored or absent, and `popTicket` hands a ticket to at
    most one caller.
    """

    def __init__(self, reactor=None, _debug=False):
        if reactor is None:
            reactor = default_reactor
        self.reactor = reactor
        self._tickets = {}
        self._delays = {}
        self._debug = _debug
        self._expire_callback = (lambda ticket, data, explicit: None)

    def debug(self, msg):
        if self._debug:
            log.msg(msg)

    def setTicket(self, ticket, value, lifespan):
        """
        Bind `value` to `ticket`.  The ticket expires after `lifespan`
        seconds.
        """
        self._cancelExpiration(ticket)
        self._tickets[ticket] = value
        dc = self.reactor.callLater(lifespan, self.expireTicket, ticket)
        self._delays[ticket] = dc
        self.debug("Added ticket '%s' with data: %s" % (ticket, value))
        return defer.succeed(None)

    def getTicket(self, ticket):
        return defer.succeed(self._tickets.get(ticket, None))

    def popTicket(self, ticket):
        """
        Consume a ticket, producing the data that was associated with the
        ticket when it was created, or None.
        """
        try:
            val = self._tickets.pop(ticket)
        except KeyError:
            return defer.succeed(None)
        self._cancelExpiration(ticket)
        self._expire_callback(ticket, val, True)
        self.debug("Consumed ticket '%s'." % ticket)
        return defer.succeed(val)

    def deleteTicket(self, ticket):
        return self.popTicket(ticket).addCallback(lambda _: None)

    def _cancelExpiration(self, ticket):
        dc = self._delays.pop(ticket, None)
        if dc is not None and dc.active():
            dc.cancel()

    def expireTicket(self, ticket):
        """
        This function should only be called when a ticket is expired via
        a timeout.
        """
        self._delays.pop(ticket, None)
        try:
            data = self._tickets.pop(ticket)
        except KeyError:
            return
        self._expire_callback(ticket, data, False)
        self.debug("Expired ticket '%s'." % ticket)

    def register_ticket_expiration_callback(self, callback):
        """
        Register a function to be called when a ticket is expired.
        The function should take 3 arguments, (ticket, data, explicit).
        `ticket` is the ticket ID, `data` is the value bound to the ticket,
        and `explicit` is a boolean that indicates whether the ticket
        was explicitly removed (e.g. validation) or implicitly expired
        (timeout).
        """
        self._expire_callback = callback
