
# External modules
from zope.interface import Interface, Attribute


class ICASUser(Interface):

    username = Attribute('String username')
    email = Attribute('String email address or None')
    attribs = Attribute('List of (attribute, value) tuples.')

class ICASSessionState(Interface):

    username = Attribute('CAS username bound to the session, or None.')
    pending_service = Attribute('Service awaiting a login, or None.')
    pending_ticket = Attribute('Ticket to hand to the pending service, or None.')
    tickets = Attribute('Mapping of service -> last ticket issued in this session.')

class IPluginFactory(Interface):

    tag = Attribute('String used to identify the plugin factory.')
    opt_help = Attribute('String description of the plugin.')
    opt_usage = Attribute('String describes how to provide arguments for factory.')

class IDirectoryFactory(IPluginFactory):

    def generateDirectory(argstring=""):
        """
        Create an object that implements IDirectory.
        """

class IDirectory(Interface):

    def findPerson(type, username):
        """
        Look up a person record.

        @return: A deferred that fires with a dict (the record) or None.
        """

class IServiceMatcher(Interface):

    def isAllowed(service):
        """
        Returns True if the service is prefixed by an allowed entry;
        False otherwise.

        @raise MissingService: If `service` is empty or None.
        """

    def checkService(service):
        """
        Returns `service` if it is allowed.

        @raise InvalidService: If the service is not allowed.
        """

class IViewProviderFactory(IPluginFactory):

    def generateViewProvider(argstring=""):
        """
        Create an object that provides one or more views.
        """

class IViewProvider(Interface):

    def provideView(view_type):
        """
        Provide a function that will render the named view.
        Return None if the view is not provided.
        """

class ITicketStoreFactory(IPluginFactory):

    def generateTicketStore(argstring=""):
        """
        Create an object that implements ITicketStore.
        """

class ITicketStore(Interface):

    def setTicket(ticket, value, lifespan):
        """
        Bind `value` to `ticket` for `lifespan` seconds.

        @rtype: C{Deferred}
        @raise StoreError: If the backing store is unavailable.
        """

    def getTicket(ticket):
        """
        @return: A deferred that fires with the bound value or None.
        """

    def popTicket(ticket):
        """
        Atomically fetch and remove a ticket.

        @return: A deferred that fires with the bound value or None if the
            ticket does not exist, has expired or was already removed.
        """

    def deleteTicket(ticket):
        """
        Remove a ticket.  Removing a missing ticket is not an error.
        """

    def register_ticket_expiration_callback(callback):
        """
        Register a function to be called when a ticket is expired.
        The function should take 3 arguments, (ticket, value, explicit).
        `explicit` is True when the ticket was removed by a caller and False
        when its lifespan ran out.
        """
