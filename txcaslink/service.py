# Standard library.
import sys

# Application modules
from txcaslink.constants import ALL_VIEWS
from txcaslink.interface import IDirectoryFactory, ITicketStoreFactory, \
                        IViewProviderFactory
from txcaslink.json_registry import load_json_file
from txcaslink.module import CASModule
import txcaslink.settings

# External modules
from twisted.application.service import Service
from twisted.internet.endpoints import serverFromString
from twisted.web.server import Site


def generate_plugin(scp, option, iface, generator_name, tag_args=None):
    """
    Create an object from the plugin named by `tag_args` or, if None, by
    the [PLUGINS] `option` setting.  Returns None if neither names one.
    """
    if tag_args is None:
        if not scp.has_option('PLUGINS', option):
            return None
        tag_args = scp.get('PLUGINS', option)
    tag, args = txcaslink.settings.split_plugin_arg(tag_args)
    factory = txcaslink.settings.get_plugin_factory(tag, iface)
    if factory is None:
        sys.stderr.write("[ERROR] Plugin type '%s' for '%s' is not available.\n" % (tag, option))
        sys.exit(1)
    obj = getattr(factory, generator_name)(args)
    sys.stderr.write("[CONFIG] %s: %s\n" % (option, obj.__class__.__name__))
    return obj


class CASLinkService(Service):
    """
    Service for the CAS client/server module.
    """
    reactor = None
    _listeningPort = None

    def __init__(
                self,
                endpoint_s,
                ticket_store=None,
                directory=None,
                view_provider=None,
                host=None):
        if self.reactor is None:
            from twisted.internet import reactor
            self.reactor = reactor
        self.endpoint_s = endpoint_s
        # Load the config.
        scp = txcaslink.settings.load_settings('caslink', syspath='/etc/caslink', defaults={
                'PLUGINS': {
                    'ticket_store': 'memory_ticket_store'}})
        server_config = txcaslink.settings.load_server_config(scp)
        client_config = txcaslink.settings.load_client_config(
            scp, users_loader=load_json_file)
        if server_config is None and client_config is None:
            sys.stderr.write(
                "[ERROR] Neither a [CASServer] nor a [CASClient] section "
                "was configured.\n")
            sys.exit(1)
        if server_config is not None:
            sys.stderr.write("[CONFIG] Server role enabled.\n")
            if server_config.services_file is not None:
                sys.stderr.write("[CONFIG] Services file: %s\n" % server_config.services_file)
            else:
                sys.stderr.write("[CONFIG] Services: %s\n" % ', '.join(server_config.services))
            sys.stderr.write("[CONFIG] Ticket lifespan: %d\n" % server_config.ticket_lifespan)
            if not server_config.consume_tickets:
                sys.stderr.write("[CONFIG] Tickets are *NOT* consumed on validation.\n")
            # Choose plugin that implements ITicketStore.
            if ticket_store is None:
                ticket_store = generate_plugin(
                    scp, 'ticket_store', ITicketStoreFactory, 'generateTicketStore')
            assert ticket_store is not None, "Ticket store has not been configured!"
        if client_config is not None:
            sys.stderr.write("[CONFIG] Client role enabled.\n")
            sys.stderr.write("[CONFIG] CAS server: %s\n" % client_config.cas_url)
            sys.stderr.write("[CONFIG] Hardcoded users: %d\n" % len(client_config.hardcoded_users))
            if not client_config.verify_cert:
                sys.stderr.write("[CONFIG] CAS server certificate will *NOT* be verified.\n")
        # Choose plugin that implements IDirectory.
        if directory is None:
            directory = generate_plugin(
                scp, 'directory', IDirectoryFactory, 'generateDirectory')
        # Choose plugin that implements IViewProvider.
        if view_provider is None:
            view_provider = generate_plugin(
                scp, 'view_provider', IViewProviderFactory, 'generateViewProvider')
        # Page views
        page_views = None
        if view_provider is not None:
            page_views = {}
            for symbol in ALL_VIEWS:
                func = view_provider.provideView(symbol)
                if func is not None:
                    page_views[symbol] = func
        # Create the application.
        module = CASModule(
                    server_config=server_config,
                    client_config=client_config,
                    ticket_store=ticket_store,
                    directory=directory,
                    page_views=page_views,
                    host=host,
                    reactor=self.reactor)
        self.module = module
        self.site = Site(module.resource())

    def startService(self):
        sys.stderr.write("[CONFIG] Endpoint string: %s\n" % self.endpoint_s)
        endpoint = serverFromString(self.reactor, self.endpoint_s)
        d = endpoint.listen(self.site)
        d.addCallback(self.recordListeningPort)

    def recordListeningPort(self, listeningPort):
        self._listeningPort = listeningPort

    def stopService(self):
        if self._listeningPort is not None:
            return self._listeningPort.stopListening()
