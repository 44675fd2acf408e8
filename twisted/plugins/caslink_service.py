
# Standard library
import sys

# Application modules
from txcaslink.interface import IDirectoryFactory, ITicketStoreFactory, \
                        IViewProviderFactory
from txcaslink.service import CASLinkService
import txcaslink.settings
import txcaslink.utils

# External modules
from twisted.application.service import IServiceMaker
from twisted.plugin import getPlugins, IPlugin
from twisted.python import usage
from zope.interface import implementer


class Options(usage.Options):

    optFlags = [
            ["help-ticket-stores", None, "List ticket store plugins available."],
            ["help-directories", None, "List directory plugins available."],
            ["help-view-providers", None, "List view provider plugins available."],
        ]

    optParameters = [
                        ["endpoint", "e", "tcp:9800", "Twisted endpoint string to listen on."],
                        ["ticket-store", "t", None, "Ticket store plugin to use."],
                        ["help-ticket-store", None, None, "Help for a specific ticket store plugin."],
                        ["directory", "d", None, "Directory plugin to use."],
                        ["help-directory", None, None, "Help for a specific directory plugin."],
                        ["view-provider", None, None, "View provider plugin to use."],
                        ["help-view-provider", None, None, "Help for a specific view provider plugin."],
                    ]


def handle_plugin_options(options, label, list_flag, help_opt, plugin_opt,
                          iface, generator_name):
    """
    Process the list/help/select options for one kind of plugin.
    Returns the generated object or None.
    """
    if options.get(list_flag):
        sys.stdout.write("Available %s Plugins\n" % label)
        factories = list(getPlugins(iface))
        txcaslink.utils.format_plugin_help_list(factories, sys.stdout)
        sys.exit(0)

    tag = options.get(help_opt, None)
    if tag is not None:
        factory = txcaslink.settings.get_plugin_factory(tag, iface)
        if factory is None:
            sys.stderr.write("Unknown %s plugin '%s'.\n" % (label.lower(), tag))
            sys.exit(1)
        sys.stderr.write(factory.opt_help)
        sys.stderr.write('\n')
        sys.exit(0)

    arg = options.get(plugin_opt, None)
    if arg is None:
        return None
    tag, argstr = txcaslink.settings.split_plugin_arg(arg)
    factory = txcaslink.settings.get_plugin_factory(tag, iface)
    if factory is None:
        sys.stderr.write("%s type '%s' is not available.\n" % (label, tag))
        sys.exit(1)
    return getattr(factory, generator_name)(argstr)


@implementer(IServiceMaker, IPlugin)
class CASLinkServiceMaker(object):
    tapname = "caslink"
    description = "CAS client and server module."
    options = Options

    def makeService(self, options):
        ticket_store = handle_plugin_options(
            options, "Ticket Store", 'help-ticket-stores', 'help-ticket-store',
            'ticket-store', ITicketStoreFactory, 'generateTicketStore')
        directory = handle_plugin_options(
            options, "Directory", 'help-directories', 'help-directory',
            'directory', IDirectoryFactory, 'generateDirectory')
        view_provider = handle_plugin_options(
            options, "View Provider", 'help-view-providers', 'help-view-provider',
            'view-provider', IViewProviderFactory, 'generateViewProvider')
        return CASLinkService(
                options['endpoint'],
                ticket_store=ticket_store,
                directory=directory,
                view_provider=view_provider)


serviceMaker = CASLinkServiceMaker()
