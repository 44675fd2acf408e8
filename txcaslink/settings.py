# Standard library
import configparser
import io
import os.path

# External modules
from twisted.plugin import getPlugins


def load_defaults(defaults):
    """
    Load default settings.
    """
    if defaults is None:
        defaults = {}
    lines = []
    for section, opts in defaults.items():
        lines.append("[%s]" % section)
        for opt, value in opts.items():
            lines.append("%s = %s" % (opt, value))
    settings = '\n'.join(lines)
    del lines
    scp = configparser.ConfigParser(interpolation=None)
    scp.read_file(io.StringIO(settings))
    return scp

def load_settings(config_basename, defaults=None, syspath=None):
    """
    Load settings.
    """
    scp = load_defaults(defaults)
    appdir = os.path.dirname(os.path.dirname(__file__))
    paths = []
    if syspath is not None:
        paths.append(os.path.join(syspath, "%s.cfg" % config_basename))
    paths.append(os.path.expanduser("~/.%src" % config_basename))
    paths.append(os.path.join(appdir, "%s.cfg" % config_basename))
    scp.read(paths)
    return scp

def has_options(scp, opts):
    """
    Check if a config parser has the indicated options.
    """
    for section, options in opts.items():
        if not scp.has_section(section):
            return False
        for opt in options:
            if not scp.has_option(section, opt):
                return False
    return True

def export_settings_to_dict(scp):
    """
    Convert a config parser into a dict of section -> {option: value}.
    """
    settings = {}
    for section in scp.sections():
        for option in scp.options(section):
            settings.setdefault(section, {})[option] = scp.get(section, option)
    return settings

def get_bool(value):
    """
    Interpret a settings value as a boolean.
    """
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'y', 'yes', 't', 'true', 'on')

def get_list(value):
    """
    Split a comma separated settings value.
    """
    if value is None:
        return []
    return [x.strip() for x in value.split(',') if x.strip() != '']

def parse_argstring(argstring):
    """
    Parse a colon-separated key=value list.
    """
    if argstring.strip() == "":
        return {}
    return dict(x.split('=', 1) for x in argstring.split(':'))

def split_plugin_arg(tag_args):
    """
    Split 'tag:key=value:...' into (tag, argstring).
    """
    parts = tag_args.split(':')
    return parts[0], ':'.join(parts[1:])

def get_plugins_by_predicate(iface, pred):
    """
    Get plugins providing `iface` for which `pred(plugin)` is True.
    """
    return [plugin for plugin in getPlugins(iface) if pred(plugin)]

def get_plugin_factory(tag, iface):
    """
    Get the first plugin factory providing `iface` whose `tag` matches.
    Returns None if there is no match.
    """
    results = get_plugins_by_predicate(iface, lambda x: x.tag == tag)
    if len(results) == 0:
        return None
    return results[0]


#=======================================================================
# Role configuration
#=======================================================================

class ServerConfig(object):
    """
    Settings for the CAS server role.

    @param services: Allow-list of service URL prefixes.
    @param services_file: Path to a JSON array of prefixes.  Used instead of
        `services` when given.
    @param ticket_lifespan: Seconds a service ticket remains valid.
    @param ticket_size: Length of ticket IDs in characters.
    @param consume_tickets: Remove a ticket on its first successful
        validation.  If False, a ticket stays valid until it expires.
    @param login_path: Local login entry point for unauthenticated callers.
    @param logout_path: Local logout endpoint.
    """

    def __init__(self, services=None, services_file=None, ticket_lifespan=300,
                 ticket_size=64, consume_tickets=True, login_path='/login',
                 logout_path='/logout'):
        self.services = list(services or [])
        self.services_file = services_file
        self.ticket_lifespan = int(ticket_lifespan)
        self.ticket_size = int(ticket_size)
        self.consume_tickets = consume_tickets
        self.login_path = login_path
        self.logout_path = logout_path


class ClientConfig(object):
    """
    Settings for the CAS client role.

    @param cas_url: Base URL of the external CAS server.
    @param service_url: Absolute URL of this application's login route.
        Derived from the request when None.
    @param hardcoded_users: List of dicts with at least `username` and
        optionally `email`.
    """

    def __init__(self, cas_url, service_url=None, login_path='/login',
                 logout_path='/logout', validate_path='/serviceValidate',
                 verify_cert=True, hardcoded_users=None, after_login_url='/'):
        self.cas_url = cas_url.rstrip('/')
        self.service_url = service_url
        self.login_path = login_path
        self.logout_path = logout_path
        self.validate_path = validate_path
        self.verify_cert = verify_cert
        self.hardcoded_users = list(hardcoded_users or [])
        self.after_login_url = after_login_url

    @property
    def login_url(self):
        return self.cas_url + self.login_path

    @property
    def logout_url(self):
        return self.cas_url + self.logout_path


def load_server_config(scp, section='CASServer'):
    """
    Build a ServerConfig from settings or return None if the server role is
    not configured.
    """
    if not scp.has_section(section):
        return None
    opts = dict(scp.items(section))
    kwds = {
        'services': get_list(opts.get('services')),
        'services_file': opts.get('services_file'),
    }
    for opt in ('ticket_lifespan', 'ticket_size'):
        if opt in opts:
            kwds[opt] = int(opts[opt])
    if 'consume_tickets' in opts:
        kwds['consume_tickets'] = get_bool(opts['consume_tickets'])
    for opt in ('login_path', 'logout_path'):
        if opt in opts:
            kwds[opt] = opts[opt]
    return ServerConfig(**kwds)

def load_client_config(scp, section='CASClient', users_loader=None):
    """
    Build a ClientConfig from settings or return None if the client role is
    not configured.

    `users_loader` is called with the `users_file` option, if present, and
    must return the list of hardcoded users.
    """
    if not has_options(scp, {section: ['cas_url']}):
        return None
    opts = dict(scp.items(section))
    kwds = {'cas_url': opts['cas_url']}
    for opt in ('service_url', 'login_path', 'logout_path',
                'validate_path', 'after_login_url'):
        if opt in opts:
            kwds[opt] = opts[opt]
    if 'verify_cert' in opts:
        kwds['verify_cert'] = get_bool(opts['verify_cert'])
    if 'users_file' in opts and users_loader is not None:
        kwds['hardcoded_users'] = users_loader(opts['users_file'])
    return ClientConfig(**kwds)
