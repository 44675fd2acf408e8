
# Standard library
import sys
from textwrap import dedent

# Application modules
from txcaslink.interface import IDirectory, IDirectoryFactory
from txcaslink.json_registry import JSONRegistry
import txcaslink.settings
import txcaslink.utils

# External modules
from twisted.internet import defer
from twisted.plugin import IPlugin
from zope.interface import implementer


@implementer(IPlugin, IDirectoryFactory)
class JSONDirectoryFactory(object):
    """
    """
    tag = "json_directory"

    opt_help = dedent('''\
            A user directory kept in an external JSON file.  The file is
            reloaded when it changes.
            Valid options include:

            - path
            ''')

    opt_usage = '''A colon-separated key=value list.'''

    def generateDirectory(self, argstring=""):
        """
        """
        scp = txcaslink.settings.load_settings('caslink', syspath='/etc/caslink')
        settings = txcaslink.settings.export_settings_to_dict(scp)
        config = settings.get('JSONDirectory', {})
        config.update(txcaslink.settings.parse_argstring(argstring))
        missing = txcaslink.utils.get_missing_args(
                    JSONDirectory.__init__, config, ['self'])
        if len(missing) > 0:
            sys.stderr.write(
                "[ERROR][JSONDirectory] "
                "Missing the following settings: %s" % ', '.join(missing))
            sys.stderr.write('\n')
            sys.exit(1)
        txcaslink.utils.filter_args(JSONDirectory.__init__, config, ['self', 'reactor'])
        buf = ["[CONFIG][JSONDirectory] Settings:"]
        for k in sorted(config.keys()):
            buf.append(" - %s: %s" % (k, config[k]))
        sys.stderr.write('\n'.join(buf))
        sys.stderr.write('\n')
        return JSONDirectory(**config)


@implementer(IDirectory)
class JSONDirectory(JSONRegistry):
    """
    Basic structure::

    [
        {
            'type': 'person',
            'username': 'jdoe',
            'email': 'jdoe@example.edu',
            ... any other attributes ...
        },
        ...
    ]
    """

    label = "JSONDirectory"

    def __init__(self, path, reactor=None):
        JSONRegistry.__init__(self, path, reactor=reactor)

    def _loaded(self):
        index = {}
        for entry in self._registry:
            key = (entry.get('type', 'person'), entry.get('username'))
            index.setdefault(key, entry)
        self._index = index

    def findPerson(self, type, username):
        entry = self._index.get((type, username))
        self.debug("findPerson(), type: %s, username: %s, found: %s" % (
            type, username, entry is not None))
        if entry is not None:
            entry = dict(entry)
        return defer.succeed(entry)
