
# Standard library
import json

# External modules
from twisted.internet import reactor as default_reactor
from twisted.python import log
from twisted.python.filepath import FilePath


class JSONRegistry(object):
    """
    A JSON document loaded from a file and reloaded whenever the file's
    modification time changes.

    Subclasses override `_loaded()` to post-process `self._registry`.
    """

    poll_interval = 60
    label = "JSONRegistry"

    def __init__(self, path, reactor=None):
        if reactor is None:
            reactor = default_reactor
        self.reactor = reactor
        self._path = path
        self._modtime = None
        self._registry = None
        self._poller = None
        self._debug = False
        self._reload()
        self._schedule()

    def debug(self, msg):
        if self._debug:
            log.msg("[DEBUG][%s] %s" % (self.label, msg))

    def _schedule(self):
        self._poller = self.reactor.callLater(self.poll_interval, self._poll)

    def _poll(self):
        try:
            self._reload()
        except (IOError, ValueError) as ex:
            log.msg("[ERROR][%s] Could not reload '%s'." % (self.label, self._path))
            log.err(ex)
        self._schedule()

    def _reload(self):
        """
        Load the file if it changed since the last load.
        """
        filepath = FilePath(self._path)
        modtime = filepath.getModificationTime()
        if modtime != self._modtime:
            log.msg("[INFO][%s] Reloading '%s' ..." % (self.label, self._path))
            with open(self._path, 'r') as f:
                registry = json.load(f)
            self._registry = registry
            self._loaded()
            self._modtime = modtime

    def _loaded(self):
        pass

    def stopPolling(self):
        if self._poller is not None and self._poller.active():
            self._poller.cancel()
        self._poller = None


def load_json_file(path):
    """
    Load a JSON document once.
    """
    with open(path, 'r') as f:
        return json.load(f)
