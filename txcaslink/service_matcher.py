
# Application modules
from txcaslink.exceptions import InvalidService, MissingService
from txcaslink.interface import IServiceMatcher
from txcaslink.json_registry import JSONRegistry

# External modules
from zope.interface import implementer


def prefix_match(service, prefixes):
    """
    Return the first entry of `prefixes` that `service` starts with, or None.
    The comparison is a plain character prefix test without normalization.
    """
    for prefix in prefixes:
        if service.startswith(prefix):
            return prefix
    return None


class _PrefixMatcherMixin(object):

    def _getPrefixes(self):
        raise NotImplementedError()

    def isAllowed(self, service):
        """
        Returns True if the service is prefixed by an allowed entry.

        @raise MissingService: If no service was supplied.
        """
        if service is None or service == "":
            raise MissingService("No service was supplied.")
        return prefix_match(service, self._getPrefixes()) is not None

    def checkService(self, service):
        """
        Returns `service` if it is allowed.

        @raise MissingService: If no service was supplied.
        @raise InvalidService: If the service is not allowed.
        """
        if not self.isAllowed(service):
            raise InvalidService(
                "Service '%s' is not allowed by this CAS service." % service)
        return service


@implementer(IServiceMatcher)
class PrefixServiceMatcher(_PrefixMatcherMixin):
    """
    A service is allowed iff it starts with one of the configured prefixes.
    An empty allow-list allows nothing.
    """

    def __init__(self, prefixes):
        self.prefixes = list(prefixes)

    def _getPrefixes(self):
        return self.prefixes


@implementer(IServiceMatcher)
class JSONServiceMatcher(_PrefixMatcherMixin, JSONRegistry):
    """
    Prefix matcher whose allow-list is a JSON array of strings kept in an
    external file::

        [
            "https://app.example.com/",
            "https://other.example.org/cas-landing"
        ]
    """

    label = "JSONServiceMatcher"

    def _loaded(self):
        registry = self._registry
        if not isinstance(registry, list):
            raise ValueError("Service registry '%s' must be a JSON array." % self._path)
        self._prefixes = [str(x) for x in registry]

    def _getPrefixes(self):
        return self._prefixes
