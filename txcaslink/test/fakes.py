
# Application modules
from txcaslink.interface import IDirectory

# External modules
from twisted.internet import defer
from twisted.python.failure import Failure
from twisted.web import server
from twisted.web.client import ResponseDone
from twisted.web.http_headers import Headers
from twisted.web.resource import Resource
from twisted.web.test.requesthelper import DummyChannel
from zope.interface import implementer


SESSION_COOKIE = b'TWISTED_SESSION'


def _b(value):
    if isinstance(value, bytes):
        return value
    return value.encode('utf-8')


class FakeRequest(server.Request):
    """
    A fake request object.
    """

    def __init__(self, method='GET', path='/', args=None, isSecure=False,
                 headers=None, client_ip='127.0.0.1', site=None, session_uid=None):
        server.Request.__init__(self, DummyChannel())
        self.requestHeaders = Headers(headers)
        args = args or {}
        self.args = dict((_b(k), [_b(v) for v in vs]) for k, vs in args.items())
        self.method = _b(method)
        self.uri = _b(path)
        self.path = _b(path)
        self.clientproto = b'HTTP/1.1'
        self.prepath = []
        self.postpath = [_b(x) for x in path.split('/')[1:]]
        self.sitepath = []
        self.site = site
        self.setHost(b'127.0.0.1', 8080, isSecure)
        self.responseCode = None
        self.redirected = None
        if session_uid is not None:
            self.received_cookies[SESSION_COOKIE] = session_uid
        self.client_ip = client_ip

    def getClientIP(self):
        return self.client_ip

    def setResponseCode(self, code, message=None):
        self.responseCode = code

    def redirect(self, where):
        if isinstance(where, bytes):
            where = where.decode('utf-8')
        self.redirected = where


def makeSite(clock):
    """
    A site whose sessions expire on `clock`.
    """
    return server.Site(Resource(), reactor=clock)


class FakeResponse(object):
    """
    Just enough of an IResponse for treq to read the body.
    """

    def __init__(self, code, body=b"", headers=None):
        if not isinstance(body, bytes):
            body = body.encode('utf-8')
        self.code = code
        self.headers = Headers(headers or {})
        self.length = len(body)
        self._body = body

    def deliverBody(self, proto):
        proto.dataReceived(self._body)
        proto.connectionLost(Failure(ResponseDone()))


@implementer(IDirectory)
class FakeDirectory(object):

    def __init__(self, records=None, error=None):
        self.records = records or {}
        self.error = error
        self.calls = []

    def findPerson(self, type, username):
        self.calls.append((type, username))
        if self.error is not None:
            return defer.fail(self.error)
        record = self.records.get(username)
        if record is not None:
            record = dict(record)
        return defer.succeed(record)


class FakeTicketChecker(object):
    """
    Stands in for an upstream CAS server.
    """

    def __init__(self, result):
        self.result = result
        self.calls = []

    def checkTicket(self, ticket, service):
        self.calls.append((ticket, service))
        if isinstance(self.result, Exception):
            return defer.fail(self.result)
        return defer.succeed(self.result)
