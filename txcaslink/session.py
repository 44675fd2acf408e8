
# Application modules
from txcaslink.exceptions import DirectoryError, InsufficientIdentity
from txcaslink.interface import ICASSessionState, ICASUser
from txcaslink.utils import log_cas_event

# External modules
from twisted.internet import defer
from twisted.python.components import registerAdapter
from twisted.web.server import Session
from zope.interface import implementer


@implementer(ICASSessionState)
class CASSessionState(object):
    """
    CAS state kept in a web session.

    Only the CAS username is kept here.  The full identity is resolved again
    for every request.
    """

    def __init__(self, session):
        self.username = None
        self.pending_service = None
        self.pending_ticket = None
        self.tickets = {}

    def clearPending(self):
        self.pending_service = None
        self.pending_ticket = None

    def hasPending(self):
        return self.pending_service is not None


registerAdapter(CASSessionState, Session, ICASSessionState)


def get_session_state(request):
    return ICASSessionState(request.getSession())

def destroy_session(request):
    """
    Expire the session bound to `request`.  A fresh session is created by
    the next call to `request.getSession()`.
    """
    session = request.getSession()
    if session.uid in session.site.sessions:
        session.expire()

@defer.inlineCallbacks
def resolve_session_user(request, realm):
    """
    Resolve the session's CAS username to a local avatar and attach it to
    the request as its `ICASUser` component.

    If resolution fails the session is destroyed before the failure
    propagates.
    """
    state = get_session_state(request)
    if state.username is None:
        return None
    try:
        iface, avatar, logout = yield realm.requestAvatar(
            state.username, None, ICASUser)
    except Exception:
        destroy_session(request)
        raise
    request.setComponent(ICASUser, avatar)
    return avatar

def authenticate_request(request, realm):
    """
    Middleware form of `resolve_session_user()`.  Identity failures end the
    session and the request continues unauthenticated.
    """
    def eb(err, request):
        err.trap(InsufficientIdentity, DirectoryError)
        log_cas_event("Session user could not be resolved", [
            ('client_ip', request.getClientIP()),
            ('reason', err.getErrorMessage())])
        return None

    d = resolve_session_user(request, realm)
    d.addErrback(eb, request)
    return d
