
# External modules
from treq.client import HTTPClient
from twisted.internet.ssl import CertificateOptions
from twisted.web.client import Agent, BrowserLikePolicyForHTTPS
from twisted.web.iweb import IPolicyForHTTPS
from zope.interface import implementer


@implementer(IPolicyForHTTPS)
class NonVerifyingPolicyForHTTPS(object):
    """
    TLS policy that does *not* verify the peer certificate.
    """
    def creatorForNetloc(self, hostname, port):
        return CertificateOptions(verify=False)

def normalizeDict_(d):
    if d is None:
        d = {}
    else:
        d = dict(d)
    return d

def createNonVerifyingHTTPClient(reactor, agent_kwds=None, **kwds):
    agent_kwds = normalizeDict_(agent_kwds)
    agent_kwds['contextFactory'] = NonVerifyingPolicyForHTTPS()
    return HTTPClient(Agent(reactor, **agent_kwds), **kwds)

def createVerifyingHTTPClient(reactor, agent_kwds=None, **kwds):
    agent_kwds = normalizeDict_(agent_kwds)
    agent_kwds['contextFactory'] = BrowserLikePolicyForHTTPS()
    return HTTPClient(Agent(reactor, **agent_kwds), **kwds)

def createHTTPClient(reactor, verify_cert=True, **kwds):
    if verify_cert:
        return createVerifyingHTTPClient(reactor, **kwds)
    return createNonVerifyingHTTPClient(reactor, **kwds)
