
# Application module
from txcaslink.casuser import User
from txcaslink.interface import ICASUser

# External module
from twisted.cred.portal import IRealm
from twisted.internet import defer
from zope.interface import implementer


@implementer(IRealm)
class BasicRealm(object):
    """
    A Basic user realm that maps an avatar ID to an avatar with a matching
    username and no attributes.

    Used when the host application authenticates its own users and only
    the username needs to travel inside a ticket.
    """

    def requestAvatar(self, avatarId, mind, *interfaces):
        """
        """
        def cb():
            if not ICASUser in interfaces:
                raise NotImplementedError("This realm only implements ICASUser.")
            avatar = User(avatarId, None)
            return (ICASUser, avatar, avatar.logout)
        return defer.maybeDeferred(cb)
