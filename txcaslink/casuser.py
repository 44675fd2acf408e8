
# Application modules
from txcaslink.interface import ICASUser

# External modules
from zope.interface import implementer


@implementer(ICASUser)
class User(object):

    username = None
    email = None
    attribs = None

    def __init__(self, username, attribs=None, email=None):
        self.username = username
        self.attribs = attribs
        self.email = email

    def logout(self):
        pass

    def __repr__(self):
        return '<User %r>' % self.username
