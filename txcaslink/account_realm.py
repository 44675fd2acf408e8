
# Application modules
from txcaslink.casuser import User
from txcaslink.exceptions import DirectoryError, InsufficientIdentity
from txcaslink.interface import ICASUser

# External modules
from twisted.cred.portal import IRealm
from twisted.internet import defer
from twisted.python import log
from zope.interface import implementer


def make_attribs(record, exclude=('username', 'email', 'password')):
    """
    Turn a person record into a sorted list of (attribute, value) tuples.
    """
    attribs = []
    for k in sorted(record.keys()):
        if k in exclude or k.startswith('_'):
            continue
        v = record[k]
        if isinstance(v, (list, tuple)):
            for item in v:
                attribs.append((k, str(item)))
        elif v is not None:
            attribs.append((k, str(v)))
    return attribs

def user_from_record(record):
    return User(record['username'], make_attribs(record), email=record.get('email'))


@implementer(IRealm)
class AccountRealm(object):
    """
    Maps a CAS username to a local account.

    Resolution order:

    1. A hardcoded user whose `username` or `email` equals the CAS username.
    2. A `person` record in the directory keyed by the CAS username.

    If neither resolves, the avatar request fails with InsufficientIdentity.
    Only the username is ever cached by callers; every request for an avatar
    performs a fresh lookup so directory changes take effect immediately.
    """

    person_type = 'person'

    def __init__(self, hardcoded_users=None, directory=None, after_resolve=None):
        self.hardcoded_users = list(hardcoded_users or [])
        self.directory = directory
        self.after_resolve = after_resolve

    def findHardcodedUser(self, username):
        for entry in self.hardcoded_users:
            if entry.get('username') == username or entry.get('email') == username:
                record = dict(entry)
                record['id'] = record['username']
                return record
        return None

    @defer.inlineCallbacks
    def findRecord(self, username):
        record = self.findHardcodedUser(username)
        if record is not None:
            return record
        if self.directory is None:
            return None
        try:
            record = yield self.directory.findPerson(self.person_type, username)
        except Exception as ex:
            log.err(ex)
            raise DirectoryError("Directory lookup failed for '%s'." % username)
        return record

    @defer.inlineCallbacks
    def requestAvatar(self, avatarId, mind, *interfaces):
        if not ICASUser in interfaces:
            raise NotImplementedError("This realm only implements ICASUser.")
        record = yield self.findRecord(avatarId)
        if record is None:
            raise InsufficientIdentity(
                "No local account for CAS user '%s'." % avatarId)
        avatar = user_from_record(record)
        if self.after_resolve is not None:
            result = yield defer.maybeDeferred(self.after_resolve, avatar)
            if result is not None:
                avatar = result
        return (ICASUser, avatar, avatar.logout)
