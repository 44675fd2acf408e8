
# Standard library
import datetime
import json
import sys
from textwrap import dedent

# Application modules
from txcaslink.exceptions import CouchDBError
from txcaslink.http import createNonVerifyingHTTPClient, createVerifyingHTTPClient
from txcaslink.interface import ITicketStore, ITicketStoreFactory
from txcaslink.settings import get_bool, export_settings_to_dict, load_settings, parse_argstring
import txcaslink.utils
from txcaslink.utils import http_status_filter

# External modules
from dateutil.parser import parse as parse_date
import treq
from twisted.internet import defer
from twisted.internet import reactor as default_reactor
from twisted.plugin import IPlugin
from twisted.python import log
from twisted.web.http_headers import Headers
from zope.interface import implementer


DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


@implementer(IPlugin, ITicketStoreFactory)
class CouchDBTicketStoreFactory(object):
    tag = "couchdb_ticket_store"
    opt_help = dedent('''\
            A ticket store that manages all CAS tickets in an external
            CouchDB database.  Several CAS processes may share it.
            Any tickets in the store when the CAS process is stopped
            are retained when it is restarted.
            The database needs a design document `views` with the views
            `get_ticket` (key: ticket_id) and `get_by_expires`
            (key: expires, value: ticket_id).
            Valid options include:

            - couch_host
            - couch_port
            - couch_db
            - couch_user
            - couch_passwd
            - use_https
            - verify_cert
            ''')

    opt_usage = '''A colon-separated key=value list.'''

    def generateTicketStore(self, argstring=""):
        scp = load_settings('caslink', syspath='/etc/caslink')
        settings = export_settings_to_dict(scp)
        ts_settings = settings.get('CouchDB', {})
        settings_xlate = {
                'host': 'couch_host',
                'port': 'couch_port',
                'db': 'couch_db',
                'user': 'couch_user',
                'passwd': 'couch_passwd',
                'https': 'use_https',
                'debug': '_debug',
            }
        temp = {}
        for k, v in ts_settings.items():
            k = settings_xlate.get(k, k)
            temp[k] = v
        ts_settings = temp
        del temp
        ts_settings.update(parse_argstring(argstring))
        missing = txcaslink.utils.get_missing_args(
                    CouchDBTicketStore.__init__, ts_settings, ['self'])
        if len(missing) > 0:
            sys.stderr.write(
                "[ERROR][CouchDBTicketStore] "
                "Missing the following settings: %s" % ', '.join(missing))
            sys.stderr.write('\n')
            sys.exit(1)
        txcaslink.utils.filter_args(CouchDBTicketStore.__init__, ts_settings, ['self', 'reactor'])
        if 'couch_port' in ts_settings:
            ts_settings['couch_port'] = int(ts_settings['couch_port'])
        for opt in ('use_https', 'verify_cert', '_debug'):
            if opt in ts_settings:
                ts_settings[opt] = get_bool(ts_settings[opt])
        obj = CouchDBTicketStore(**ts_settings)
        buf = ["[CONFIG][CouchDBTicketStore] Settings:"]
        for k in sorted(ts_settings.keys()):
            v = ts_settings[k]
            if k == 'couch_passwd':
                v = '*******'
            buf.append(" - %s: %s" % (k, v))
        sys.stderr.write('\n'.join(buf))
        sys.stderr.write('\n')
        return obj


@implementer(ITicketStore)
class CouchDBTicketStore(object):
    """
    A ticket store that uses an external CouchDB.

    Each ticket is a document `{ticket_id, value, expires}`.  Expired
    documents are treated as absent and are removed periodically.
    `popTicket` deletes the document using the revision it read, so when
    two consumers race for the same ticket CouchDB rejects the second
    delete with a conflict and only the first consumer receives the value.
    """

    poll_expired = 60 * 1

    def __init__(self, couch_host, couch_port, couch_db,
                couch_user, couch_passwd, use_https=True,
                reactor=None, _debug=False, verify_cert=True):
        if reactor is None:
            reactor = default_reactor
        self.reactor = reactor
        self._debug = _debug
        self._expire_callback = (lambda ticket, data, explicit: None)
        self._couch_host = couch_host
        self._couch_port = couch_port
        self._couch_db = couch_db
        self._couch_user = couch_user
        self._couch_passwd = couch_passwd
        if verify_cert:
            self.httpClient = createVerifyingHTTPClient(reactor)
        else:
            self.httpClient = createNonVerifyingHTTPClient(reactor)

        if use_https:
            self._scheme = 'https://'
        else:
            self._scheme = 'http://'

        self._cleaner = reactor.callLater(self.poll_expired, self._clean_expired)

    def debug(self, msg):
        if self._debug:
            log.msg(msg)

    def stopCleaning(self):
        if self._cleaner is not None and self._cleaner.active():
            self._cleaner.cancel()
        self._cleaner = None

    def _now(self):
        return datetime.datetime.fromtimestamp(self.reactor.seconds())

    def _url(self, tail=""):
        url = '''%(scheme)s%(host)s:%(port)s/%(db)s''' % {
            'scheme': self._scheme,
            'host': self._couch_host,
            'port': self._couch_port,
            'db': self._couch_db}
        return url + tail

    @defer.inlineCallbacks
    def _request(self, method, url, allowed, **kwds):
        """
        Perform an HTTP request against CouchDB.  Transport failures and
        status codes outside of `allowed` become CouchDBError.
        """
        kwds['auth'] = (self._couch_user, self._couch_passwd)
        self.debug('''[DEBUG][CouchDB] request_method="%s" url="%s"''' % (method.upper(), url))
        try:
            response = yield getattr(self.httpClient, method)(url, **kwds)
        except Exception as ex:
            raise CouchDBError("CouchDB request failed: %s %s: %s" % (method.upper(), url, ex))
        response = yield http_status_filter(response, allowed, CouchDBError)
        return response

    @defer.inlineCallbacks
    def _clean_expired(self):
        """
        Clean up any expired tickets.
        """
        try:
            url = self._url('/_design/views/_view/get_by_expires')
            params = {
                    'endkey': json.dumps(self._now().strftime(DATE_FORMAT)),
                    }
            response = yield self._request('get', url, [(200, 200)],
                        params=params,
                        headers=Headers({'Accept': ['application/json']}))
            doc = yield treq.json_content(response)
            for row in doc['rows']:
                ticket = row['value']
                try:
                    yield self._expireTicket(ticket)
                except CouchDBError as ex:
                    log.msg("CouchDB error while attempting to delete expired tickets.")
                    log.err(ex)
        except Exception as ex:
            log.err(ex)
        self._cleaner = self.reactor.callLater(self.poll_expired, self._clean_expired)

    @defer.inlineCallbacks
    def setTicket(self, ticket, value, lifespan):
        """
        Store a ticket document.
        """
        expires = self._now() + datetime.timedelta(seconds=lifespan)
        doc = json.dumps({
            'ticket_id': ticket,
            'value': value,
            'expires': expires.strftime(DATE_FORMAT),
        })
        self.debug("[DEBUG][CouchDB] setTicket(): doc: %s" % doc)
        response = yield self._request('post', self._url(), [(201, 202)],
                        data=doc,
                        headers=Headers({
                            'Accept': ['application/json'],
                            'Content-Type': ['application/json']}))
        yield treq.content(response)

    @defer.inlineCallbacks
    def _fetch_ticket(self, ticket):
        """
        Fetch a ticket representation from CouchDB.
        """
        url = self._url('/_design/views/_view/get_ticket')
        params = {'key': json.dumps(ticket)}
        response = yield self._request('get', url, [(200, 200)],
                    params=params,
                    headers=Headers({'Accept': ['application/json']}))
        doc = yield treq.json_content(response)
        rows = doc['rows']
        if len(rows) > 0:
            entry = rows[0]['value']
            entry['expires'] = parse_date(entry['expires'])
            return entry
        return None

    @defer.inlineCallbacks
    def _delete_ticket(self, _id, _rev):
        """
        Delete a ticket document.
        Returns True if this call removed it, False if it was already gone
        or was removed concurrently.
        """
        url = self._url('/%s' % _id)
        response = yield self._request('delete', url, [(200, 202), (404, 404), (409, 409)],
                            params={'rev': _rev},
                            headers=Headers({'Accept': ['application/json']}))
        yield treq.content(response)
        return response.code in (200, 202)

    def _isExpired(self, entry):
        return self._now() >= entry['expires']

    @defer.inlineCallbacks
    def getTicket(self, ticket):
        entry = yield self._fetch_ticket(ticket)
        if entry is None or self._isExpired(entry):
            return None
        return entry['value']

    @defer.inlineCallbacks
    def popTicket(self, ticket):
        entry = yield self._fetch_ticket(ticket)
        if entry is None or self._isExpired(entry):
            return None
        removed = yield self._delete_ticket(entry['_id'], entry['_rev'])
        if not removed:
            self.debug("[DEBUG][CouchDB] Lost race for ticket '%s'." % ticket)
            return None
        value = entry['value']
        self._expire_callback(ticket, value, True)
        return value

    @defer.inlineCallbacks
    def deleteTicket(self, ticket):
        entry = yield self._fetch_ticket(ticket)
        if entry is not None:
            yield self._delete_ticket(entry['_id'], entry['_rev'])

    @defer.inlineCallbacks
    def _expireTicket(self, ticket):
        """
        Remove a ticket whose lifespan ran out.
        """
        entry = yield self._fetch_ticket(ticket)
        if entry is not None:
            removed = yield self._delete_ticket(entry['_id'], entry['_rev'])
            if removed:
                self._expire_callback(ticket, entry['value'], False)

    def register_ticket_expiration_callback(self, callback):
        self._expire_callback = callback
