
# Standard library
import datetime
import json

# Application modules
from txcaslink.couchdb_setup import DESIGN_DOC, create_ticket_database
from txcaslink.couchdb_ticket_store import CouchDBTicketStore, DATE_FORMAT
from txcaslink.exceptions import CouchDBError
from txcaslink.in_memory_ticket_store import InMemoryTicketStore
from txcaslink.test.fakes import FakeResponse

# External modules
import mock
from twisted.internet import defer, task
from twisted.trial.unittest import TestCase


class ExpirationRecorder(object):

    def __init__(self):
        self.calls = []

    def __call__(self, ticket, data, explicit):
        self.calls.append((ticket, data, explicit))


class InMemoryTicketStoreTest(TestCase):

    def setUp(self):
        self.clock = task.Clock()
        self.store = InMemoryTicketStore(reactor=self.clock)
        self.recorder = ExpirationRecorder()
        self.store.register_ticket_expiration_callback(self.recorder)

    @defer.inlineCallbacks
    def test_set_then_get(self):
        yield self.store.setTicket('ST-1', 'jdoe', 300)
        value = yield self.store.getTicket('ST-1')
        self.assertEqual(value, 'jdoe')
        value = yield self.store.getTicket('ST-1')
        self.assertEqual(value, 'jdoe')

    @defer.inlineCallbacks
    def test_get_unknown(self):
        value = yield self.store.getTicket('ST-nope')
        self.assertEqual(value, None)

    @defer.inlineCallbacks
    def test_pop_only_once(self):
        yield self.store.setTicket('ST-1', 'jdoe', 300)
        first = yield self.store.popTicket('ST-1')
        second = yield self.store.popTicket('ST-1')
        self.assertEqual(first, 'jdoe')
        self.assertEqual(second, None)
        self.assertEqual(self.recorder.calls, [('ST-1', 'jdoe', True)])

    @defer.inlineCallbacks
    def test_pop_cancels_expiration(self):
        yield self.store.setTicket('ST-1', 'jdoe', 300)
        yield self.store.popTicket('ST-1')
        self.assertEqual(self.clock.getDelayedCalls(), [])

    @defer.inlineCallbacks
    def test_ticket_expires(self):
        yield self.store.setTicket('ST-1', 'jdoe', 300)
        self.clock.advance(299)
        value = yield self.store.getTicket('ST-1')
        self.assertEqual(value, 'jdoe')
        self.clock.advance(1)
        value = yield self.store.getTicket('ST-1')
        self.assertEqual(value, None)
        value = yield self.store.popTicket('ST-1')
        self.assertEqual(value, None)
        self.assertEqual(self.recorder.calls, [('ST-1', 'jdoe', False)])

    @defer.inlineCallbacks
    def test_reset_ticket_restarts_lifespan(self):
        yield self.store.setTicket('ST-1', 'jdoe', 300)
        self.clock.advance(200)
        yield self.store.setTicket('ST-1', 'jsmith', 300)
        self.clock.advance(200)
        value = yield self.store.getTicket('ST-1')
        self.assertEqual(value, 'jsmith')
        self.assertEqual(len(self.clock.getDelayedCalls()), 1)

    @defer.inlineCallbacks
    def test_delete(self):
        yield self.store.setTicket('ST-1', 'jdoe', 300)
        result = yield self.store.deleteTicket('ST-1')
        self.assertEqual(result, None)
        value = yield self.store.getTicket('ST-1')
        self.assertEqual(value, None)
        yield self.store.deleteTicket('ST-1')


#=======================================================================
# CouchDB
#=======================================================================

class FakeCouchDB(object):
    """
    Records the requests made by the store and answers them from
    `responses`, a list of callables (method, url, kwds) -> FakeResponse.
    """

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def _handle(self, method, url, **kwds):
        self.requests.append((method, url, kwds))
        handler = self.responses.pop(0)
        result = handler(method, url, kwds)
        if isinstance(result, Exception):
            return defer.fail(result)
        return defer.succeed(result)

    def makeClient(self):
        client = mock.Mock()
        client.get.side_effect = lambda url, **kwds: self._handle('get', url, **kwds)
        client.post.side_effect = lambda url, **kwds: self._handle('post', url, **kwds)
        client.delete.side_effect = lambda url, **kwds: self._handle('delete', url, **kwds)
        client.put.side_effect = lambda url, **kwds: self._handle('put', url, **kwds)
        return client


def json_response(code, doc):
    return lambda method, url, kwds: FakeResponse(
        code, json.dumps(doc), {'Content-Type': ['application/json']})

def ticket_row(ticket, value, expires, _id='doc1', _rev='1-abc'):
    return {
        'rows': [{
            'id': _id,
            'key': ticket,
            'value': {
                '_id': _id,
                '_rev': _rev,
                'ticket_id': ticket,
                'value': value,
                'expires': expires.strftime(DATE_FORMAT)}}]}


class CouchDBTicketStoreTest(TestCase):

    def setUp(self):
        self.clock = task.Clock()
        self.clock.advance(1000000)
        self.couch = None
        self.recorder = ExpirationRecorder()

    def makeStore(self, responses):
        self.couch = FakeCouchDB(responses)
        client = self.couch.makeClient()
        with mock.patch(
                'txcaslink.couchdb_ticket_store.createVerifyingHTTPClient',
                return_value=client):
            store = CouchDBTicketStore(
                'couch.example.edu', 6984, 'cas', 'cas_user', 's3cret',
                reactor=self.clock)
        self.addCleanup(store.stopCleaning)
        store.register_ticket_expiration_callback(self.recorder)
        return store

    def now(self):
        return datetime.datetime.fromtimestamp(self.clock.seconds())

    @defer.inlineCallbacks
    def test_set_ticket_posts_document(self):
        store = self.makeStore([json_response(201, {'ok': True})])
        yield store.setTicket('ST-1', 'jdoe', 300)
        method, url, kwds = self.couch.requests[0]
        self.assertEqual(method, 'post')
        self.assertEqual(url, 'https://couch.example.edu:6984/cas')
        self.assertEqual(kwds['auth'], ('cas_user', 's3cret'))
        doc = json.loads(kwds['data'])
        self.assertEqual(doc['ticket_id'], 'ST-1')
        self.assertEqual(doc['value'], 'jdoe')
        expected = self.now() + datetime.timedelta(seconds=300)
        self.assertEqual(doc['expires'], expected.strftime(DATE_FORMAT))

    @defer.inlineCallbacks
    def test_set_ticket_error(self):
        store = self.makeStore([json_response(500, {'error': 'oops'})])
        yield self.assertFailure(store.setTicket('ST-1', 'jdoe', 300), CouchDBError)

    @defer.inlineCallbacks
    def test_unreachable_database(self):
        store = self.makeStore([lambda method, url, kwds: ConnectionRefusedError()])
        yield self.assertFailure(store.getTicket('ST-1'), CouchDBError)

    @defer.inlineCallbacks
    def test_get_ticket(self):
        expires = self.now() + datetime.timedelta(seconds=60)
        store = self.makeStore([json_response(200, ticket_row('ST-1', 'jdoe', expires))])
        value = yield store.getTicket('ST-1')
        self.assertEqual(value, 'jdoe')
        method, url, kwds = self.couch.requests[0]
        self.assertEqual(url, 'https://couch.example.edu:6984/cas/_design/views/_view/get_ticket')
        self.assertEqual(kwds['params'], {'key': '"ST-1"'})

    @defer.inlineCallbacks
    def test_get_missing_ticket(self):
        store = self.makeStore([json_response(200, {'rows': []})])
        value = yield store.getTicket('ST-1')
        self.assertEqual(value, None)

    @defer.inlineCallbacks
    def test_get_expired_ticket(self):
        expires = self.now() - datetime.timedelta(seconds=1)
        store = self.makeStore([json_response(200, ticket_row('ST-1', 'jdoe', expires))])
        value = yield store.getTicket('ST-1')
        self.assertEqual(value, None)

    @defer.inlineCallbacks
    def test_pop_ticket(self):
        expires = self.now() + datetime.timedelta(seconds=60)
        store = self.makeStore([
            json_response(200, ticket_row('ST-1', 'jdoe', expires)),
            json_response(200, {'ok': True}),
            ])
        value = yield store.popTicket('ST-1')
        self.assertEqual(value, 'jdoe')
        method, url, kwds = self.couch.requests[1]
        self.assertEqual(method, 'delete')
        self.assertEqual(url, 'https://couch.example.edu:6984/cas/doc1')
        self.assertEqual(kwds['params'], {'rev': '1-abc'})
        self.assertEqual(self.recorder.calls, [('ST-1', 'jdoe', True)])

    @defer.inlineCallbacks
    def test_pop_ticket_lost_race(self):
        expires = self.now() + datetime.timedelta(seconds=60)
        store = self.makeStore([
            json_response(200, ticket_row('ST-1', 'jdoe', expires)),
            json_response(409, {'error': 'conflict'}),
            ])
        value = yield store.popTicket('ST-1')
        self.assertEqual(value, None)
        self.assertEqual(self.recorder.calls, [])

    @defer.inlineCallbacks
    def test_pop_expired_ticket(self):
        expires = self.now() - datetime.timedelta(seconds=1)
        store = self.makeStore([json_response(200, ticket_row('ST-1', 'jdoe', expires))])
        value = yield store.popTicket('ST-1')
        self.assertEqual(value, None)
        self.assertEqual(len(self.couch.requests), 1)

    @defer.inlineCallbacks
    def test_delete_ticket(self):
        expires = self.now() + datetime.timedelta(seconds=60)
        store = self.makeStore([
            json_response(200, ticket_row('ST-1', 'jdoe', expires)),
            json_response(200, {'ok': True}),
            ])
        yield store.deleteTicket('ST-1')
        self.assertEqual(self.couch.requests[1][0], 'delete')
        self.assertEqual(self.recorder.calls, [])

    def test_clean_expired(self):
        expires = self.now()
        store = self.makeStore([
            json_response(200, {'rows': [{'id': 'doc1', 'key': 'x', 'value': 'ST-1'}]}),
            json_response(200, ticket_row('ST-1', 'jdoe', expires)),
            json_response(200, {'ok': True}),
            ])
        self.clock.advance(store.poll_expired)
        method, url, kwds = self.couch.requests[0]
        self.assertEqual(url, 'https://couch.example.edu:6984/cas/_design/views/_view/get_by_expires')
        self.assertEqual(len(self.couch.requests), 3)
        self.assertEqual(self.recorder.calls, [('ST-1', 'jdoe', False)])
        self.assertEqual(len(self.clock.getDelayedCalls()), 1)

    def test_clean_expired_survives_errors(self):
        store = self.makeStore([json_response(500, {'error': 'oops'})])
        self.clock.advance(store.poll_expired)
        self.assertEqual(len(self.flushLoggedErrors(CouchDBError)), 1)
        self.assertEqual(len(self.clock.getDelayedCalls()), 1)


class CouchDBSetupTest(TestCase):

    url = 'https://couch.example.edu:6984/cas'

    @defer.inlineCallbacks
    def test_create(self):
        couch = FakeCouchDB([
            json_response(201, {'ok': True}),
            json_response(201, {'ok': True}),
            ])
        report = yield create_ticket_database(couch.makeClient(), self.url, 'admin', 'pw')
        self.assertEqual(report, ["Created database.", "Created design document 'views'."])
        method, url, kwds = couch.requests[1]
        self.assertEqual(url, self.url + '/_design/views')
        self.assertEqual(kwds['auth'], ('admin', 'pw'))
        self.assertEqual(json.loads(kwds['data']), DESIGN_DOC)

    @defer.inlineCallbacks
    def test_already_exists(self):
        couch = FakeCouchDB([
            json_response(412, {'error': 'file_exists'}),
            json_response(409, {'error': 'conflict'}),
            ])
        report = yield create_ticket_database(couch.makeClient(), self.url, 'admin', 'pw')
        self.assertEqual(
            report,
            ["Database already exists.", "Design document 'views' already exists."])

    @defer.inlineCallbacks
    def test_error(self):
        couch = FakeCouchDB([json_response(401, {'error': 'unauthorized'})])
        yield self.assertFailure(
            create_ticket_database(couch.makeClient(), self.url, 'admin', 'pw'),
            CouchDBError)
        self.assertEqual(len(couch.requests), 1)
