
# Standard library
from xml.dom.minidom import parseString

# Application modules
from txcaslink.constants import CAS_NAMESPACE, CODE_INVALID_REQUEST, \
                        CODE_INVALID_TICKET
from txcaslink.exceptions import InvalidService, InvalidTicket, MissingService
from txcaslink.in_memory_ticket_store import InMemoryTicketStore
from txcaslink.issuer import TicketIssuer
from txcaslink.service_matcher import PrefixServiceMatcher
from txcaslink.settings import ServerConfig
from txcaslink.validator import TicketValidator

# External modules
from twisted.internet import defer, task
from twisted.trial.unittest import TestCase


def parse_failure(xml):
    dom = parseString(xml)
    nodes = dom.getElementsByTagNameNS(CAS_NAMESPACE, 'authenticationFailure')
    node = nodes[0]
    return node.getAttribute('code'), node.firstChild.nodeValue.strip()


class TicketIssuerTest(TestCase):

    def setUp(self):
        self.clock = task.Clock()
        self.store = InMemoryTicketStore(reactor=self.clock)
        self.matcher = PrefixServiceMatcher(['https://app.example.com/'])
        self.config = ServerConfig(ticket_lifespan=30, ticket_size=32)
        self.issuer = TicketIssuer(self.store, self.matcher, self.config)

    @defer.inlineCallbacks
    def test_issue_ticket(self):
        ticket = yield self.issuer.issueTicket('jdoe', 'https://app.example.com/home')
        self.assertTrue(ticket.startswith('ST-'))
        self.assertEqual(len(ticket), 32)
        for c in ticket:
            self.assertIn(c, TicketIssuer.charset)
        value = yield self.store.getTicket(ticket)
        self.assertEqual(value, 'jdoe')

    @defer.inlineCallbacks
    def test_tickets_are_unique(self):
        tickets = set()
        for n in range(50):
            ticket = yield self.issuer.issueTicket('jdoe', 'https://app.example.com/')
            tickets.add(ticket)
        self.assertEqual(len(tickets), 50)

    @defer.inlineCallbacks
    def test_ticket_lifespan(self):
        ticket = yield self.issuer.issueTicket('jdoe', 'https://app.example.com/')
        self.clock.advance(30)
        value = yield self.store.getTicket(ticket)
        self.assertEqual(value, None)

    @defer.inlineCallbacks
    def test_invalid_service(self):
        yield self.assertFailure(
            self.issuer.issueTicket('jdoe', 'https://evil.com/'),
            InvalidService)
        self.assertEqual(self.store._tickets, {})

    @defer.inlineCallbacks
    def test_missing_service(self):
        yield self.assertFailure(self.issuer.issueTicket('jdoe', ''), MissingService)
        yield self.assertFailure(self.issuer.issueTicket('jdoe', None), MissingService)

    def test_service_url_with_ticket(self):
        self.assertEqual(
            self.issuer.serviceURLWithTicket('https://app.example.com/home', 'ST-abc'),
            'https://app.example.com/home?ticket=ST-abc')
        self.assertEqual(
            self.issuer.serviceURLWithTicket('https://app.example.com/home?x=1', 'ST-abc'),
            'https://app.example.com/home?x=1&ticket=ST-abc')


class TicketValidatorTest(TestCase):

    def setUp(self):
        self.clock = task.Clock()
        self.store = InMemoryTicketStore(reactor=self.clock)

    @defer.inlineCallbacks
    def test_consumed_on_first_validation(self):
        validator = TicketValidator(self.store)
        yield self.store.setTicket('ST-1', 'jdoe', 300)
        username = yield validator.validate('ST-1')
        self.assertEqual(username, 'jdoe')
        yield self.assertFailure(validator.validate('ST-1'), InvalidTicket)

    @defer.inlineCallbacks
    def test_not_consumed(self):
        validator = TicketValidator(self.store, consume=False)
        yield self.store.setTicket('ST-1', 'jdoe', 300)
        username = yield validator.validate('ST-1')
        self.assertEqual(username, 'jdoe')
        username = yield validator.validate('ST-1')
        self.assertEqual(username, 'jdoe')
        self.clock.advance(300)
        yield self.assertFailure(validator.validate('ST-1'), InvalidTicket)

    @defer.inlineCallbacks
    def test_unknown_and_empty_tickets(self):
        validator = TicketValidator(self.store)
        yield self.assertFailure(validator.validate('unknown123'), InvalidTicket)
        yield self.assertFailure(validator.validate(''), InvalidTicket)
        yield self.assertFailure(validator.validate(None), InvalidTicket)

    def test_render_plain(self):
        validator = TicketValidator(self.store)
        self.assertEqual(validator.render_validate_success(), "yes\n")
        self.assertEqual(validator.render_validate_failure(), "no\n")

    def test_render_success(self):
        validator = TicketValidator(self.store)
        xml = validator.render_service_validate_success('j<doe>')
        dom = parseString(xml)
        nodes = dom.getElementsByTagNameNS(CAS_NAMESPACE, 'user')
        self.assertEqual(nodes[0].firstChild.nodeValue, 'j<doe>')

    def test_render_failure_escapes_ticket(self):
        validator = TicketValidator(self.store)
        xml = validator.render_service_validate_failure(
            CODE_INVALID_TICKET, '<script>alert(1)</script>')
        self.assertNotIn('<script>', xml)
        self.assertIn('&lt;script&gt;', xml)
        code, msg = parse_failure(xml)
        self.assertEqual(code, CODE_INVALID_TICKET)
        self.assertEqual(msg, 'Ticket <script>alert(1)</script> not recognized.')

    def test_render_failure_no_ticket(self):
        validator = TicketValidator(self.store)
        xml = validator.render_service_validate_failure(CODE_INVALID_REQUEST)
        code, msg = parse_failure(xml)
        self.assertEqual(code, CODE_INVALID_REQUEST)
        self.assertEqual(msg, 'No ticket was supplied.')
