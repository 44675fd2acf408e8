
# Application modules
from txcaslink.couchdb_ticket_store import CouchDBTicketStoreFactory
from txcaslink.in_memory_ticket_store import InMemoryTicketStoreFactory
from txcaslink.jinja_view_provider import Jinja2ViewProviderFactory
from txcaslink.json_directory import JSONDirectoryFactory

memoryTicketStoreFactory = InMemoryTicketStoreFactory()
couchdbTicketStoreFactory = CouchDBTicketStoreFactory()
jsonDirectoryFactory = JSONDirectoryFactory()
jinja2ViewProviderFactory = Jinja2ViewProviderFactory()
