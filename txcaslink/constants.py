
# Page views
VIEW_INSUFFICIENT = 'insufficient'
VIEW_AUTH_FAILED = 'auth_failed'
VIEW_INVALID_SERVICE = 'invalid_service'
VIEW_ERROR_5XX = 'error5xx'
VIEW_NOT_FOUND = 'not_found'

ALL_VIEWS = (
    VIEW_INSUFFICIENT,
    VIEW_AUTH_FAILED,
    VIEW_INVALID_SERVICE,
    VIEW_ERROR_5XX,
    VIEW_NOT_FOUND,
)

# CAS protocol
CAS_NAMESPACE = 'http://www.yale.edu/tp/cas'
CODE_INVALID_TICKET = 'INVALID_TICKET'
CODE_INVALID_REQUEST = 'INVALID_REQUEST'
CODE_INTERNAL_ERROR = 'INTERNAL_ERROR'
SERVICE_TICKET_PREFIX = 'ST-'
