

#=======================================================================
# Exceptions
#=======================================================================

class CASError(Exception):
    pass

class InvalidTicket(CASError):
    pass

class InvalidService(CASError):
    pass

class MissingService(InvalidService):
    pass

class StoreError(CASError):
    pass

class CouchDBError(StoreError):
    pass

class DirectoryError(CASError):
    pass

class InsufficientIdentity(CASError):
    pass

class UpstreamValidationError(CASError):
    pass

class ViewNotImplementedError(CASError):
    pass

class BadRequestError(CASError):
    pass
