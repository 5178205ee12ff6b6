class FBSError(Exception):
    """Base class for errors raised by the backup service."""


class ConfigError(FBSError):
    pass


class NotifierError(FBSError):
    pass


class ServiceStateError(FBSError):
    pass
