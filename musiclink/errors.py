class MusicLinkError(Exception):
    pass


class TransportError(MusicLinkError):
    """The request never produced an HTTP response."""


class TokenPersistenceError(MusicLinkError):
    """A token backend failed to write the token record."""
