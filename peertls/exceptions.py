"""
We use builtin exceptions where they fit and specialize where necessary.

- Every exception that might be externally visible to users shall be a subclass
  of PeerTlsException.
- TlsConfigFatal marks a security configuration that must not be used in any
  partially-resolved form. Callers translate it into a startup failure.
- TlsContextError is raised by TLS backends when a single operation on a
  context fails. Context construction logs it and carries on.
"""


class PeerTlsException(Exception):
    """
    Base class for all exceptions thrown by peertls.
    """

    def __init__(self, message=None):
        super().__init__(message)


class TlsConfigFatal(PeerTlsException):
    """
    Malformed security configuration or no usable TLS library.
    """


class TlsContextError(PeerTlsException):
    pass


class OptionsError(PeerTlsException):
    pass
