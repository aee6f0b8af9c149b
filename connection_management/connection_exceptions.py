"""
Connection Management Exceptions

This module defines specialized exceptions for Elasticsearch connection management.
All of them are transport failures: they are surfaced to the caller unchanged
and never retried by the DAO layer.
"""

from index_dao_exceptions import TransportFailureError


class ConnectionError(TransportFailureError):
    """
    Base exception for all connection-related errors.

    Lets applications catch every connection problem uniformly while the
    engine status code and error type stay available on the instance.
    """
    pass


class ConnectionTimeoutError(ConnectionError):
    """
    Raised when a request to the cluster times out.

    Timeouts are enforced by the transport (``request_timeout``); the DAO
    defines no timeouts of its own.
    """
    pass


class ServerUnavailableError(ConnectionError):
    """
    Raised when no node could be reached or the cluster answered 503.

    Distinguishes server-side availability problems from client-side
    request errors.
    """
    pass


class ConnectionClosedError(ConnectionError):
    """
    Raised when attempting to use a connection manager that was closed.
    """
    pass


class ConnectionInitializationError(ConnectionError):
    """
    Raised when the shared client pool fails to create its clients.

    Signals setup problems (bad hosts, bad TLS settings) at startup rather
    than on the first request.
    """
    pass
