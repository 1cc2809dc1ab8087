"""
Networking plumbing.

    socket_server.py   TCP listener + accept loop
    connection.py      buffered, request-at-a-time reads on one client socket

Worker threads come from concurrent.futures.ThreadPoolExecutor (see
server.py).
"""

from .connection import Connection, ConnectionState, RequestTooLarge
from .socket_server import SocketServer

__all__ = ["Connection", "ConnectionState", "RequestTooLarge", "SocketServer"]
