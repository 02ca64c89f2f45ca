"""Process transport: spawning the language server and talking JSON-RPC to it."""

from pyrightclient.transport.channel import JsonRpcChannel, ResponseError
from pyrightclient.transport.process import ServerLauncher, ServerProcess, SubprocessLauncher

__all__ = [
    "JsonRpcChannel",
    "ResponseError",
    "ServerLauncher",
    "ServerProcess",
    "SubprocessLauncher",
]
