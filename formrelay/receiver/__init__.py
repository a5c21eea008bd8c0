from .server import StubEndpointServer

__all__ = ["StubEndpointServer"]
