"""Endpoint registry: static catalog of probeable routes."""

from .endpoints import EndpointDescriptor, EndpointRegistry

__all__ = ["EndpointDescriptor", "EndpointRegistry"]
