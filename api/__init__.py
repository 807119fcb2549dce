"""API module for the PaySSD gateway."""

from .gateway_api import create_app, GatewayAPI

__all__ = ['create_app', 'GatewayAPI']
