"""
petgo edge gateway.

Stateless proxy functions for the pet travel client (maps, place search,
beach forecasts, tourism listings, Kakao login, password reset mail, admin
user directory) plus the client-side session mirror for the hosted auth
backend.
"""

__version__ = "1.0.0"
