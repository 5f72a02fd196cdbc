"""Frishta API: account registration, email OTP verification and session auth."""

__version__ = "0.1.0"
