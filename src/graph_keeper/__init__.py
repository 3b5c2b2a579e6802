"""Bind chat users to Microsoft Graph accounts and keep them active."""

__version__ = "0.1.0"
