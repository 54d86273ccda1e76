"""
Authenticate users by logging in to a remote IMAP server.
"""

__version__ = "1.0.0"
