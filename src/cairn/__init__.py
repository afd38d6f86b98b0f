"""
Cairn: transactional, field-encrypting persistence core for key-value stores.

Maps field values onto a networked key-value store through a single codec,
with key-versioned authenticated encryption for sensitive fields and
reentrant atomic units of work over a pooled connection.
"""

__version__ = "0.1.0"
