# sqrlauth/errors.py


class SqrlError(Exception):
    """Base class for errors raised by this package."""


class InvalidNut(SqrlError, ValueError):
    """A nut string could not be decoded or failed authentication."""


class MalformedRequest(SqrlError, ValueError):
    """The client parameter block is missing, undecodable or incomplete."""
