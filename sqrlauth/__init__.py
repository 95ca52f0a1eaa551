"""
sqrlauth

Server side of the SQRL passwordless authentication protocol.
"""

from .server import SqrlServer
from .tif import TransactionInformationFlag, TifSet
from .response import SqrlAuthResponse, ResponseBuilder

__all__ = [
    "SqrlServer",
    "TransactionInformationFlag",
    "TifSet",
    "SqrlAuthResponse",
    "ResponseBuilder",
]

__version__ = "0.1.0"
