"""Reusable list-page machinery shared by every back-office page."""

from backoffice.lists.controller import DeleteIntent, ListController, ListSpec, MutationMode
from backoffice.lists.results import Err, ErrorKind, Ok, Result
from backoffice.lists.transport import ResourceClient, ResourceEndpoint

__all__ = [
    "DeleteIntent",
    "Err",
    "ErrorKind",
    "ListController",
    "ListSpec",
    "MutationMode",
    "Ok",
    "ResourceClient",
    "ResourceEndpoint",
    "Result",
]
