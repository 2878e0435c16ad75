"""CiviCRM access layer: command building, process invocation, decoding, client."""

from civitools.crm.client import CiviCRMClient
from civitools.crm.errors import CiviCRMError, DecodeError, ProcessError

__all__ = ["CiviCRMClient", "CiviCRMError", "DecodeError", "ProcessError"]
