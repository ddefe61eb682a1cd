# shared/utils.py
import json
import logging
from typing import Any

from pydantic import ValidationError

from .pydantic_models import ContactInfo

logger = logging.getLogger(__name__)


def decode_contact_info(raw: Any) -> ContactInfo:
    """
    Decode a ``contact_info`` payload into a ContactInfo.

    Accepts a ContactInfo, a dict, or a JSON string holding an object. Any
    other shape, unparsable JSON, or a payload that fails validation decodes
    to an empty ContactInfo. Never raises.
    """
    if isinstance(raw, ContactInfo):
        return raw

    if raw is None or raw == '':
        return ContactInfo()

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError:
            logger.warning("contact_info is not valid UTF-8, using empty contact info")
            return ContactInfo()

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("contact_info is not valid JSON, using empty contact info")
            return ContactInfo()

    if not isinstance(raw, dict):
        logger.warning(f"contact_info has unexpected type {type(raw).__name__}, using empty contact info")
        return ContactInfo()

    try:
        return ContactInfo.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"contact_info failed validation ({e.error_count()} errors), using empty contact info")
        return ContactInfo()


def encode_contact_info(raw: Any) -> dict:
    """Decode then dump to the JSON-safe dict stored in the database."""
    return decode_contact_info(raw).model_dump(exclude_none=True)
