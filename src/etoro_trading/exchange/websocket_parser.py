"""
WebSocket data parser for converting raw eToro frames to typed models.

Inbound data frames are envelopes of the form
    {"messages": [{"topic": ..., "content": "<json string>", "id": ..., "type": ...}]}

Each entry is classified by topic:
    instrument:<id>  -> InstrumentRate for that instrument
    private          -> PrivateEvent (order / position lifecycle)
    anything else    -> unknown, raw entry preserved

The functions here are pure; they never touch the network or emit events.
"""

import json
from typing import Any, Dict, List, Optional

from .models import InstrumentRate, MessageKind, ParsedMessage, PrivateEvent
from ..utils.logger import get_logger


logger = get_logger(__name__)

INSTRUMENT_TOPIC_PREFIX = "instrument:"
PRIVATE_TOPIC = "private"
AUTH_OPERATION = "Authenticate"


def parse_envelope(text: str) -> Dict[str, Any]:
    """
    Decode one raw frame.

    Raises:
        json.JSONDecodeError: If the frame is not valid JSON
    """
    return json.loads(text)


def parse_messages(envelope: Dict[str, Any]) -> List[ParsedMessage]:
    """
    Classify every entry of an envelope, in input order.

    An entry with a recognized topic but malformed content is logged and
    skipped; the rest of the batch is still returned.

    Args:
        envelope: Decoded frame containing a `messages` list

    Returns:
        List of ParsedMessage
    """
    results: List[ParsedMessage] = []

    for entry in envelope.get("messages") or []:
        topic = entry.get("topic", "") if isinstance(entry, dict) else ""

        try:
            if topic.startswith(INSTRUMENT_TOPIC_PREFIX):
                instrument_id = int(topic[len(INSTRUMENT_TOPIC_PREFIX):])
                rate = InstrumentRate.from_payload(_content(entry))
                results.append(ParsedMessage(
                    kind=MessageKind.INSTRUMENT_RATE,
                    instrument_id=instrument_id,
                    rate=rate,
                    raw=entry
                ))

            elif topic == PRIVATE_TOPIC:
                event = PrivateEvent.from_payload(_content(entry))
                results.append(ParsedMessage(
                    kind=MessageKind.PRIVATE_EVENT,
                    instrument_id=event.instrument_id,
                    event=event,
                    raw=entry
                ))

            else:
                results.append(ParsedMessage(kind=MessageKind.UNKNOWN, raw=entry))

        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            # json.JSONDecodeError is a ValueError, decimal errors are ArithmeticError
            logger.error(
                "Failed to parse message entry",
                topic=topic,
                error=str(e)
            )

    return results


def is_auth_response(frame: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Classify a decoded frame as an authentication response.

    Returns:
        None if the frame is not an auth response, otherwise
        {"success": bool, "error_code": Optional[str]}
    """
    if frame.get("operation") != AUTH_OPERATION and frame.get("type") != AUTH_OPERATION:
        return None

    if frame.get("success") is True or frame.get("status") == "success":
        return {"success": True, "error_code": None}

    error_code = frame.get("errorCode")
    if error_code:
        return {"success": False, "error_code": str(error_code)}

    # An Authenticate response without an error is a success
    return {"success": True, "error_code": None}


def _content(entry: Dict[str, Any]) -> Dict[str, Any]:
    content = entry["content"]
    if isinstance(content, (str, bytes)):
        content = json.loads(content)
    if not isinstance(content, dict):
        raise TypeError(f"content must be an object, got {type(content).__name__}")
    return content
