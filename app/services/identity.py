import re

TRANSPORT_PREFIX = "whatsapp:"

_NON_DIAL_CHARS = re.compile(r"[^+\d]")


def normalize_recipient(raw: object) -> str:
    """Canonicalize a recipient identity into the key used for conversation state.

    "whatsapp:+1 (555) 010", "+1555010" and "1555010" all map to
    "whatsapp:+1555010". Total and idempotent; never raises.
    """
    value = "" if raw is None else str(raw).strip()
    if value.lower().startswith(TRANSPORT_PREFIX):
        value = value[len(TRANSPORT_PREFIX):]
    value = _NON_DIAL_CHARS.sub("", value)
    if not value.startswith("+"):
        value = f"+{value}"
    return f"{TRANSPORT_PREFIX}{value}"


def is_blank_recipient(raw: object) -> bool:
    if raw is None:
        return True
    return not str(raw).strip()
