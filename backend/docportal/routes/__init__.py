from flask import request


def json_object() -> dict:
    """Request JSON body as a dict; anything else (missing, invalid, list) reads as {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def text_field(data: dict, key: str) -> str:
    """Stripped string value of a JSON field, "" when absent or not a string."""
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""
