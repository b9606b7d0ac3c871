from flask import request

from harmonia.errors import ValidationError


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def required_bool(data: dict, key: str = 'value') -> bool:
    value = data.get(key)
    if not isinstance(value, bool):
        raise ValidationError(f'{key} must be a boolean')
    return value
