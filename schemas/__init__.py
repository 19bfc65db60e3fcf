from flask import request
from pydantic import ValidationError as SchemaError

from services.errors import ValidationError


def parse_body(model):
    """Validate the JSON body against ``model`` or raise a 400 ValidationError."""
    data = request.get_json(silent=True) or {}
    try:
        return model.model_validate(data)
    except SchemaError as exc:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError("Invalid request body", details=details) from exc
