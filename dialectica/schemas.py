"""Structured response contracts and their Gemini responseSchema rendering."""

from typing import Any, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field

_SCALAR_TYPES: dict[type, str] = {
    str: "STRING",
    int: "INTEGER",
    float: "NUMBER",
    bool: "BOOLEAN",
}


class DisruptiveConcept(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_topic: str = Field(alias="originalTopic", description="The original concept provided by the user.")
    disruptive_concept: str = Field(alias="disruptiveConcept", description="The radically transformed concept.")


def _field_schema(annotation: Any) -> dict[str, Any]:
    if annotation in _SCALAR_TYPES:
        return {"type": _SCALAR_TYPES[annotation]}
    if get_origin(annotation) is list:
        (item,) = get_args(annotation) or (str,)
        return {"type": "ARRAY", "items": _field_schema(item)}
    raise TypeError(f"Unsupported field type for responseSchema: {annotation!r}")


def response_schema(model: type[BaseModel]) -> dict[str, Any]:
    """Render a flat pydantic model as a Gemini OBJECT schema keyed by alias."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for name, info in model.model_fields.items():
        key = info.alias or name
        prop = _field_schema(info.annotation)
        if info.description:
            prop["description"] = info.description
        properties[key] = prop
        if info.is_required():
            required.append(key)
    return {"type": "OBJECT", "properties": properties, "required": required}
