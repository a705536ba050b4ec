"""Gemini model factory for platform agents."""

import copy

import google.generativeai as genai

from rental_platform.app.config import get_settings


# Fields that Pydantic v2 adds to JSON Schema but Gemini's API rejects
_UNSUPPORTED_KEYS = {
    "$defs", "definitions", "title", "default", "examples",
    "additionalProperties", "maximum", "minimum", "exclusiveMaximum",
    "exclusiveMinimum", "maxLength", "minLength", "pattern",
    "maxItems", "minItems", "uniqueItems",
}


def _inline_defs(schema: dict) -> dict:
    """Clean a Pydantic JSON Schema for Gemini consumption.

    Resolves $defs/$ref references (inlines them), collapses the
    ``anyOf: [X, null]`` shape Pydantic emits for optional fields into a
    nullable X, and strips fields the Google genai SDK doesn't support.
    """
    schema = copy.deepcopy(schema)
    defs = schema.pop("$defs", None) or schema.pop("definitions", None)

    def _resolve(node):
        if isinstance(node, dict):
            if "$ref" in node:
                ref_name = node["$ref"].rsplit("/", 1)[-1]
                if defs and ref_name in defs:
                    resolved = copy.deepcopy(defs[ref_name])
                    return _resolve(resolved)
                return node
            any_of = node.get("anyOf")
            if isinstance(any_of, list):
                non_null = [opt for opt in any_of if opt.get("type") != "null"]
                if len(non_null) == 1 and len(non_null) < len(any_of):
                    node.pop("anyOf")
                    node.update(non_null[0])
                    node["nullable"] = True
            for key in _UNSUPPORTED_KEYS:
                node.pop(key, None)
            for key, value in list(node.items()):
                node[key] = _resolve(value)
        elif isinstance(node, list):
            for i, item in enumerate(node):
                node[i] = _resolve(item)
        return node

    return _resolve(schema)


def get_model(
    model_name: str | None = None,
    temperature: float = 0.7,
    json_mode: bool = False,
    response_schema: dict | None = None,
    system_instruction: str | None = None,
):
    """Return a configured Gemini GenerativeModel instance.

    Args:
        model_name: Gemini model identifier; defaults to ``settings.gemini_model``.
        temperature: Generation temperature (0.0-2.0).
        json_mode: If True, constrain output to valid JSON.
        response_schema: Optional JSON Schema dict for structured output.
        system_instruction: Optional system-level instruction.

    Returns:
        A ``google.generativeai.GenerativeModel`` ready for generation.
    """
    settings = get_settings()
    genai.configure(api_key=settings.gemini_api_key)

    generation_config = {"temperature": temperature}
    if json_mode:
        generation_config["response_mime_type"] = "application/json"
        if response_schema:
            generation_config["response_schema"] = _inline_defs(response_schema)

    return genai.GenerativeModel(
        model_name=model_name or settings.gemini_model,
        generation_config=generation_config,
        system_instruction=system_instruction,
    )
