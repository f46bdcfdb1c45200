"""Validation of structured LLM extraction responses."""

import json

from pydantic import ValidationError

from dish_graph_pipeline.exceptions import SchemaViolationError
from dish_graph_pipeline.models import ExtractionResponse, MentionRecord


def _strip_code_fences(content: str) -> str:
    content = content.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]
        if content.endswith("```"):
            content = content[:-3]
        content = content.strip()
    return content


def parse_extraction_response(content: str | None, source_id: str) -> list[MentionRecord]:
    """Parse and validate an LLM response into mention records.

    Args:
        content: Raw message content from the model.
        source_id: Id of the unit being extracted, for error reporting.

    Returns:
        Validated mention records.

    Raises:
        SchemaViolationError: If the content is not JSON or does not match
            the mention schema.
    """
    if not content or not content.strip():
        raise SchemaViolationError(source_id, "empty response", content or "")

    cleaned = _strip_code_fences(content)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SchemaViolationError(source_id, f"invalid JSON: {e}", content) from e

    # A bare list of mentions is accepted
    if isinstance(payload, list):
        payload = {"mentions": payload}
    if not isinstance(payload, dict) or "mentions" not in payload:
        raise SchemaViolationError(source_id, "missing 'mentions' key", content)

    try:
        return ExtractionResponse.model_validate(payload).mentions
    except ValidationError as e:
        raise SchemaViolationError(
            source_id, f"{e.error_count()} validation error(s)", content
        ) from e
