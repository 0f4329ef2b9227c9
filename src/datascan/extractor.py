"""Flatten one trace into field locations and classify each leaf value."""

import json
import logging
from typing import Any, Optional

from .catalog import DataClassCatalog
from .errors import ValidationError
from .matcher import PatternMatcher
from .models import DataSection, Pair, Trace

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64
ARRAY_SEGMENT = "[]"
DEFAULT_CONTENT_TYPE = "*/*"
REQUEST_STATUS_CODE = -1


def field_key(status_code: int, content_type: str, data_section: str, data_path: str = "") -> str:
    """Build the location key shared by extracted maps and persisted fields."""
    suffix = f".{data_path}" if data_path else ""
    return f"{status_code}_{content_type}_{data_section}{suffix}"


def get_content_type(headers: list[Pair]) -> str:
    """Media type from a Content-Type header, without parameters."""
    for header in headers:
        if header.name.lower() == "content-type" and header.value:
            return header.value.split(";", 1)[0].strip().lower() or DEFAULT_CONTENT_TYPE
    return DEFAULT_CONTENT_TYPE


def extract_path_params(template: str, path: str) -> dict[str, str]:
    """Pull ``{param}`` segment values out of a concrete request path.

    Returns an empty mapping when the path does not fit the template.
    """
    template_parts = template.strip("/").split("/")
    path_parts = path.split("?", 1)[0].strip("/").split("/")
    if len(template_parts) != len(path_parts):
        return {}

    params: dict[str, str] = {}
    for tmpl, value in zip(template_parts, path_parts):
        if tmpl.startswith("{") and tmpl.endswith("}") and len(tmpl) > 2:
            params[tmpl[1:-1]] = value
        elif tmpl != value:
            return {}
    return params


def parse_body(body: Optional[str]) -> Any:
    """Decode a body as JSON, falling back to the raw text.

    Bodies nested too deeply for the decoder are also kept as raw text.
    """
    if body is None or body == "":
        return None
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        return body
    except RecursionError:
        logger.debug("Body nested too deeply to decode, classifying it as raw text")
        return body


class FieldPathExtractor:
    """Walks one trace and maps each field location to the classes found there.

    Nested JSON is visited recursively. Array elements collapse onto one
    ``[]`` path segment, so ``{"users": [{"email": ...}]}`` yields the
    location ``users.[].email``.
    """

    def __init__(self, catalog: DataClassCatalog, max_depth: int = DEFAULT_MAX_DEPTH):
        self.matcher = PatternMatcher(catalog)
        self.max_depth = max_depth

    def extract(self, trace: Trace, endpoint_path: Optional[str] = None) -> dict[str, set[str]]:
        """Classify every leaf of ``trace``.

        Args:
            trace: The sampled request/response pair.
            endpoint_path: Endpoint path template used to recover path params.

        Returns:
            Mapping of field-location key to matched class names.

        Raises:
            ValidationError: If ``trace`` is not a usable trace.
        """
        if not isinstance(trace, Trace):
            raise ValidationError(f"Expected a Trace, got {type(trace).__name__}")

        result: dict[str, set[str]] = {}

        if endpoint_path:
            for name, value in extract_path_params(endpoint_path, trace.path).items():
                self._visit(value, REQUEST_STATUS_CODE, "", DataSection.REQUEST_PATH, name, 0, result)

        for param in trace.request_parameters:
            self._visit(param.value, REQUEST_STATUS_CODE, "", DataSection.REQUEST_QUERY, param.name, 0, result)

        for header in trace.request_headers:
            self._visit(
                header.value, REQUEST_STATUS_CODE, "", DataSection.REQUEST_HEADER, header.name.lower(), 0, result
            )

        request_body = parse_body(trace.request_body)
        if request_body is not None:
            content_type = get_content_type(trace.request_headers)
            self._visit(request_body, REQUEST_STATUS_CODE, content_type, DataSection.REQUEST_BODY, "", 0, result)

        status = trace.response_status
        for header in trace.response_headers:
            self._visit(header.value, status, "", DataSection.RESPONSE_HEADER, header.name.lower(), 0, result)

        response_body = parse_body(trace.response_body)
        if response_body is not None:
            content_type = get_content_type(trace.response_headers)
            self._visit(response_body, status, content_type, DataSection.RESPONSE_BODY, "", 0, result)

        return result

    def _visit(
        self,
        value: Any,
        status_code: int,
        content_type: str,
        section: DataSection,
        path: str,
        depth: int,
        result: dict[str, set[str]],
    ) -> None:
        if depth > self.max_depth:
            logger.debug(f"Depth limit {self.max_depth} reached at {section.value}.{path}")
            return

        if isinstance(value, dict):
            for key, child in value.items():
                child_path = f"{path}.{key}" if path else str(key)
                self._visit(child, status_code, content_type, section, child_path, depth + 1, result)
            return

        if isinstance(value, list):
            child_path = f"{path}.{ARRAY_SEGMENT}" if path else ARRAY_SEGMENT
            for child in value:
                self._visit(child, status_code, content_type, section, child_path, depth + 1, result)
            return

        key = field_key(status_code, content_type, section.value, path)
        result.setdefault(key, set()).update(self.matcher.match(value))
