"""
Parameter Resolution
====================

Proxy functions accept their parameters from the URL query string and from
a JSON body. ``resolve`` merges the two without touching the request object:

1. Each parameter is read from the query string (empty strings are unset).
2. Anything still unset is filled from the body, if the body is a mapping.
3. Declared defaults are applied.
4. A label lookup may substitute a numeric code from a human label
   (e.g. beach name -> beach number) when the code itself is absent.
5. Required parameters that are still unset raise ``MissingParameter``.

``resolve_request`` is the async adapter used by the routes: it only reads
the body when the query string left something unset, and treats a body that
is not valid JSON as absent.
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from fastapi import Request
from pydantic import BaseModel

from ..errors import MissingParameter

logger = logging.getLogger(__name__)


class Param(BaseModel):
    """One expected parameter."""
    name: str
    required: bool = False
    default: Optional[Any] = None


class LabelLookup(BaseModel):
    """
    Named-to-numeric substitution table.

    Attributes:
        code_param: Parameter holding the numeric code (e.g. ``beach_num``)
        label_param: Parameter holding the human label (e.g. ``beach_name``)
        table: Label -> code
        available_key: Error body key listing the valid labels
    """
    code_param: str
    label_param: str
    table: Dict[str, int]
    available_key: str = "available"

    def label_for(self, code: Any) -> Optional[str]:
        """Reverse lookup; None when the code is not in the table."""
        try:
            number = int(code)
        except (TypeError, ValueError):
            return None
        for label, value in self.table.items():
            if value == number:
                return label
        return None


class ParamSpec(BaseModel):
    params: List[Param]
    label_lookup: Optional[LabelLookup] = None
    missing_message: Optional[str] = None


class ResolvedParams(dict):
    """Resolved parameter values; unset optional parameters map to None."""

    def present(self, name: str) -> bool:
        return self.get(name) is not None


def _is_set(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and value.strip() == "":
        return False
    return True


def resolve(
    query: Mapping[str, Any],
    body: Optional[Any],
    spec: ParamSpec,
) -> ResolvedParams:
    """
    Resolve parameters from query first, then body.

    Args:
        query: Query string values
        body: Parsed JSON body, or None when absent/unparseable
        spec: Expected parameters

    Returns:
        ResolvedParams with one entry per declared parameter

    Raises:
        MissingParameter: If a required parameter is unset in both sources
    """
    values = ResolvedParams()
    for param in spec.params:
        values[param.name] = query.get(param.name) if _is_set(query.get(param.name)) else None

    if isinstance(body, Mapping):
        for param in spec.params:
            if values[param.name] is None and _is_set(body.get(param.name)):
                values[param.name] = body.get(param.name)

    for param in spec.params:
        if values[param.name] is None and param.default is not None:
            values[param.name] = param.default

    lookup = spec.label_lookup
    if lookup is not None:
        label = values.get(lookup.label_param)
        if values.get(lookup.code_param) is None and _is_set(label):
            code = lookup.table.get(str(label).strip())
            if code is not None:
                values[lookup.code_param] = str(code)

    missing = [p.name for p in spec.params if p.required and values[p.name] is None]
    if missing:
        available = list(lookup.table) if lookup is not None else None
        raise MissingParameter(
            missing,
            message=spec.missing_message,
            available=available,
            available_key=lookup.available_key if lookup is not None else "available",
        )

    return values


async def read_json_body(request: Request) -> Optional[Any]:
    """
    Parse the request body as JSON.

    Returns:
        Parsed body, or None when the body is empty or not JSON.
    """
    if request.method in ("GET", "HEAD"):
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        logger.debug("Ignoring request body that is not JSON", extra={"path": request.url.path})
        return None


async def resolve_request(request: Request, spec: ParamSpec) -> ResolvedParams:
    """Resolve ``spec`` against a live request; the body is read only when needed."""
    query = dict(request.query_params)
    needs_body = any(not _is_set(query.get(p.name)) for p in spec.params)
    body = await read_json_body(request) if needs_body else None
    return resolve(query, body, spec)
