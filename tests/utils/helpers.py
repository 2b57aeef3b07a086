"""Test helper functions."""

import json
from typing import Any, Dict, Optional


def create_vercel_request(
    method: str = "POST",
    body: Optional[Dict[str, Any]] = None,
    query: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    if headers is None:
        headers = {
            "content-type": "application/json"
        }

    return {
        "method": method,
        "headers": headers,
        "body": json.dumps(body) if isinstance(body, dict) else (body or ""),
        "query": query or {},
    }


def response_json(response: Dict[str, Any]) -> Any:
    """Decode a handler response body."""
    return json.loads(response["body"])


class FakeStructuredModel:
    """Chat model double returning a canned structured output."""

    def __init__(self, output: Any = None, error: Optional[Exception] = None):
        self.output = output
        self.error = error
        self.prompts: list = []
        self.schema = None

    def with_structured_output(self, schema):
        self.schema = schema
        return self

    async def ainvoke(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.output
