"""OpenAPI document customization.

Adds the service's API metadata, a JWT bearer security scheme and request /
response examples read from resource files to the generated document::

    app = FastAPI(**docs_kwargs(swagger_settings))
    configure_openapi(app, swagger_settings)
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from service_common.config import Document, DocumentSample, SwaggerSettings
from service_common.logging import get_logger

logger = get_logger(__name__)

SECURITY_SCHEME_NAME = "Bearer"
SECURITY_SCHEME: dict[str, str] = {
    "type": "apiKey",
    "name": "Authorization",
    "in": "header",
    "bearerFormat": "JWT",
}
JSON_MEDIA_TYPE = "application/json"
OK = "200"
BAD_REQUEST = "400"
CLASSPATH_PREFIX = "classpath:"


def docs_kwargs(settings: SwaggerSettings) -> dict[str, Any]:
    """FastAPI constructor arguments that turn the schema and both doc UIs off when disabled."""
    if settings.enabled:
        return {}
    return {"openapi_url": None, "docs_url": None, "redoc_url": None}


def read_resource(location: str | None, root: str | Path = ".") -> str:
    """Text of a resource file, or "" when it is unset or cannot be read.

    ``classpath:`` prefixes and leading slashes are dropped; the rest is
    resolved against ``root``.
    """
    if not location:
        return ""
    relative = location.removeprefix(CLASSPATH_PREFIX).lstrip("/")
    try:
        return (Path(root) / relative).read_text(encoding="utf-8")
    except OSError:
        logger.debug("resource_not_found", location=location)
        return ""


def configure_openapi(app: FastAPI, settings: SwaggerSettings) -> None:
    """Replace ``app.openapi`` with a generator that applies the settings.

    The document is built once, on first request, and cached on the app.
    """

    def openapi() -> dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=settings.title,
            version=settings.version,
            description=settings.description,
            terms_of_service=settings.terms_of_service_url,
            contact=_contact(settings),
            license_info=_license(settings),
            routes=app.routes,
            servers=app.servers,
        )
        add_security(schema)
        add_examples(schema, settings.document_samples, settings.resource_root)
        app.openapi_schema = schema
        return schema

    app.openapi = openapi  # type: ignore[method-assign]


def add_security(schema: dict[str, Any]) -> None:
    components = schema.setdefault("components", {})
    components.setdefault("securitySchemes", {})[SECURITY_SCHEME_NAME] = dict(SECURITY_SCHEME)
    schema["security"] = [{SECURITY_SCHEME_NAME: []}]


def add_examples(
    schema: dict[str, Any], samples: list[DocumentSample], root: str | Path = "."
) -> None:
    """Attach each sample's examples to its endpoint's POST operation.

    Request examples go to the JSON request body, success examples to the
    JSON 200 response and failure examples to the JSON 400 response. A
    missing operation or content node is skipped.
    """
    for sample in samples:
        post = schema.get("paths", {}).get(sample.endpoint, {}).get("post")
        if post is None:
            logger.debug("document_sample_skipped", endpoint=sample.endpoint)
            continue

        request_content = _json_content(post.get("requestBody"))
        ok_content = _json_content(post.get("responses", {}).get(OK))
        bad_request_content = _json_content(post.get("responses", {}).get(BAD_REQUEST))

        for name, document in sample.document_map.items():
            _add_example(request_content, name, document, root, _request_parts)
            _add_example(ok_content, name, document, root, _success_parts)
            _add_example(bad_request_content, name, document, root, _failure_parts)


def _json_content(node: dict[str, Any] | None) -> dict[str, Any] | None:
    if node is None:
        return None
    return node.get("content", {}).get(JSON_MEDIA_TYPE)


def _request_parts(document: Document) -> tuple[str | None, str | None]:
    return document.request, document.request_description


def _success_parts(document: Document) -> tuple[str | None, str | None]:
    return document.success_response, document.success_response_description


def _failure_parts(document: Document) -> tuple[str | None, str | None]:
    return document.fail_response, document.fail_response_description


def _add_example(
    content: dict[str, Any] | None,
    name: str,
    document: Document,
    root: str | Path,
    parts: Callable[[Document], tuple[str | None, str | None]],
) -> None:
    if content is None:
        return
    value_location, description_location = parts(document)
    content.setdefault("examples", {})[name] = {
        "description": read_resource(description_location, root),
        "value": _example_value(read_resource(value_location, root)),
    }


def _example_value(text: str) -> Any:
    """JSON resources are embedded as JSON; anything else as the raw text."""
    if not text.strip():
        return text
    try:
        return json.loads(text)
    except ValueError:
        return text


def _contact(settings: SwaggerSettings) -> dict[str, str] | None:
    contact = {
        key: value
        for key, value in (
            ("name", settings.contact_name),
            ("url", settings.contact_url),
            ("email", settings.contact_email),
        )
        if value
    }
    return contact or None


def _license(settings: SwaggerSettings) -> dict[str, str] | None:
    if not settings.license:
        return None
    info = {"name": settings.license}
    if settings.license_url:
        info["url"] = settings.license_url
    return info
