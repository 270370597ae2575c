"""
Response helpers for version-tagged resources: ETag / Cache-Control headers
and the body-less 304.
"""
from flask import Response, current_app, jsonify, request


def if_none_match() -> str | None:
    return request.headers.get("If-None-Match")


def if_match() -> str | None:
    return request.headers.get("If-Match")


def _cache_headers(response, etag: str, max_age: int):
    response.headers["ETag"] = etag
    if max_age > 0:
        response.headers["Cache-Control"] = f"private, max-age={max_age}, must-revalidate"
        response.headers["Vary"] = "Authorization"
    else:
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


def _max_age(collection: bool) -> int:
    settings = current_app.extensions["settings"]
    return settings.cache_max_age_collection if collection else settings.cache_max_age_resource


def not_modified(etag: str, collection: bool = False) -> Response:
    return _cache_headers(Response(status=304), etag, _max_age(collection))


def tagged_json(payload, etag: str, status: int = 200, collection: bool = False) -> Response:
    response = jsonify(payload)
    response.status_code = status
    return _cache_headers(response, etag, _max_age(collection))
