"""Constant response bodies, serialized once when the module is imported."""

import json
from typing import Any

from bench_server.domain.http_types import StaticPayload

PAGE_TITLE = "HTTP(S) Benchmark Server"

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
JSON_CONTENT_TYPE = "application/json"

INDEX_HTML = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset='utf-8'>
    <title>{PAGE_TITLE}</title>
    <link rel='stylesheet' type='text/css' media='screen' href='main.css'>
    <script src='main.js'></script>
</head>
<body>
    <div style="text-align:center;">
        <h1>{PAGE_TITLE}</h1>
    </div>
</body>
</html>
"""

ORIGIN = "113.200.214.222"

GET_DOCUMENT: dict[str, Any] = {
    "args": {},
    "headers": {
        "Accept": "application/json",
        "Accept-Encoding": "gzip, deflate",
        "Accept-Language": "en-US,en;q=0.5",
        "Host": "www.httpbin.org",
        "Referer": "http://www.httpbin.org/",
        "User-Agent": (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.14; rv:104.0) "
            "Gecko/20100101 Firefox/104.0"
        ),
        "X-Amzn-Trace-Id": "Root=1-632dce82-279a47540dd200b652a8cb02",
    },
    "origin": ORIGIN,
    "url": "http://www.httpbin.org/get",
}


def _body_echo_document(path: str) -> dict[str, Any]:
    """httpbin shaped echo of an empty-bodied request to ``path``."""
    return {
        "args": {},
        "data": "",
        "files": {},
        "form": {},
        "headers": {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Accept-Language": "zh-cn",
            "Content-Length": "0",
            "Host": "httpbin.org",
            "Origin": "http://httpbin.org",
            "Referer": "http://httpbin.org/",
            "User-Agent": (
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_14_6) "
                "AppleWebKit/605.1.15 (KHTML, like Gecko) "
                "Version/14.1.2 Safari/605.1.15"
            ),
            "X-Amzn-Trace-Id": "Root=1-632dd138-2243642a76ba30163e857a96",
        },
        "json": None,
        "origin": ORIGIN,
        "url": f"http://httpbin.org{path}",
    }


POST_DOCUMENT = _body_echo_document("/post")
PUT_DOCUMENT = _body_echo_document("/put")
DELETE_DOCUMENT = _body_echo_document("/delete")


def _json_payload(document: dict[str, Any]) -> StaticPayload:
    return StaticPayload(JSON_CONTENT_TYPE, json.dumps(document, indent=2).encode())


INDEX_PAYLOAD = StaticPayload(HTML_CONTENT_TYPE, INDEX_HTML.encode())
GET_PAYLOAD = _json_payload(GET_DOCUMENT)
POST_PAYLOAD = _json_payload(POST_DOCUMENT)
PUT_PAYLOAD = _json_payload(PUT_DOCUMENT)
DELETE_PAYLOAD = _json_payload(DELETE_DOCUMENT)
