"""A small key/value plugin.

Run it under a host, or directly with the host's environment faked:

    TF_PLUGIN_MAGIC_COOKIE=d602bf8f470bc67ca7faa0386276bbdd4330efaf76d1a219cb4d6991ca9872b2 \
        python -m pluginwire serve examples.kv_plugin:service
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from pluginwire.codec import BOOL, STRING, List, Map, Object
from pluginwire.domain import DomainService

STORE_PATH = Path(os.environ.get("KV_PLUGIN_STORE", str(Path.home() / ".pluginwire" / "kv.json")))

PUT_REQUEST = Object.of({"key": STRING, "value": STRING, "tags": List(STRING)}, optional=["tags"])
GET_REQUEST = Object.of({"key": STRING})
GET_RESPONSE = Object.of({"found": BOOL, "value": STRING}, optional=["value"])
LIST_RESPONSE = Map(STRING)

service = DomainService("kv.KeyValue")
_data: dict[str, str] = {}
_lock = threading.Lock()


def put(request: dict) -> dict:
    with _lock:
        _data[request["key"]] = request["value"]
        snapshot = json.dumps(_data, sort_keys=True)
    # a kill mid-write must not leave a torn file
    with service.commit_point("kv.persist"):
        STORE_PATH.parent.mkdir(parents=True, exist_ok=True)
        tmp = STORE_PATH.with_suffix(".tmp")
        tmp.write_text(snapshot, encoding="utf-8")
        tmp.replace(STORE_PATH)
    return {"found": True, "value": request["value"]}


def get(request: dict) -> dict:
    with _lock:
        value = _data.get(request["key"])
    return {"found": value is not None, "value": value}


def list_all(_request: dict) -> dict:
    with _lock:
        return dict(_data)


service.register_typed("Put", put, PUT_REQUEST, GET_RESPONSE)
service.register_typed("Get", get, GET_REQUEST, GET_RESPONSE)
service.register_typed("List", list_all, Object.of({}), LIST_RESPONSE)
