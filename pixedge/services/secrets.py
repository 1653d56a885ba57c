"""
External secret sources, applied to ``os.environ`` before configuration is read.

Sources are tried in order (secrets file, AWS Secrets Manager, Vault KV) and
only keys carrying ``PIXEDGE_SECRETS_PREFIX`` are copied. Existing environment
values win unless ``PIXEDGE_SECRETS_OVERRIDE`` is set.
"""

from __future__ import annotations

import base64
import json
import logging
import os

import boto3
import requests
from botocore.config import Config as BotoConfig

from ..config import parse_bool

SECRETS_PREFIX = (os.environ.get("PIXEDGE_SECRETS_PREFIX") or "PIXEDGE_").strip() or "PIXEDGE_"
SECRETS_OVERRIDE = parse_bool(os.environ.get("PIXEDGE_SECRETS_OVERRIDE", "false"))
SECRETS_REQUIRED = parse_bool(os.environ.get("PIXEDGE_SECRETS_REQUIRED", "false"))
SECRETS_FILE = (os.environ.get("PIXEDGE_SECRETS_FILE") or "").strip()
AWS_SECRETS_ID = (os.environ.get("PIXEDGE_AWS_SECRETS_MANAGER_SECRET_ID") or "").strip()
AWS_REGION = (os.environ.get("PIXEDGE_AWS_REGION") or os.environ.get("AWS_REGION") or "").strip()
VAULT_ADDR = (os.environ.get("PIXEDGE_VAULT_ADDR") or os.environ.get("VAULT_ADDR") or "").strip()
VAULT_TOKEN = (os.environ.get("PIXEDGE_VAULT_TOKEN") or os.environ.get("VAULT_TOKEN") or "").strip()
VAULT_NAMESPACE = (
    os.environ.get("PIXEDGE_VAULT_NAMESPACE") or os.environ.get("VAULT_NAMESPACE") or ""
).strip()
VAULT_SECRET_PATH = (os.environ.get("PIXEDGE_VAULT_SECRET_PATH") or "").strip().lstrip("/")
VAULT_TIMEOUT_SECONDS = 5

logger = logging.getLogger("pixedge.secrets")


def _parse_secret_payload(payload: object) -> dict[str, str]:
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            return {}
    if not isinstance(payload, dict):
        return {}
    return {str(k): str(v) for k, v in payload.items()}


def _apply_secret_values(values: dict[str, str]) -> int:
    applied = 0
    for key, value in values.items():
        if not key.startswith(SECRETS_PREFIX):
            continue
        if not SECRETS_OVERRIDE and os.environ.get(key):
            continue
        os.environ[key] = value
        applied += 1
    return applied


def _load_secrets_file(path: str) -> dict[str, str]:
    if not path:
        return {}
    try:
        with open(path, encoding="utf-8") as handle:
            return _parse_secret_payload(handle.read())
    except OSError:
        return {}


def _load_aws_secrets(secret_id: str) -> dict[str, str]:
    if not secret_id:
        return {}
    client = boto3.client(
        "secretsmanager",
        region_name=AWS_REGION or None,
        config=BotoConfig(retries={"max_attempts": 3, "mode": "standard"}),
    )
    resp = client.get_secret_value(SecretId=secret_id)
    payload = resp.get("SecretString")
    if not payload and resp.get("SecretBinary") is not None:
        payload = base64.b64decode(resp["SecretBinary"]).decode("utf-8", errors="replace")
    return _parse_secret_payload(payload)


def _load_vault_secrets(addr: str, token: str, path: str, namespace: str | None) -> dict[str, str]:
    if not (addr and token and path):
        return {}
    headers = {"X-Vault-Token": token}
    if namespace:
        headers["X-Vault-Namespace"] = namespace
    resp = requests.get(f"{addr.rstrip('/')}/v1/{path}", headers=headers, timeout=VAULT_TIMEOUT_SECONDS)
    resp.raise_for_status()
    data = resp.json().get("data")
    # KV v2 nests the values one level deeper.
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]
    return _parse_secret_payload(data)


def _load_external_secrets() -> int:
    sources = (
        ("Secrets file", lambda: _load_secrets_file(SECRETS_FILE)),
        ("AWS secrets", lambda: _load_aws_secrets(AWS_SECRETS_ID)),
        (
            "Vault secrets",
            lambda: _load_vault_secrets(
                VAULT_ADDR, VAULT_TOKEN, VAULT_SECRET_PATH, VAULT_NAMESPACE or None
            ),
        ),
    )
    loaded = 0
    for label, load in sources:
        try:
            values = load()
        except Exception as exc:
            logger.warning("%s load failed: %s", label, exc)
            if SECRETS_REQUIRED:
                raise
            continue
        if values:
            loaded += _apply_secret_values(values)

    configured = SECRETS_FILE or AWS_SECRETS_ID or VAULT_SECRET_PATH
    if SECRETS_REQUIRED and configured and not loaded:
        raise RuntimeError("Failed to load required secrets")
    return loaded
