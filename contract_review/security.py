from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from contract_review.errors import Unauthorized
from contract_review.models import IdentityContext, Role


def _split_csv(raw: str) -> list[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


def _b64url_decode(raw: str) -> bytes:
    padded = raw + "=" * ((4 - len(raw) % 4) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if value.strip().isdigit():
            return int(value.strip())
    return None


def redact_sensitive(value: object) -> object:
    sensitive_keys = {"authorization", "token", "secret", "password", "api_key", "apikey", "access_token"}
    if isinstance(value, dict):
        redacted: dict[str, object] = {}
        for key, item in value.items():
            if str(key).lower() in sensitive_keys:
                redacted[str(key)] = "***REDACTED***"
            else:
                redacted[str(key)] = redact_sensitive(item)
        return redacted
    if isinstance(value, list):
        return [redact_sensitive(x) for x in value]
    if isinstance(value, str):
        if len(value) >= 24 and any(k in value.lower() for k in ("sk-", "bearer ", "token")):
            return "***REDACTED***"
    return value


@dataclass
class AuthContext:
    subject: str
    role: str
    claims: dict[str, Any]

    def identity(self) -> IdentityContext:
        return IdentityContext(account_id=self.subject, role=Role(self.role))


@dataclass
class JwtSecurityConfig:
    enabled: bool
    issuer: str
    audience: str
    shared_secret: str
    required_claims: list[str]
    role_claim: str
    log_redaction_enabled: bool

    @classmethod
    def from_env(cls) -> "JwtSecurityConfig":
        issuer = os.environ.get("JWT_ISSUER", "").strip()
        audience = os.environ.get("JWT_AUDIENCE", "").strip()
        shared_secret = os.environ.get("JWT_SHARED_SECRET", "").strip()
        required_claims = _split_csv(os.environ.get("JWT_REQUIRED_CLAIMS", "sub,role,exp"))
        enabled = bool(issuer or audience or shared_secret)
        redaction_raw = os.environ.get("SECURITY_LOG_REDACTION_ENABLED", "").strip().lower()
        return cls(
            enabled=enabled,
            issuer=issuer,
            audience=audience,
            shared_secret=shared_secret,
            required_claims=required_claims,
            role_claim=os.environ.get("JWT_ROLE_CLAIM", "role").strip() or "role",
            log_redaction_enabled=(redaction_raw in {"1", "true", "yes", "on"}) if redaction_raw else True,
        )


def _parse_token_parts(token: str) -> tuple[dict[str, Any], dict[str, Any], str, str]:
    parts = token.split(".")
    if len(parts) != 3:
        raise Unauthorized("invalid token format")
    header_raw, payload_raw, signature_raw = parts
    try:
        header_obj = json.loads(_b64url_decode(header_raw))
        payload_obj = json.loads(_b64url_decode(payload_raw))
    except (json.JSONDecodeError, ValueError, TypeError):
        raise Unauthorized("invalid token payload") from None
    if not isinstance(header_obj, dict) or not isinstance(payload_obj, dict):
        raise Unauthorized("invalid token payload")
    return header_obj, payload_obj, f"{header_raw}.{payload_raw}", signature_raw


def parse_and_validate_bearer_token(*, authorization: str | None, cfg: JwtSecurityConfig) -> AuthContext:
    if not authorization:
        raise Unauthorized("missing Authorization bearer token")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise Unauthorized("invalid Authorization header")
    token = authorization[len(prefix) :].strip()
    if not token:
        raise Unauthorized("empty bearer token")
    header_obj, payload_obj, signing_input, signature_raw = _parse_token_parts(token)
    alg = str(header_obj.get("alg", "")).upper()
    if alg != "HS256":
        raise Unauthorized("unsupported jwt algorithm")
    if not cfg.shared_secret:
        raise Unauthorized("jwt shared secret not configured")
    expected = _b64url_encode(
        hmac.new(
            cfg.shared_secret.encode("utf-8"),
            signing_input.encode("ascii"),
            hashlib.sha256,
        ).digest()
    )
    if not hmac.compare_digest(expected, signature_raw):
        raise Unauthorized("invalid token signature")

    now_ts = int(datetime.now(UTC).timestamp())
    exp = _as_int(payload_obj.get("exp"))
    if exp is None or exp <= now_ts:
        raise Unauthorized("token expired")
    nbf = _as_int(payload_obj.get("nbf"))
    if nbf is not None and nbf > now_ts:
        raise Unauthorized("token not yet valid")

    if cfg.issuer and str(payload_obj.get("iss", "")) != cfg.issuer:
        raise Unauthorized("jwt issuer mismatch")
    if cfg.audience:
        aud = payload_obj.get("aud")
        if isinstance(aud, list):
            aud_ok = cfg.audience in {str(x) for x in aud}
        else:
            aud_ok = str(aud or "") == cfg.audience
        if not aud_ok:
            raise Unauthorized("jwt audience mismatch")

    for claim in cfg.required_claims:
        if claim not in payload_obj:
            raise Unauthorized(f"missing required claim: {claim}")

    subject = str(payload_obj.get("sub") or "").strip()
    role = str(payload_obj.get(cfg.role_claim) or "").strip().lower()
    if not subject:
        raise Unauthorized("missing subject claim")
    if role not in {item.value for item in Role}:
        raise Unauthorized("missing or unknown role claim")
    return AuthContext(subject=subject, role=role, claims=payload_obj)


def identity_from_headers(*, account_id: str | None, role: str | None) -> IdentityContext:
    """Development identity taken from ``x-account-id`` / ``x-account-role`` when JWT is off."""
    subject = (account_id or "").strip()
    role_value = (role or "").strip().lower()
    if not subject:
        raise Unauthorized("missing x-account-id header")
    if role_value not in {item.value for item in Role}:
        raise Unauthorized("missing or unknown x-account-role header")
    return IdentityContext(account_id=subject, role=Role(role_value))
