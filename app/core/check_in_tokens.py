"""Signed, time-boxed check-in tokens bound to one event instance.

A token is the base64 encoding of ``{"payload": ..., "signature": ...}`` where
the signature is a hex HMAC-SHA256 over the compact JSON of the payload.
Validation needs nothing but the signing secret, so it never touches the
database.

The payload carries a random nonce, but tokens are deliberately not single-use:
a rotating code on a shared screen is scanned by many phones within its window,
and only the first scanner would succeed if nonces were consumed. The short
rotation window bounds the exposure of any one code instead.
"""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from functools import lru_cache
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.config import Environment, settings
from app.core.exceptions.attendance_exceptions import (
    TokenExpired,
    TokenMalformed,
    TokenSignatureMismatch,
)
from app.core.logger import logger

TOKEN_KIND = 'ATTEND'
ROTATING_TOKEN_TTL_MS = settings.ROTATING_TOKEN_TTL_SECONDS * 1000
STATIC_TOKEN_TTL_MS = settings.STATIC_TOKEN_TTL_SECONDS * 1000
# Issued tokens are a few hundred characters
MAX_TOKEN_LENGTH = 2048

# Only used when running the test suite without a configured secret
TEST_SIGNING_SECRET = 'test-check-in-token-secret'


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _canonical_json(value: dict) -> bytes:
    return json.dumps(value, separators=(',', ':'), ensure_ascii=False).encode(
        'utf-8', 'surrogatepass'
    )


class CheckInTokenPayload(BaseModel):
    kind: str
    event_instance_id: int = Field(alias='eventInstanceId', strict=True)
    expires_at_epoch_ms: int = Field(alias='expiresAtEpochMs', strict=True)
    nonce: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckInToken(BaseModel):
    payload: CheckInTokenPayload
    signature: str
    encoded: str


class CheckInTokenSigner:
    def __init__(self, secret: str, clock: Callable[[], int] = _now_ms):
        if not secret:
            raise ValueError('A check-in token signing secret is required')
        self._secret = secret.encode('utf-8')
        self._clock = clock

    def _sign(self, payload: dict) -> str:
        return hmac.new(self._secret, _canonical_json(payload), hashlib.sha256).hexdigest()

    def issue(self, event_instance_id: int, ttl_ms: int) -> CheckInToken:
        payload = CheckInTokenPayload(
            kind=TOKEN_KIND,
            event_instance_id=event_instance_id,
            expires_at_epoch_ms=self._clock() + ttl_ms,
            nonce=secrets.token_hex(16),
        )
        wire_payload = payload.model_dump(by_alias=True)
        signature = self._sign(wire_payload)
        envelope = {'payload': wire_payload, 'signature': signature}
        encoded = base64.b64encode(_canonical_json(envelope)).decode('ascii')
        return CheckInToken(payload=payload, signature=signature, encoded=encoded)

    def issue_rotating_token(self, event_instance_id: int) -> CheckInToken:
        """Short-lived code for a display that refreshes continuously."""
        return self.issue(event_instance_id, ROTATING_TOKEN_TTL_MS)

    def issue_static_token(self, event_instance_id: int) -> CheckInToken:
        """Day-long code meant to be printed or posted."""
        return self.issue(event_instance_id, STATIC_TOKEN_TTL_MS)

    def _decode(self, encoded: str) -> dict:
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TokenMalformed('not base64') from e
        # Reject alternative encodings of the same bytes
        if base64.b64encode(raw).decode('ascii') != encoded:
            raise TokenMalformed('not canonical base64')

        try:
            envelope = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise TokenMalformed('not JSON') from e
        except RecursionError as e:
            raise TokenMalformed('nested too deeply') from e
        # Issued tokens are always compact JSON; anything else was altered
        if _canonical_json(envelope) != raw:
            raise TokenMalformed('not canonical JSON')

        if not isinstance(envelope, dict) or set(envelope) != {'payload', 'signature'}:
            raise TokenMalformed('unexpected envelope')
        if not isinstance(envelope['payload'], dict):
            raise TokenMalformed('payload is not an object')
        if not isinstance(envelope['signature'], str):
            raise TokenMalformed('signature is not a string')
        return envelope

    def validate(self, encoded: Optional[str]) -> CheckInTokenPayload:
        if not encoded or not isinstance(encoded, str):
            raise TokenMalformed('empty token')

        envelope = self._decode(encoded)
        wire_payload = envelope['payload']

        expected = self._sign(wire_payload)
        if not hmac.compare_digest(
            expected.encode('ascii'), envelope['signature'].encode('utf-8', 'surrogatepass')
        ):
            logger.warning('Check-in token rejected: signature mismatch')
            raise TokenSignatureMismatch()

        try:
            payload = CheckInTokenPayload.model_validate(wire_payload)
        except ValidationError as e:
            raise TokenMalformed('invalid payload fields') from e
        if payload.kind != TOKEN_KIND:
            raise TokenMalformed(f'unexpected kind {payload.kind}')

        if self._clock() >= payload.expires_at_epoch_ms:
            logger.warning(
                'Check-in token rejected: expired for event instance %s',
                payload.event_instance_id,
            )
            raise TokenExpired()

        return payload


@lru_cache()
def get_token_signer() -> CheckInTokenSigner:
    secret = settings.CHECK_IN_TOKEN_SECRET
    if not secret and settings.ENVIRONMENT == Environment.TEST:
        secret = TEST_SIGNING_SECRET
    return CheckInTokenSigner(secret)
