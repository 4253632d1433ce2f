from __future__ import annotations

import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder

__all__ = ["FieldCipher", "InvalidToken", "get_cipher"]


class FieldCipher:
    """Field-level encryption for verification records.

    The first key encrypts; every key can decrypt, so a new key can be
    prepended and old ciphertext rotated later.
    """

    def __init__(self, keys: list[str | bytes]):
        if not keys:
            raise ValueError("At least one field encryption key is required")
        self._fernet = MultiFernet([Fernet(k.encode() if isinstance(k, str) else k) for k in keys])

    def encrypt(self, value: Any) -> str:
        if value is None or value == "":
            return ""
        return self._fernet.encrypt(str(value).encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        if not token:
            return ""
        return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")

    def encrypt_json(self, payload: Any) -> str:
        if payload is None:
            return ""
        return self.encrypt(json.dumps(payload, cls=DjangoJSONEncoder))

    def decrypt_json(self, token: str) -> Any:
        if not token:
            return None
        return json.loads(self.decrypt(token))

    def rotate(self, token: str) -> str:
        if not token:
            return token
        return self._fernet.rotate(token.encode("ascii")).decode("ascii")


def get_cipher() -> FieldCipher:
    return FieldCipher(list(getattr(settings, "FIELD_ENCRYPTION_KEYS", []) or []))
