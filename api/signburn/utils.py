import base64, binascii, hashlib, json, re, threading, weakref
from datetime import datetime, timezone
from itsdangerous import URLSafeSerializer
from .config import SECRET_KEY

_DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,", re.IGNORECASE)

def data_url_to_bytes(data_url: str) -> bytes:
    """Decode a ``data:image/...;base64,`` URL (or a bare base64 string).

    Raises ``ValueError`` when the payload is not valid base64.
    """
    payload = _DATA_URL_PREFIX.sub("", data_url.strip(), count=1)
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError("image payload is not valid base64") from exc

def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()

def verify_hash(b: bytes, expected: str) -> bool:
    return sha256_bytes(b) == expected

def canonical_json(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: datetime) -> datetime:
    # sqlite hands timestamps back without tzinfo; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

class KeyedLocks:
    """Re-entrant lock per key, dropped once no caller holds a reference."""

    def __init__(self):
        self._locks = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def get(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

def make_token(payload: dict) -> str:
    s = URLSafeSerializer(SECRET_KEY, salt="share")
    return s.dumps(payload)

def read_token(token: str) -> dict:
    s = URLSafeSerializer(SECRET_KEY, salt="share")
    return s.loads(token)
