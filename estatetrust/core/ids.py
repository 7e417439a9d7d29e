import uuid

# row id prefixes
USER = "usr"
API_KEY = "key"
LISTING = "lst"
NOTIFICATION = "ntf"
AUDIT = "aud"


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"
