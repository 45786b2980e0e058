"""
Bearer tokens for API tests, signed the way the identity provider signs them.
"""
from datetime import datetime, timedelta, timezone

from jose import jwt

TEST_JWT_SECRET = "test-jwt-secret"


def make_token(profile_id: str, expires_in: timedelta = timedelta(hours=1), secret: str = TEST_JWT_SECRET) -> str:
    exp = datetime.now(timezone.utc) + expires_in
    return jwt.encode({"sub": profile_id, "exp": int(exp.timestamp())}, secret, algorithm="HS256")
