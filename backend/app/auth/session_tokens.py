"""Short-lived HS256 session tokens handed to the document-capture SDK."""

from datetime import datetime, timedelta

from jose import JWTError, jwt

from app.config import Settings
from app.errors import AuthenticationRequired
from app.models.base import utcnow

ALGORITHM = "HS256"
TOKEN_TYPE = "sdk_session"


class SessionTokenService:
    def __init__(self, settings: Settings):
        self.secret = settings.jwt_secret
        self.issuer = settings.jwt_issuer
        self.ttl = timedelta(minutes=settings.session_token_ttl_minutes)
        self.sdk_base_url = settings.sdk_base_url

    def issue(self, case_id: str, client_id: str, *, now: datetime | None = None) -> str:
        now = now or utcnow()
        claims = {
            "sub": case_id,
            "clientId": client_id,
            "type": TOKEN_TYPE,
            "iss": self.issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=ALGORITHM)

    def sdk_url(self, token: str) -> str:
        return f"{self.sdk_base_url}?token={token}"

    def decode(self, token: str) -> dict:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[ALGORITHM], issuer=self.issuer)
        except JWTError as e:
            raise AuthenticationRequired(f"Invalid session token: {e}")
        if claims.get("type") != TOKEN_TYPE:
            raise AuthenticationRequired("Invalid session token type")
        return claims
