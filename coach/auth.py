import jwt

from coach.errors import AuthenticationFailed


class TokenValidator:
    """Verifies the HS256 tokens issued by the login service."""

    def __init__(self, secret: str):
        self.secret = secret

    def user_id(self, authorization: str) -> str:
        if not authorization:
            raise AuthenticationFailed("未提供认证信息")

        token = authorization
        if token.lower().startswith("bearer "):
            token = token[len("bearer "):]

        try:
            claims = jwt.decode(token.strip(), self.secret, algorithms=["HS256"])
        except jwt.PyJWTError as e:
            raise AuthenticationFailed("无效的认证信息") from e

        user_id = claims.get("user_id")
        if not user_id:
            raise AuthenticationFailed("无效的认证信息")
        return str(user_id)
