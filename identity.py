import logging
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


logger = logging.getLogger(__name__)


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="user-identity")


def issue_user_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def resolve_user_token(token: str, max_age_hours: Optional[int] = None) -> Optional[int]:
    """Return the user id carried by ``token``, or None if it does not verify.

    Tokens are signed by the account collaborator; this side never sees
    credentials.
    """
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature as exc:
        logger.info(f"identity_rejected: reason={type(exc).__name__}")
        return None

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        logger.info("identity_rejected: reason=payload")
        return None
    return user_id
