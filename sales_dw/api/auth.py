import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from sales_dw.core.config import settings


# Setup Basic Auth Security object
security = HTTPBasic()

def authenticate(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """Implements Basic Authentication against the configured admin account.

    Args:
        credentials (HTTPBasicCredentials): The credentials provided via the
            Authorization header in the request.

    Returns:
        str: The authenticated username.

    Raises:
        HTTPException: 401 status code if credentials do not match the settings.
    """
    # Constant-time comparison
    is_user_ok = secrets.compare_digest(credentials.username, str(settings.ADMIN_USERNAME))
    is_pass_ok = secrets.compare_digest(credentials.password, str(settings.ADMIN_PASSWORD))

    if not (is_user_ok and is_pass_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username
