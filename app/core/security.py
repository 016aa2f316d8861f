from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from app.core.config import settings
from app.core.logger import logger
from app.core.utils import current_time


class TokenData(BaseModel):
    user_id: int
    email: str


# Constants
ALGORITHM = 'HS256'

oauth2_scheme = OAuth2PasswordBearer(tokenUrl='auth/token')


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        to_encode.update({'exp': current_time() + expires_delta})

    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


async def get_current_user(token: str = Depends(oauth2_scheme)) -> TokenData:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail='Could not validate credentials',
        headers={'WWW-Authenticate': 'Bearer'},
    )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.error('Session token has expired')
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token has expired',
            headers={'WWW-Authenticate': 'Bearer'},
        )
    except JWTError as e:
        logger.error('Error decoding session token: %s', str(e))
        raise credentials_exception

    user_id: int = payload.get('user_id')
    email: str = payload.get('email')
    if user_id is None or email is None:
        logger.error('Invalid session token payload: %s', payload)
        raise credentials_exception

    return TokenData(user_id=user_id, email=email)


def verify_api_key(x_api_key: Optional[str]) -> None:
    """Staff and collaborator endpoints share a single API key."""
    if not settings.ATTENDANCE_API_KEY or x_api_key != settings.ATTENDANCE_API_KEY:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Invalid API key')
