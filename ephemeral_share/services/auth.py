import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from ephemeral_share.models.user import User

# bcrypt只會使用密碼的前72個bytes，超過的部分會被忽略（新版bcrypt會直接拋出錯誤）
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode()[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    # bcrypt.gensalt()產生隨機的鹽值，.decode()將bytes轉成字串方便存入資料庫
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt()).decode()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(_encode(plain_password), hashed_password.encode())


def authenticate_user(db: Session, username: str, password: str) -> User | None:
    """Return the user when the credentials match, otherwise None."""
    user = db.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()

    if not user or not verify_password(password, user.hashed_password):
        return None
    return user
