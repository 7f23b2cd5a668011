from collections.abc import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ephemeral_share.config import settings

# SQLite連線預設只能在建立它的thread使用，
# FastAPI的同步endpoint與背景任務會在threadpool中執行，所以要關閉這個檢查
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

# 建立與資料庫的底層連線池
# pool_pre_ping：每次從連線池取出連線前先確認連線仍然有效
engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True,
)
# autocommit=False：不自動提交，需手動呼叫db.commit()
# autoflush=False：不自動將暫存的變更送出到資料庫
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


# 所有模型繼承同一個基底(這個Base class)
# 透過Base.metadata可一次取得所有資料表定義（Alembic autogenerate也會用到）
class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        # 將db交給呼叫者（API路由函式），請求結束後回到這裡關閉連線
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    # 背景任務在回應送出後才執行，此時get_db的session已關閉，所以要自己建立新的session
    return SessionLocal
