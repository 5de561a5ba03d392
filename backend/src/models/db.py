from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..config import Config
from .base import Base  # 导入共享 Base，以一次性生成全部模型表
from . import job_type  # noqa: F401, 导入以注册模型到元数据
from . import category  # noqa: F401, 导入以注册模型到元数据
from . import tag  # noqa: F401, 导入以注册模型到元数据
from . import staff  # noqa: F401, 导入以注册模型到元数据
from . import diary  # noqa: F401, 导入以注册模型到元数据
from . import diary_tag  # noqa: F401, 导入以注册模型到元数据
from . import user_diary_status  # noqa: F401, 导入以注册模型到元数据
from . import action_log  # noqa: F401, 导入以注册模型到元数据
from . import point_log  # noqa: F401, 导入以注册模型到元数据

DATABASE_URL = Config.SQLALCHEMY_DATABASE_URI


def _engine_options(url: str) -> dict:
    if url.startswith('sqlite'):
        # SQLite 仅用于本地开发和测试
        return {"connect_args": {"check_same_thread": False}}
    # 启用 pool_pre_ping 与 pool_recycle 防止 MySQL 空闲连接被服务器断开
    return {
        "pool_pre_ping": True,  # 每次取用连接前先发送 ping，失效则自动重连
        "pool_recycle": 1800,   # 定期回收空闲连接（单位秒）避免 MySQL wait_timeout 断开
        "connect_args": {"connect_timeout": 10},  # 设置连接超时时间，避免长时间阻塞
    }


engine = create_engine(
    DATABASE_URL,
    echo=Config.SQL_ECHO,
    future=True,
    **_engine_options(DATABASE_URL)
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create tables for all SQLAlchemy models defined in the project."""
    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    """Drop every table; used by tests and local resets."""
    Base.metadata.drop_all(bind=engine)

