from sqlalchemy import Column, String, Integer, Boolean
from .base import Base

class JobType(Base):
    __tablename__ = 'job_types'
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)  # 职种名称，也用作 @提及 的目标
    is_active = Column(Boolean, nullable=False, default=True)
