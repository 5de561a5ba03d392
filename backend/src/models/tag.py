from sqlalchemy import Column, String, Integer, Boolean
from .base import Base

class Tag(Base):
    __tablename__ = 'tags'
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)
    css_class = Column(String(64), nullable=False, default='')  # 前端标签样式
    is_active = Column(Boolean, nullable=False, default=True)
