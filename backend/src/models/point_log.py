from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from .base import Base, utcnow

class PointLog(Base):
    __tablename__ = 'point_logs'
    id = Column(Integer, primary_key=True, autoincrement=True)
    staff_id = Column(Integer, ForeignKey('staff.id'), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # 可为负数（撤销）
    reason = Column(String(255), nullable=False)
    diary_id = Column(Integer, ForeignKey('diaries.id'), nullable=True)  # 管理员调整时为空
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index('idx_point_log_staff_created', 'staff_id', 'created_at'),
    )
