from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint
from .base import Base, utcnow

ACTION_CONFIRMED = 'CONFIRMED'
ACTION_WORKING = 'WORKING'
ACTION_SOLVED = 'SOLVED'
ACTION_REPLY = 'REPLY'
ACTION_POST_DIARY = 'POST_DIARY'


class ActionLog(Base):
    __tablename__ = 'action_logs'
    id = Column(Integer, primary_key=True, autoincrement=True)
    diary_id = Column(Integer, ForeignKey('diaries.id'), nullable=True, index=True)
    staff_id = Column(Integer, ForeignKey('staff.id'), nullable=False, index=True)
    action_type = Column(String(32), nullable=False)
    points_awarded = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    # 行的存在即表示该动作已经发放过积分
    __table_args__ = (
        UniqueConstraint('diary_id', 'staff_id', 'action_type', name='uq_action_log_award'),
        Index('idx_action_log_staff_created', 'staff_id', 'created_at'),
    )
