from sqlalchemy import Column, Integer, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, utcnow
from .diary import DIARY_STATUSES, STATUS_UNREAD


class UserDiaryStatus(Base):
    __tablename__ = 'user_diary_statuses'

    id = Column(Integer, primary_key=True, autoincrement=True)
    diary_id = Column(Integer, ForeignKey('diaries.id', ondelete='CASCADE'), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey('staff.id'), nullable=False, index=True)
    status = Column(Enum(*DIARY_STATUSES, name='user_diary_status'), nullable=False, default=STATUS_UNREAD)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    diary = relationship('Diary', back_populates='user_statuses')
    staff = relationship('Staff')

    # 每位员工对每篇日报只有一条个人状态
    __table_args__ = (
        UniqueConstraint('diary_id', 'staff_id', name='uq_user_diary_status'),
    )
