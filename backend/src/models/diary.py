from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Boolean, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship

from .base import Base, utcnow

STATUS_UNREAD = 'UNREAD'
STATUS_CONFIRMED = 'CONFIRMED'
STATUS_WORKING = 'WORKING'
STATUS_SOLVED = 'SOLVED'
DIARY_STATUSES = (STATUS_UNREAD, STATUS_CONFIRMED, STATUS_WORKING, STATUS_SOLVED)


class Diary(Base):
    __tablename__ = 'diaries'

    id = Column(Integer, primary_key=True, autoincrement=True)
    # 回复指向父日报；回复本身不能再被回复
    parent_id = Column(Integer, ForeignKey('diaries.id'), nullable=True, index=True)
    category_id = Column(Integer, ForeignKey('categories.id'), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey('staff.id'), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    target_date = Column(Date, nullable=False, index=True)
    is_urgent = Column(Boolean, nullable=False, default=False)
    deadline = Column(Date, nullable=True)
    bounty_points = Column(Integer, nullable=True)  # 悬赏积分，仅展示
    is_hidden = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    current_status = Column(Enum(*DIARY_STATUSES, name='diary_status'), nullable=False, default=STATUS_UNREAD)
    solved_by = Column(Integer, ForeignKey('staff.id'), nullable=True)
    solved_at = Column(DateTime, nullable=True)
    edited_by = Column(Integer, ForeignKey('staff.id'), nullable=True)
    edited_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    category = relationship('Category')
    author = relationship('Staff', foreign_keys=[staff_id])
    solver = relationship('Staff', foreign_keys=[solved_by])
    editor = relationship('Staff', foreign_keys=[edited_by])
    parent = relationship('Diary', remote_side=[id], back_populates='replies')
    replies = relationship('Diary', back_populates='parent', order_by='Diary.created_at')
    user_statuses = relationship('UserDiaryStatus', back_populates='diary', cascade='all, delete-orphan')
    # 写入走 diary_tags 行，这里只读
    tags = relationship('Tag', secondary='diary_tags', viewonly=True, order_by='Tag.id')

    # 复合索引优化按日期列出未删除日报
    __table_args__ = (
        Index('idx_diary_date_visible', 'target_date', 'is_deleted', 'is_hidden'),
    )

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

    def __repr__(self) -> str:
        return f"<Diary id={self.id} status={self.current_status} parent={self.parent_id}>"
