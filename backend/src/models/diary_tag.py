from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from .base import Base


class DiaryTag(Base):
    __tablename__ = 'diary_tags'
    id = Column(Integer, primary_key=True, autoincrement=True)
    diary_id = Column(Integer, ForeignKey('diaries.id'), nullable=False, index=True)
    tag_id = Column(Integer, ForeignKey('tags.id'), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint('diary_id', 'tag_id', name='uq_diary_tag'),
    )
