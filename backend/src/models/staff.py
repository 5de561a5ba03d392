from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship

from .base import Base, utcnow

ROLE_ADMIN = 'admin'
ROLE_MEMBER = 'member'


class Staff(Base):
    __tablename__ = 'staff'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(64), nullable=False)
    login_id = Column(String(50), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(ROLE_ADMIN, ROLE_MEMBER, name='staff_role'), nullable=False, default=ROLE_MEMBER)
    job_type_id = Column(Integer, ForeignKey('job_types.id'), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=False)  # 管理员审批前为 False
    current_points = Column(Integer, nullable=False, default=0)  # 与 point_logs 合计保持一致
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    job_type = relationship('JobType')

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "login_id": self.login_id,
            "email": self.email,
            "role": self.role,
            "is_admin": self.is_admin,
            "job_type_id": self.job_type_id,
            "job_type_name": self.job_type.name if self.job_type else None,
            "is_active": self.is_active,
            "current_points": self.current_points,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Staff id={self.id} login_id={self.login_id!r} points={self.current_points}>"
