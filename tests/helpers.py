"""测试辅助函数：通过全新会话读取数据库状态"""
from datetime import datetime

from backend.src.models import ActionLog, PointLog
from backend.src.models.db import SessionLocal


def reload(model, pk):
    """Read a row through a brand-new session."""
    s = SessionLocal()
    try:
        row = s.get(model, pk)
        if row is not None:
            s.expunge(row)
        return row
    finally:
        s.close()


def point_logs_for(staff_id):
    s = SessionLocal()
    try:
        return [(p.amount, p.reason, p.diary_id) for p in
                s.query(PointLog).filter(PointLog.staff_id == staff_id).order_by(PointLog.id).all()]
    finally:
        s.close()


def action_logs_for(staff_id):
    s = SessionLocal()
    try:
        return [(a.diary_id, a.action_type, a.points_awarded) for a in
                s.query(ActionLog).filter(ActionLog.staff_id == staff_id).order_by(ActionLog.id).all()]
    finally:
        s.close()


NOW = datetime(2024, 1, 17, 10, 0)  # 2024-01-17 周三
