from backend.src.models.db import SessionLocal
from backend.src.models.staff import Staff
from backend.src.models.diary import Diary
from backend.src.services.point_ledger import audit_point_totals
from sqlalchemy import text

def check_points():
    session = SessionLocal()
    try:
        print("--- Staff ---")
        staff_rows = session.query(Staff).order_by(Staff.id).all()
        for s in staff_rows:
            print(f"ID: {s.id}, LoginID: {s.login_id}, Role: {s.role}, Active: {s.is_active}, Points: {s.current_points}")

        print("\n--- Diaries ---")
        total = session.query(Diary).count()
        replies = session.query(Diary).filter(Diary.parent_id.isnot(None)).count()
        deleted = session.query(Diary).filter(Diary.is_deleted.is_(True)).count()
        print(f"总数: {total}, 回复: {replies}, 已删除: {deleted}")

        print("\n--- Raw Check for orphan point logs ---")
        result = session.execute(text(
            "SELECT count(*) FROM point_logs WHERE staff_id NOT IN (SELECT id FROM staff)"
        )).scalar()
        print(f"Point logs without staff: {result}")
    finally:
        session.close()

    print("\n--- Ledger audit ---")
    audit = audit_point_totals()
    print(f"检查人数: {audit['checked']}")
    for m in audit["mismatches"]:
        print(f"  {m['name']} (ID {m['staff_id']}): 流水合计 {m['ledger_total']}, 当前积分 {m['current_points']}, 差额 {m['difference']}")
    if not audit["mismatches"]:
        print("  积分一致")

if __name__ == "__main__":
    check_points()
