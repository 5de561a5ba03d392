from datetime import datetime, timezone  # 引入 datetime 用于生成时间戳
import logging

from flask import Flask, jsonify, request  # 引入 Flask 核心类以及 JSON 工具

from flask_cors import CORS  # 引入 CORS 以支持跨域请求
from flask_jwt_extended import JWTManager, create_access_token, jwt_required, get_jwt_identity, get_jwt
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from .config import Config
from .models.db import init_db, SessionLocal
from .models.staff import Staff, ROLE_ADMIN
from .models.job_type import JobType
from .models.category import Category
from .models.tag import Tag
from .services import diary_service, point_ledger, ranking_service, staff_service, status_service
from .services.mention_service import mention_suggestions

DEFAULT_JOB_TYPES = ["Doctor", "Nurse", "Clerk", "Other"]
DEFAULT_CATEGORIES = ["Consultation", "Nursing", "Reception", "Other"]
DEFAULT_TAGS = [
    ("Medication", "tag-medication"),
    ("Equipment", "tag-equipment"),
    ("Patient", "tag-patient"),
    ("Follow-up", "tag-follow-up"),
]

# 业务异常 -> HTTP 状态码
ERROR_STATUS = (
    (staff_service.DuplicateStaffError, 409),
    (staff_service.InactiveStaffError, 403),
    (staff_service.StaffPermissionError, 403),
    (staff_service.StaffNotFoundError, 404),
    (staff_service.StaffValidationError, 400),
    (diary_service.DiaryPermissionError, 403),
    (diary_service.DiaryNotFoundError, 404),
    (diary_service.DiaryValidationError, 400),
    (status_service.StatusConflictError, 409),
    (status_service.StatusNotFoundError, 404),
    (status_service.StatusValidationError, 400),
    (point_ledger.PointPermissionError, 403),
    (point_ledger.PointStaffNotFoundError, 404),
    (point_ledger.PointValidationError, 400),
    (ranking_service.RankingValidationError, 400),
)


def _service_error_handler(status: int):
    def handler(e):
        if status == 409:
            logging.warning("Request conflicted: %s", e)
        return jsonify({"error": str(e)}), status
    return handler


def create_app() -> Flask:  # 创建并配置 Flask 应用的工厂函数
    app = Flask(__name__)
    app.config.from_object(Config)
    # 日志配置：INFO 级别，输出到控制台
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(message)s')

    jwt = JWTManager(app)

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        logging.error(f"Invalid Token: {error}")
        return jsonify({"error": "Invalid token", "details": error}), 422

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        logging.error(f"Missing Token: {error}")
        return jsonify({"error": "Request does not contain an access token", "details": error}), 401

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        logging.error(f"Expired Token: {jwt_payload}")
        return jsonify({"error": "Token has expired", "token_expired": True}), 401

    # 配置CORS，支持所有方法包括OPTIONS
    CORS(app,
         resources={r"/*": {"origins": "*"}},
         methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization"])

    register_routes(app)
    init_db()
    seed_demo_data()

    for error_type, status in ERROR_STATUS:
        app.register_error_handler(error_type, _service_error_handler(status))

    # 全局错误处理
    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        logging.exception("全局异常捕获：%s", e)
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(404)
    def handle_404(e):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(400)
    def handle_400(e):
        return jsonify({"error": "Bad request"}), 400

    return app


def _current_staff_id() -> int:
    return int(get_jwt_identity())


def _require_admin_claim():
    claims = get_jwt()
    if claims.get("role") != ROLE_ADMIN:
        return jsonify({"error": "Admin access required"}), 403
    return None


def register_routes(app: Flask) -> None:  # 定义路由注册函数以保持结构清晰
    @app.route("/health", methods=["GET"])  # 注册健康检查接口
    def health() -> tuple:
        payload = {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return jsonify(payload), 200

    # --- Auth Routes ---
    @app.route("/api/auth/register", methods=["POST"])
    def register():
        data = request.get_json(silent=True) or {}
        staff = staff_service.register_staff(data)
        return jsonify({"message": "Registration received, awaiting approval", "staff": staff}), 201

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        data = request.get_json(silent=True) or {}
        try:
            staff = staff_service.authenticate(data.get("login_id"), data.get("password"))
        except staff_service.StaffValidationError as exc:
            return jsonify({"error": str(exc)}), 401
        access_token = create_access_token(
            identity=str(staff["id"]),
            additional_claims={"role": staff["role"], "name": staff["name"]},
        )
        return jsonify({"access_token": access_token, "staff": staff}), 200

    @app.route("/api/auth/me", methods=["GET"])
    @jwt_required()
    def me():
        return jsonify(staff_service.get_staff(_current_staff_id())), 200

    # --- Reference data ---
    @app.route("/api/categories", methods=["GET"])
    def list_categories():
        return jsonify(staff_service.list_categories()), 200

    @app.route("/api/job-types", methods=["GET"])
    def list_job_types():
        return jsonify(staff_service.list_job_types()), 200

    @app.route("/api/tags", methods=["GET"])
    def list_tags():
        return jsonify(staff_service.list_tags()), 200

    @app.route("/api/staff", methods=["GET"])
    @jwt_required()
    def list_staff():
        return jsonify(staff_service.list_active_staff()), 200

    # --- Profile ---
    @app.route("/api/profile", methods=["PUT"])
    @jwt_required()
    def update_profile():
        data = request.get_json(silent=True) or {}
        return jsonify(staff_service.update_profile(_current_staff_id(), data)), 200

    @app.route("/api/profile/password", methods=["PUT"])
    @jwt_required()
    def change_password():
        data = request.get_json(silent=True) or {}
        payload = staff_service.change_password(
            _current_staff_id(), data.get("current_password"), data.get("new_password")
        )
        return jsonify(payload), 200

    # --- Admin Routes ---
    @app.route("/api/admin/staff/pending", methods=["GET"])
    @jwt_required()
    def list_pending_staff():
        denied = _require_admin_claim()
        if denied:
            return denied
        return jsonify(staff_service.list_pending_staff(_current_staff_id())), 200

    @app.route("/api/admin/staff/<int:staff_id>/approve", methods=["POST"])
    @jwt_required()
    def approve_staff(staff_id: int):
        denied = _require_admin_claim()
        if denied:
            return denied
        return jsonify(staff_service.approve_staff(_current_staff_id(), staff_id)), 200

    @app.route("/api/admin/staff/<int:staff_id>", methods=["PUT"])
    @jwt_required()
    def update_staff(staff_id: int):
        denied = _require_admin_claim()
        if denied:
            return denied
        data = request.get_json(silent=True) or {}
        return jsonify(staff_service.update_staff_by_admin(_current_staff_id(), staff_id, data)), 200

    @app.route("/api/admin/staff/<int:staff_id>/points", methods=["POST"])
    @jwt_required()
    def adjust_points(staff_id: int):
        denied = _require_admin_claim()
        if denied:
            return denied
        data = request.get_json(silent=True) or {}
        payload = point_ledger.adjust_points(_current_staff_id(), staff_id, data.get("amount"), data.get("reason"))
        return jsonify(payload), 201

    @app.route("/api/admin/points/audit", methods=["GET"])
    @jwt_required()
    def audit_points():
        denied = _require_admin_claim()
        if denied:
            return denied
        return jsonify(point_ledger.audit_point_totals()), 200

    # --- Diaries ---
    @app.route("/api/diaries", methods=["GET"])
    @jwt_required()
    def list_diaries():
        target_date = request.args.get("date")
        if not target_date:
            return jsonify({"error": "date parameter is required"}), 400
        include_hidden = get_jwt().get("role") == ROLE_ADMIN and request.args.get("includeHidden", "false").lower() == "true"
        payload = diary_service.list_diaries_by_date(target_date, _current_staff_id(), include_hidden)
        return jsonify(payload), 200

    @app.route("/api/diaries", methods=["POST"])
    @jwt_required()
    def create_diary():
        data = request.get_json(silent=True) or {}
        return jsonify(diary_service.create_diary(_current_staff_id(), data)), 201

    @app.route("/api/diaries/deadlines", methods=["GET"])
    @jwt_required()
    def list_deadlines():
        return jsonify(diary_service.list_upcoming_deadlines(request.args.get("days", 7))), 200

    @app.route("/api/diaries/<int:diary_id>", methods=["GET"])
    @jwt_required()
    def get_diary(diary_id: int):
        return jsonify(diary_service.get_diary(diary_id, _current_staff_id())), 200

    @app.route("/api/diaries/<int:diary_id>", methods=["PUT"])
    @jwt_required()
    def update_diary(diary_id: int):
        data = request.get_json(silent=True) or {}
        return jsonify(diary_service.update_diary(_current_staff_id(), diary_id, data)), 200

    @app.route("/api/diaries/<int:diary_id>", methods=["DELETE"])
    @jwt_required()
    def delete_diary(diary_id: int):
        return jsonify(diary_service.delete_diary(_current_staff_id(), diary_id)), 200

    @app.route("/api/diaries/<int:diary_id>/hide", methods=["POST"])
    @jwt_required()
    def hide_diary(diary_id: int):
        data = request.get_json(silent=True) or {}
        return jsonify(diary_service.set_hidden(_current_staff_id(), diary_id, data.get("hidden", True))), 200

    @app.route("/api/diaries/<int:diary_id>/status", methods=["POST"])
    @jwt_required()
    def toggle_status(diary_id: int):
        data = request.get_json(silent=True) or {}
        return jsonify(status_service.toggle_status(diary_id, _current_staff_id(), data.get("status"))), 200

    # --- Points & ranking ---
    @app.route("/api/points/history", methods=["GET"])
    @jwt_required()
    def point_history():
        return jsonify(point_ledger.get_point_history(_current_staff_id())), 200

    @app.route("/api/points/monthly", methods=["GET"])
    @jwt_required()
    def monthly_points():
        return jsonify({"monthly_points": point_ledger.get_monthly_points(_current_staff_id())}), 200

    @app.route("/api/ranking", methods=["GET"])
    @jwt_required()
    def ranking():
        filters = ranking_service.parse_ranking_filter(request.args.to_dict())
        return jsonify({
            "filters": filters,
            "ranking": ranking_service.compute_ranking(filters),
            "categories": ranking_service.list_ranking_categories(),
        }), 200

    # --- Mentions ---
    @app.route("/api/mentions/suggestions", methods=["GET"])
    @jwt_required()
    def mentions():
        suggestions = mention_suggestions(
            request.args.get("q", ""),
            staff_service.list_active_staff(),
            staff_service.list_job_types(),
        )
        return jsonify(suggestions), 200


def seed_demo_data() -> None:  # 定义初始数据填充函数
    session = SessionLocal()
    try:
        for name in DEFAULT_JOB_TYPES:
            if not session.query(JobType).filter_by(name=name).first():
                session.add(JobType(name=name, is_active=True))
        for index, name in enumerate(DEFAULT_CATEGORIES):
            if not session.query(Category).filter_by(name=name).first():
                session.add(Category(name=name, sort_order=index, is_active=True))
        for name, css_class in DEFAULT_TAGS:
            if not session.query(Tag).filter_by(name=name).first():
                session.add(Tag(name=name, css_class=css_class, is_active=True))
        session.flush()

        admin = session.query(Staff).filter_by(login_id=Config.ADMIN_LOGIN_ID).first()
        if not admin:
            other = session.query(JobType).filter_by(name="Other").first()
            admin = Staff(
                name=Config.ADMIN_NAME,
                login_id=Config.ADMIN_LOGIN_ID,
                email=f"{Config.ADMIN_LOGIN_ID}@clinic.local",
                password_hash=generate_password_hash(Config.ADMIN_PASSWORD),
                role=ROLE_ADMIN,
                job_type_id=other.id if other else None,
                is_active=True,
                current_points=0,
            )
            session.add(admin)
            logging.info("Created default admin user: %s", Config.ADMIN_LOGIN_ID)
        session.commit()
    except Exception as e:
        session.rollback()
        logging.error(f"Seeding failed: {e}")
    finally:
        session.close()


app = create_app()  # 创建全局应用实例供 WSGI 使用


if __name__ == "__main__":  # 仅在直接运行文件时执行
    app.run(debug=Config.DEBUG)  # 启动开发服务器
