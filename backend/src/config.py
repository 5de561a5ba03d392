import os
from datetime import timedelta, timezone
from dotenv import load_dotenv, find_dotenv

# 自动加载根目录 .env
load_dotenv(find_dotenv(filename=".env", raise_error_if_not_found=False))


def _build_database_url() -> str:
    explicit = os.getenv('DATABASE_URL')
    if explicit:
        return explicit
    user = os.getenv('MYSQL_USER', 'root')
    password = os.getenv('MYSQL_PASSWORD', 'password')
    host = os.getenv('MYSQL_HOST', 'localhost')
    port = os.getenv('MYSQL_PORT', '3306')
    name = os.getenv('MYSQL_DB', 'clinic_diary')
    return f"mysql+pymysql://{user}:{password}@{host}:{port}/{name}?charset=utf8mb4"


class Config:
    # Flask 基础配置
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret')
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-jwt-secret-change-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.getenv('JWT_ACCESS_TOKEN_HOURS', '24')))

    # 数据库
    SQLALCHEMY_DATABASE_URI = _build_database_url()
    SQL_ECHO = os.getenv('SQL_ECHO', '0') == '1'

    # 诊所本地时区（排行榜的星期/时段/期间都按本地时间计算）
    APP_UTC_OFFSET_HOURS = float(os.getenv('APP_UTC_OFFSET_HOURS', '9'))
    LOCAL_TZ = timezone(timedelta(hours=APP_UTC_OFFSET_HOURS))

    RANKING_LIMIT = int(os.getenv('RANKING_LIMIT', '5'))
    STATUS_TOGGLE_MAX_ATTEMPTS = int(os.getenv('STATUS_TOGGLE_MAX_ATTEMPTS', '3'))

    # 默认管理员
    ADMIN_LOGIN_ID = os.getenv('ADMIN_LOGIN_ID', 'admin')
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin123')
    ADMIN_NAME = os.getenv('ADMIN_NAME', 'Administrator')
