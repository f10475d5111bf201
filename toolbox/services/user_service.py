"""用户与认证服务"""
import re
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import USER_ROLES, USER_STATUSES, User
from ..domain.errors import AuthError, ConflictError, LockedError, NotFoundError, ValidationError
from ..domain.validators import validate_email_format
from ..infrastructure.security import create_access_token, hash_password, verify_password

MIN_PASSWORD_LENGTH = 6
USERNAME_RE = re.compile(r"^[a-z0-9_.-]{3,50}$")

DEFAULT_ADMIN = {
    "username": "admin",
    "email": "admin@tools.local",
    "password": "admin123",
    "display_name": "超级管理员",
}


def _normalize_username(username: Optional[str]) -> str:
    return (username or "").strip().lower()


def _normalize_email(email: Optional[str]) -> Optional[str]:
    email = (email or "").strip().lower()
    return email or None


def _check_password(password: Optional[str], message: str = "密码至少6位") -> str:
    password = "" if password is None else str(password)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(message)
    return password


def _check_username(username: str) -> None:
    if not USERNAME_RE.match(username):
        raise ValidationError("用户名长度为3-50个字符，只能包含字母、数字、下划线、点和连字符")


def _check_email(email: Optional[str]) -> None:
    if email is None:
        return
    result = validate_email_format(email)
    if not result["valid"]:
        raise ValidationError(result["message"])


class UserService:
    """登录、令牌校验与用户管理"""

    @staticmethod
    async def ensure_default_admin(db: AsyncSession) -> bool:
        """没有任何管理员时创建默认管理员"""
        count = await db.scalar(select(func.count()).select_from(User).where(User.role == "admin"))
        if count:
            return False
        db.add(User(
            username=DEFAULT_ADMIN["username"],
            email=DEFAULT_ADMIN["email"],
            display_name=DEFAULT_ADMIN["display_name"],
            password_hash=hash_password(DEFAULT_ADMIN["password"]),
            role="admin",
            status="active",
        ))
        await db.commit()
        return True

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("用户不存在")
        return user

    @staticmethod
    async def get_active_user(db: AsyncSession, user_id: str) -> Optional[User]:
        user = await db.get(User, user_id)
        if user is None or user.status != "active":
            return None
        return user

    @staticmethod
    async def authenticate(
        db: AsyncSession,
        username: Optional[str],
        password: Optional[str],
        secret_key: str,
    ) -> Tuple[User, str]:
        """
        校验用户名密码并签发令牌

        连续失败 5 次锁定 30 分钟，登录成功后清零失败计数。

        Raises:
            ValidationError: 用户名或密码为空
            AuthError: 用户名或密码错误
            LockedError: 账户被锁定
        """
        if not username or not password:
            raise ValidationError("用户名和密码不能为空")

        user = await db.scalar(select(User).where(
            User.username == _normalize_username(username),
            User.status == "active",
        ))
        if user is None:
            raise AuthError("用户名或密码错误")

        if user.is_locked():
            raise LockedError("账户已被锁定，请稍后再试")

        if not verify_password(user.password_hash, password):
            user.register_failed_login()
            await db.commit()
            logger.warning(f"用户 {user.username} 登录失败，累计 {user.login_attempts} 次")
            raise AuthError("用户名或密码错误")

        user.register_successful_login()
        await db.commit()
        token = create_access_token(secret_key=secret_key, user_id=user.id, role=user.role)
        logger.info(f"用户登录成功: {user.username}")
        return user, token

    @staticmethod
    async def list_users(
        db: AsyncSession,
        q: Optional[str] = None,
        role: Optional[str] = None,
        status: Optional[str] = None,
        sort: str = "latest",
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[User], int]:
        conditions = []
        if q and q.strip():
            pattern = f"%{q.strip().lower()}%"
            conditions.append(or_(
                User.username.like(pattern),
                User.email.like(pattern),
                User.display_name.like(pattern),
            ))
        if role in USER_ROLES:
            conditions.append(User.role == role)
        if status in USER_STATUSES:
            conditions.append(User.status == status)

        order = User.username.asc() if sort == "name" else User.created_at.desc()
        total = await db.scalar(select(func.count()).select_from(User).where(*conditions))
        users = (await db.scalars(
            select(User).where(*conditions).order_by(order)
            .offset((page - 1) * limit).limit(limit)
        )).all()
        return list(users), total or 0

    @staticmethod
    async def _ensure_unique(db: AsyncSession, username: Optional[str] = None,
                             email: Optional[str] = None, exclude_id: Optional[str] = None):
        if username:
            stmt = select(User.id).where(User.username == username)
            if exclude_id:
                stmt = stmt.where(User.id != exclude_id)
            if await db.scalar(stmt):
                raise ConflictError("用户名已存在")
        if email:
            stmt = select(User.id).where(User.email == email)
            if exclude_id:
                stmt = stmt.where(User.id != exclude_id)
            if await db.scalar(stmt):
                raise ConflictError("邮箱已被使用")

    @staticmethod
    async def create_user(db: AsyncSession, data: Dict[str, Any]) -> User:
        username = _normalize_username(data.get("username"))
        if not username or not data.get("password"):
            raise ValidationError("用户名和密码不能为空")
        _check_username(username)
        password = _check_password(data.get("password"))
        email = _normalize_email(data.get("email"))
        _check_email(email)

        role = data.get("role") or "user"
        status = data.get("status") or "active"
        if role not in USER_ROLES:
            raise ValidationError("无效的角色")
        if status not in USER_STATUSES:
            raise ValidationError("无效的状态")

        await UserService._ensure_unique(db, username=username, email=email)
        user = User(
            username=username,
            email=email,
            display_name=data.get("display_name") or None,
            avatar_url=data.get("avatar_url") or None,
            password_hash=hash_password(password),
            role=role,
            status=status,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"创建用户: {user.username} ({user.role})")
        return user

    @staticmethod
    async def update_user(db: AsyncSession, user_id: str, data: Dict[str, Any]) -> User:
        user = await UserService.get_by_id(db, user_id)

        if data.get("role") is not None:
            if data["role"] not in USER_ROLES:
                raise ValidationError("无效的角色")
            user.role = data["role"]
        if data.get("status") is not None:
            if data["status"] not in USER_STATUSES:
                raise ValidationError("无效的状态")
            user.status = data["status"]
        if "username" in data and data["username"] is not None:
            username = _normalize_username(data["username"])
            if not username:
                raise ValidationError("用户名不能为空")
            _check_username(username)
            await UserService._ensure_unique(db, username=username, exclude_id=user.id)
            user.username = username
        if "email" in data:
            email = _normalize_email(data["email"])
            _check_email(email)
            await UserService._ensure_unique(db, email=email, exclude_id=user.id)
            user.email = email
        if "display_name" in data:
            user.display_name = data["display_name"] or None
        if "avatar_url" in data:
            user.avatar_url = data["avatar_url"] or None

        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def reset_password(db: AsyncSession, user_id: str, new_password: Optional[str]) -> None:
        password = _check_password(new_password, "新密码至少6位")
        user = await UserService.get_by_id(db, user_id)
        user.password_hash = hash_password(password)
        user.login_attempts = 0
        user.locked_until = None
        await db.commit()
        logger.info(f"重置用户密码: {user.username}")

    @staticmethod
    async def update_status(db: AsyncSession, user_id: str, status: Optional[str]) -> User:
        if status not in USER_STATUSES:
            raise ValidationError("无效的状态")
        user = await UserService.get_by_id(db, user_id)
        user.status = status
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete_user(db: AsyncSession, user_id: str, current_user_id: Optional[str] = None) -> None:
        if current_user_id and user_id == current_user_id:
            raise ValidationError("不能删除当前登录的账户")
        user = await UserService.get_by_id(db, user_id)
        await db.delete(user)
        await db.commit()
        logger.info(f"删除用户: {user.username}")
