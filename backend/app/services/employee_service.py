"""
员工服务 - 管理 Employee 对象和认证
"""
from typing import Optional
import logging
from sqlalchemy.orm import Session
from app.models.ontology import Employee, EmployeeRole
from app.security.auth import get_password_hash, verify_password, create_access_token

logger = logging.getLogger(__name__)


class EmployeeService:
    """员工服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_employee(self, employee_id: int) -> Optional[Employee]:
        return self.db.query(Employee).filter(Employee.id == employee_id).first()

    def get_employee_by_username(self, username: str) -> Optional[Employee]:
        return self.db.query(Employee).filter(Employee.username == username).first()

    def create_employee(self, username: str, password: str, name: str,
                        role: EmployeeRole, hotel_id: Optional[int] = None) -> Employee:
        """创建员工（初始化数据和测试使用）"""
        if self.get_employee_by_username(username):
            raise ValueError(f"Username '{username}' already exists")

        employee = Employee(
            username=username,
            password_hash=get_password_hash(password),
            name=name,
            role=role,
            hotel_id=hotel_id
        )
        self.db.add(employee)
        self.db.commit()
        self.db.refresh(employee)
        return employee

    def authenticate(self, username: str, password: str) -> Optional[dict]:
        """
        认证登录

        Returns:
            登录结果（token + 员工信息）；用户名或密码错误时返回 None

        Raises:
            ValueError: 账号已停用
        """
        employee = self.get_employee_by_username(username)
        if not employee:
            return None

        if not employee.is_active:
            raise ValueError("Account disabled")

        if not verify_password(password, employee.password_hash):
            logger.warning(f"Failed login for {username}")
            return None

        token = create_access_token(employee.id, employee.role, employee.hotel_id)
        logger.info(f"User {username} logged in")

        return {
            'access_token': token,
            'token_type': 'bearer',
            'employee': employee
        }
