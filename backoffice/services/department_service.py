"""
Department Service

Author: Back Office Team
Date: 2025-11-18
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.core.errors import ConflictError, NotFoundError, ValidationError
from backoffice.domain.admin_user import DepartmentIn
from backoffice.models import AdminUser, Department

logger = logging.getLogger(__name__)


def serialize_department(department: Department, users_count: int = 0) -> Dict:
    return {
        "id": department.id,
        "name": department.name,
        "users_count": users_count,
        "created_at": department.created_at,
        "updated_at": department.updated_at,
    }


class DepartmentService:

    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, department_id: str) -> Department:
        department = self.db.get(Department, department_id)
        if not department:
            raise NotFoundError("Department not found")
        return department

    def _assert_unique_name(self, name: str, exclude_id: Optional[str] = None):
        query = self.db.query(Department).filter(func.lower(Department.name) == name.lower())
        if exclude_id:
            query = query.filter(Department.id != exclude_id)
        if query.first():
            raise ConflictError(f"A department named '{name}' already exists")

    def create_department(self, payload: DepartmentIn) -> Dict:
        self._assert_unique_name(payload.name)
        department = Department(name=payload.name)
        self.db.add(department)
        self.db.commit()
        self.db.refresh(department)
        logger.info(f"Department '{department.name}' created")
        return serialize_department(department)

    def update_department(self, department_id: str, payload: DepartmentIn) -> Dict:
        department = self.get_or_404(department_id)
        self._assert_unique_name(payload.name, exclude_id=department.id)
        department.name = payload.name
        self.db.commit()
        self.db.refresh(department)
        return serialize_department(department, len(department.users))

    def delete_department(self, department_id: str) -> None:
        department = self.get_or_404(department_id)
        if department.users:
            raise ValidationError(f"Department has {len(department.users)} user(s) and cannot be deleted")
        self.db.delete(department)
        self.db.commit()
        logger.info(f"Department {department_id} deleted")

    def list_departments(self) -> List[Dict]:
        counts = dict(
            self.db.query(AdminUser.department_id, func.count(AdminUser.id))
            .filter(AdminUser.department_id.isnot(None))
            .group_by(AdminUser.department_id)
            .all()
        )
        departments = self.db.query(Department).order_by(Department.name).all()
        return [serialize_department(d, counts.get(d.id, 0)) for d in departments]
